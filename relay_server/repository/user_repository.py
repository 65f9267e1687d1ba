from pymongo import ASCENDING, DESCENDING

from relay_server.repository.base_repository import CollectionRepository

# Fields exposed to other users (directory projection)
DIRECTORY_PROJECTION = {'name': 1, 'email': 1, 'role': 1, 'avatar': 1, 'isActive': 1}


class UserRepository(CollectionRepository):
    """Read access to the shared user directory (``users``)."""
    collection_name = 'users'

    def ensure_indexes(self):
        self.collection.create_index([('role', ASCENDING), ('isActive', ASCENDING)], name='users_role_active')

    def get_by_id(self, user_id, active_only=False):
        query = {'_id': user_id}
        if active_only:
            query['isActive'] = True
        return self.find_one(query, DIRECTORY_PROJECTION)

    def find_active(self, query=None):
        """Active users matching ``query``, newest first."""
        full_query = dict(query or {})
        full_query['isActive'] = True
        return self.find(full_query, DIRECTORY_PROJECTION, sort=[('_id', DESCENDING)])

    def find_active_by_ids(self, user_ids):
        return self.find_active({'_id': {'$in': list(user_ids)}})

    def map_active_by_ids(self, user_ids):
        """Return {ObjectId: user doc} for the active users among ``user_ids``."""
        if not user_ids:
            return {}
        return {u['_id']: u for u in self.find_active_by_ids(user_ids)}
