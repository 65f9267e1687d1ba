"""User presence storage: one document per user holding ``lastSeen``."""
from pymongo import ASCENDING

from relay_server.repository.base_repository import CollectionRepository


class PresenceRepository(CollectionRepository):
    collection_name = 'user_presence'

    def ensure_indexes(self):
        self.collection.create_index([('userId', ASCENDING)], unique=True, name='user_presence_user')

    def touch(self, user_id, now):
        self.collection.update_one(
            {'userId': user_id},
            {
                '$set': {'lastSeen': now},
                '$setOnInsert': {'createdAt': now},
            },
            upsert=True,
        )

    def get_last_seen(self, user_id):
        doc = self.find_one({'userId': user_id}, {'lastSeen': 1})
        return doc.get('lastSeen') if doc else None

    def last_seen_many(self, user_ids):
        """Return {userId: lastSeen} for the users that have a presence record."""
        if not user_ids:
            return {}
        docs = self.find({'userId': {'$in': list(user_ids)}}, {'userId': 1, 'lastSeen': 1})
        return {d['userId']: d.get('lastSeen') for d in docs}
