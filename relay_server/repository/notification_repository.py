from pymongo import ASCENDING, DESCENDING

from relay_server.repository.base_repository import CollectionRepository


class NotificationRepository(CollectionRepository):
    collection_name = 'notifications'

    def ensure_indexes(self):
        self.collection.create_index([('recipient', ASCENDING), ('createdAt', DESCENDING)], name='notifications_recipient_created')

    def find_for_recipient(self, recipient_id, unread_only=False):
        query = {'recipient': recipient_id}
        if unread_only:
            query['isRead'] = False
        return self.find(query, sort=[('createdAt', DESCENDING)])
