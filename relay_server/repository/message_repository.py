"""Append-only message log (``messages`` collection).

Messages are never removed; ``isDeleted`` hides them from every read path.
All pair queries order by (createdAt, _id).
"""
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from relay_server.repository.base_repository import CollectionRepository

NEWEST_FIRST = [('createdAt', DESCENDING), ('_id', DESCENDING)]


def pair_query(user_a, user_b, project_id=None):
    """Visible messages exchanged between two users in one thread.

    Unscoped threads (``project_id`` None) only contain messages without a
    project, so direct and project threads never mix.
    """
    return {
        '$or': [
            {'senderId': user_a, 'recipientId': user_b},
            {'senderId': user_b, 'recipientId': user_a},
        ],
        'projectId': project_id,
        'isDeleted': False,
    }


def participant_query(user_id):
    return {
        '$or': [{'senderId': user_id}, {'recipientId': user_id}],
        'isDeleted': False,
    }


class MessageRepository(CollectionRepository):
    collection_name = 'messages'

    def ensure_indexes(self):
        self.collection.create_index(
            [('senderId', ASCENDING), ('recipientId', ASCENDING), ('createdAt', DESCENDING)],
            name='messages_pair_created',
        )
        self.collection.create_index(
            [('recipientId', ASCENDING), ('isRead', ASCENDING)],
            name='messages_recipient_unread',
        )
        self.collection.create_index(
            [('projectId', ASCENDING), ('createdAt', DESCENDING)],
            name='messages_project_created',
        )

    def get_visible(self, message_id):
        return self.find_one({'_id': message_id, 'isDeleted': False})

    def page_between(self, user_a, user_b, project_id=None, skip=0, limit=50, unread_for=None):
        """Return (docs newest-first, total) for one page of a thread.

        ``unread_for`` restricts the page to unread messages addressed to that user.
        """
        query = pair_query(user_a, user_b, project_id)
        if unread_for is not None:
            query['recipientId'] = unread_for
            query['isRead'] = False
        total = self.count(query)
        docs = self.find(query, sort=NEWEST_FIRST, skip=skip, limit=limit)
        return docs, total

    def iter_for_participant(self, user_id):
        """Cursor over every visible message the user sent or received, newest first."""
        return self.collection.find(participant_query(user_id)).sort(NEWEST_FIRST)

    def mark_read_from(self, recipient_id, sender_id, now):
        """Mark every unread message from ``sender_id`` to ``recipient_id`` read in one update."""
        result = self.collection.update_many(
            {
                'senderId': sender_id,
                'recipientId': recipient_id,
                'isRead': False,
                'isDeleted': False,
            },
            {'$set': {'isRead': True, 'readAt': now, 'updatedAt': now}},
        )
        return result.modified_count

    def mark_one_read(self, message_id, recipient_id, now):
        """Mark a single message read; returns the updated doc, or None if it was already read."""
        return self.collection.find_one_and_update(
            {'_id': message_id, 'recipientId': recipient_id, 'isRead': False, 'isDeleted': False},
            {'$set': {'isRead': True, 'readAt': now, 'updatedAt': now}},
            return_document=ReturnDocument.AFTER,
        )

    def push_reaction(self, message_id, reaction_doc, now):
        return self.collection.find_one_and_update(
            {'_id': message_id, 'isDeleted': False},
            {'$push': {'reactions': reaction_doc}, '$set': {'updatedAt': now}},
            return_document=ReturnDocument.AFTER,
        )

    def pull_reaction(self, message_id, user_id, emoji, now):
        return self.collection.find_one_and_update(
            {'_id': message_id, 'isDeleted': False},
            {'$pull': {'reactions': {'userId': user_id, 'emoji': emoji}}, '$set': {'updatedAt': now}},
            return_document=ReturnDocument.AFTER,
        )

    def soft_delete(self, message_id, sender_id, now):
        result = self.collection.update_one(
            {'_id': message_id, 'senderId': sender_id, 'isDeleted': False},
            {'$set': {'isDeleted': True, 'deletedAt': now, 'updatedAt': now}},
        )
        return result.modified_count

    def count_unread_for(self, recipient_id):
        return self.count({'recipientId': recipient_id, 'isRead': False, 'isDeleted': False})

    def count_for_participant(self, user_id, since=None):
        query = participant_query(user_id)
        if since is not None:
            query['createdAt'] = {'$gte': since}
        return self.count(query)

    def latest_for_participant(self, user_id):
        docs = self.find(participant_query(user_id), {'createdAt': 1}, sort=NEWEST_FIRST, limit=1)
        return docs[0] if docs else None

    def counterpart_ids(self, user_id):
        """Distinct ids of everyone the user has exchanged visible messages with."""
        seen = set()
        for doc in self.collection.find(participant_query(user_id), {'senderId': 1, 'recipientId': 1}):
            other = doc['recipientId'] if doc['senderId'] == user_id else doc['senderId']
            seen.add(other)
        return seen

    def latest_between(self, user_a, user_b):
        """Most recent visible message between two users across all threads."""
        query = pair_query(user_a, user_b)
        query.pop('projectId')
        docs = self.find(query, sort=NEWEST_FIRST, limit=1)
        return docs[0] if docs else None

    def count_unread_from(self, recipient_id, sender_id):
        return self.count({
            'senderId': sender_id,
            'recipientId': recipient_id,
            'isRead': False,
            'isDeleted': False,
        })
