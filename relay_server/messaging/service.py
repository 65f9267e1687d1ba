"""Messaging service layer for business logic.

Owns every write to the message log (send, read receipts, reactions, soft
delete) and the paged thread reads. Each write re-checks permission against
the current directory and project membership, then notifies the registered
listeners (real-time publisher, notification bridge) after it has succeeded.
"""
import logging
from contextlib import contextmanager
from typing import Optional, Dict, Any, List, Tuple

from pymongo.errors import PyMongoError

from config import config
from relay_server.exception.ForbiddenError import ForbiddenError
from relay_server.exception.NotFoundError import NotFoundError
from relay_server.exception.ServiceUnavailableError import ServiceUnavailableError
from relay_server.exception.ValidationError import ValidationError
from relay_server.messaging.models import Attachment, ConversationSummary, Message, MessageType
from relay_server.messaging.permissions import can_message
from relay_server.repository.mongo_helper import MongoRepositorySingleton
from relay_server.security.roles import Role
from relay_server.utils.time_utils import start_of_month, start_of_week, utc_now
from relay_server.utils.validation import optional_object_id, to_object_id

logger = logging.getLogger(__name__)

MAX_EMOJI_LENGTH = 16


@contextmanager
def store_errors(action: str):
    """Translate pymongo failures on a write path into ServiceUnavailableError."""
    try:
        yield
    except PyMongoError as e:
        logger.error("Store failure while trying to %s: %s", action, e)
        raise ServiceUnavailableError(f'Could not {action}, please retry', cause=e)


class MessagingService:
    """High-level messaging service."""

    def __init__(self, repos=None, listeners=None, clock=utc_now):
        self._repos = repos
        self.listeners = list(listeners or [])
        self.clock = clock

    @property
    def repos(self):
        if self._repos is None:
            self._repos = MongoRepositorySingleton.get_instance()
        return self._repos

    @property
    def messages(self):
        return self.repos.message

    @property
    def users(self):
        return self.repos.user

    @property
    def projects(self):
        return self.repos.project

    def add_listener(self, listener):
        if listener not in self.listeners:
            self.listeners.append(listener)

    def _notify(self, event: str, *args):
        for listener in self.listeners:
            handler = getattr(listener, event, None)
            if handler is None:
                continue
            try:
                handler(*args)
            except Exception:
                logger.exception("Listener %s failed handling %s", type(listener).__name__, event)

    # =========================================================================
    # Validation helpers
    # =========================================================================

    def _clean_content(self, content) -> str:
        if not isinstance(content, str):
            raise ValidationError('Message content is required', {'content': 'content is required'})
        content = content.strip()
        if not content:
            raise ValidationError('Message content is required', {'content': 'content cannot be empty'})
        max_length = config.MESSAGE_MAX_LENGTH
        if len(content) > max_length:
            raise ValidationError(
                'Message content is too long',
                {'content': f'content cannot exceed {max_length} characters'},
            )
        return content

    @staticmethod
    def _clean_attachments(attachments) -> List[Dict[str, Any]]:
        if attachments is None:
            return []
        if not isinstance(attachments, list):
            raise ValidationError('Invalid attachments', {'attachments': 'attachments must be a list'})
        return [Attachment.from_payload(a).to_doc() for a in attachments]

    @staticmethod
    def _clean_emoji(emoji) -> str:
        if not isinstance(emoji, str) or not emoji.strip():
            raise ValidationError('Emoji is required', {'emoji': 'emoji is required'})
        emoji = emoji.strip()
        if len(emoji) > MAX_EMOJI_LENGTH:
            raise ValidationError('Invalid emoji', {'emoji': 'emoji is too long'})
        return emoji

    def _active_user(self, user_id, label: str):
        user = self.users.get_by_id(user_id, active_only=True)
        if not user:
            raise NotFoundError(f'{label} not found')
        return user

    def _require_sender(self, sender_id):
        sender = self.users.get_by_id(sender_id, active_only=True)
        if not sender:
            raise ForbiddenError('Your account is not active')
        return sender

    def _check_project_membership(self, project, *users):
        for user in users:
            if Role.is_owner_admin(user.get('role')):
                continue
            if not self.projects.is_member(project, user['_id']):
                raise ForbiddenError('Both participants must be members of the project')

    def _load_own_message(self, user_id, message_id):
        """Return the visible message if ``user_id`` took part in it, else NotFoundError."""
        doc = self.messages.get_visible(message_id)
        if not doc:
            raise NotFoundError('Message not found')
        message = Message.from_doc(doc)
        if not message.involves(user_id):
            raise NotFoundError('Message not found')
        return message

    # =========================================================================
    # Send
    # =========================================================================

    def send(
        self,
        sender_id,
        recipient_id,
        content,
        project_id=None,
        attachments=None,
        reply_to=None,
        message_type=None,
    ) -> Message:
        """Persist a message after validating and authorizing it.

        Raises ValidationError, ForbiddenError, NotFoundError or
        ServiceUnavailableError. Nothing is written unless every check passes.
        """
        sender_oid = to_object_id(sender_id, 'senderId')
        recipient_oid = to_object_id(recipient_id, 'recipientId')
        project_oid = optional_object_id(project_id, 'projectId')
        reply_oid = optional_object_id(reply_to, 'replyTo')
        content = self._clean_content(content)
        mtype = MessageType.parse(message_type)
        attachment_docs = self._clean_attachments(attachments)

        if sender_oid == recipient_oid:
            raise ValidationError('You cannot send a message to yourself', {'recipientId': 'recipient must differ from sender'})

        with store_errors('send the message'):
            sender = self._require_sender(sender_oid)
            recipient = self._active_user(recipient_oid, 'Recipient')

            if project_oid is not None:
                project = self.projects.get_by_id(project_oid)
                if not project:
                    raise NotFoundError('Project not found')
                self._check_project_membership(project, sender, recipient)

            if not can_message(sender_oid, recipient_oid, sender.get('role'), recipient.get('role'), self.projects):
                logger.info("Send denied: %s (%s) -> %s (%s)", sender_oid, sender.get('role'), recipient_oid, recipient.get('role'))
                raise ForbiddenError('You are not allowed to message this user')

            if reply_oid is not None:
                original = self.messages.get_visible(reply_oid)
                thread = Message.from_doc(original) if original else None
                if thread is None or not (thread.involves(sender_oid) and thread.involves(recipient_oid)):
                    raise NotFoundError('Replied-to message not found')

            now = self.clock()
            message = Message(
                sender_id=sender_oid,
                recipient_id=recipient_oid,
                project_id=project_oid,
                content=content,
                message_type=mtype,
                attachments=attachment_docs,
                reply_to=reply_oid,
                created_at=now,
                updated_at=now,
            )
            message.message_id = self.messages.create(message.to_db_doc())

        message.sender = sender
        message.recipient = recipient
        logger.info("Message %s persisted from %s to %s", message.message_id, sender_oid, recipient_oid)
        self._notify('message_persisted', message)
        return message

    # =========================================================================
    # Reads
    # =========================================================================

    def list_between(
        self,
        user_id,
        participant_id,
        project_id=None,
        page: int = 1,
        limit: Optional[int] = None,
        unread_only: bool = False,
    ) -> Tuple[List[Message], int]:
        """Return (messages oldest-first, total) for one page of a thread.

        Page 1 holds the newest ``limit`` messages. Without ``project_id`` only
        direct (unscoped) messages are returned.
        """
        user_oid = to_object_id(user_id, 'userId')
        participant_oid = to_object_id(participant_id, 'participantId')
        project_oid = optional_object_id(project_id, 'projectId')
        if user_oid == participant_oid:
            raise ValidationError('participantId must be another user', {'participantId': 'cannot list messages with yourself'})
        if page < 1:
            raise ValidationError('page must be >= 1', {'page': 'page must be >= 1'})
        limit = limit or config.MESSAGE_PAGE_LIMIT
        limit = max(1, min(limit, config.MESSAGE_PAGE_MAX_LIMIT))

        with store_errors('load messages'):
            docs, total = self.messages.page_between(
                user_oid,
                participant_oid,
                project_id=project_oid,
                skip=(page - 1) * limit,
                limit=limit,
                unread_for=user_oid if unread_only else None,
            )
            directory = self.users.find({'_id': {'$in': [user_oid, participant_oid]}}, {'name': 1, 'role': 1})

        by_id = {u['_id']: u for u in directory}
        messages = []
        for doc in reversed(docs):
            message = Message.from_doc(doc)
            message.sender = by_id.get(message.sender_id)
            message.recipient = by_id.get(message.recipient_id)
            messages.append(message)
        return messages, total

    # =========================================================================
    # Read receipts
    # =========================================================================

    def mark_read(self, recipient_id, counterpart_id) -> int:
        """Mark everything ``counterpart_id`` sent to ``recipient_id`` as read.

        One atomic update; a repeated call modifies nothing and returns 0.
        """
        recipient_oid = to_object_id(recipient_id, 'recipientId')
        counterpart_oid = to_object_id(counterpart_id, 'participantId')
        now = self.clock()
        with store_errors('mark messages as read'):
            count = self.messages.mark_read_from(recipient_oid, counterpart_oid, now)
        if count:
            logger.debug("Marked %s messages from %s read for %s", count, counterpart_oid, recipient_oid)
            self._notify('messages_read', recipient_oid, counterpart_oid, count, now)
        return count

    def mark_message_read(self, user_id, message_id) -> Message:
        """Mark a single message read. Only its recipient may do so; repeat calls are no-ops."""
        user_oid = to_object_id(user_id, 'userId')
        message_oid = to_object_id(message_id, 'messageId')
        with store_errors('mark the message as read'):
            message = self._load_own_message(user_oid, message_oid)
            if message.recipient_id != user_oid:
                raise ForbiddenError('Only the recipient can mark a message as read')
            if message.is_read:
                return message
            updated = self.messages.mark_one_read(message_oid, user_oid, self.clock())
        if updated is None:
            # Marked read concurrently
            return Message.from_doc(self.messages.get_visible(message_oid) or message.to_db_doc())
        message = Message.from_doc(updated)
        self._notify('message_read', message)
        return message

    # =========================================================================
    # Reactions and deletion
    # =========================================================================

    def add_reaction(self, user_id, message_id, emoji) -> Message:
        """Add ``emoji`` from ``user_id``; one reaction per (user, emoji)."""
        user_oid = to_object_id(user_id, 'userId')
        message_oid = to_object_id(message_id, 'messageId')
        emoji = self._clean_emoji(emoji)
        with store_errors('add the reaction'):
            message = self._load_own_message(user_oid, message_oid)
            if any(r.get('userId') == user_oid and r.get('emoji') == emoji for r in message.reactions):
                return message
            now = self.clock()
            updated = self.messages.push_reaction(message_oid, {'userId': user_oid, 'emoji': emoji, 'createdAt': now}, now)
        if updated is None:
            raise NotFoundError('Message not found')
        message = Message.from_doc(updated)
        self._notify('reaction_changed', message, user_oid, emoji, 'added')
        return message

    def remove_reaction(self, user_id, message_id, emoji) -> Message:
        user_oid = to_object_id(user_id, 'userId')
        message_oid = to_object_id(message_id, 'messageId')
        emoji = self._clean_emoji(emoji)
        with store_errors('remove the reaction'):
            self._load_own_message(user_oid, message_oid)
            updated = self.messages.pull_reaction(message_oid, user_oid, emoji, self.clock())
        if updated is None:
            raise NotFoundError('Message not found')
        message = Message.from_doc(updated)
        self._notify('reaction_changed', message, user_oid, emoji, 'removed')
        return message

    def delete_message(self, user_id, message_id) -> Message:
        """Soft-delete a message. Only its sender may delete it."""
        user_oid = to_object_id(user_id, 'userId')
        message_oid = to_object_id(message_id, 'messageId')
        with store_errors('delete the message'):
            message = self._load_own_message(user_oid, message_oid)
            if message.sender_id != user_oid:
                raise ForbiddenError('Only the sender can delete a message')
            now = self.clock()
            if not self.messages.soft_delete(message_oid, user_oid, now):
                raise NotFoundError('Message not found')
        message.is_deleted = True
        message.deleted_at = now
        message.updated_at = now
        self._notify('message_deleted', message)
        return message

    # =========================================================================
    # Conversations and stats
    # =========================================================================

    def start_conversation(self, user_id, participant_id) -> ConversationSummary:
        """Permission-checked summary for opening a thread with ``participant_id``."""
        user_oid = to_object_id(user_id, 'userId')
        participant_oid = to_object_id(participant_id, 'participantId')
        if user_oid == participant_oid:
            raise ValidationError('You cannot start a conversation with yourself', {'participantId': 'must differ from your own id'})

        with store_errors('start the conversation'):
            user = self._require_sender(user_oid)
            participant = self._active_user(participant_oid, 'Participant')
            if not can_message(user_oid, participant_oid, user.get('role'), participant.get('role'), self.projects):
                raise ForbiddenError('You are not allowed to message this user')
            latest = self.messages.latest_between(user_oid, participant_oid)
            unread = self.messages.count_unread_from(user_oid, participant_oid) if latest else 0

        summary = ConversationSummary(participant=participant, unread_count=unread)
        if latest:
            summary.last_message = latest.get('content', '')
            summary.last_message_time = latest.get('createdAt')
            summary.last_message_id = latest.get('_id')
            summary.project_id = latest.get('projectId')
        return summary

    def stats(self, user_id) -> Tuple[Dict[str, Any], bool]:
        """Return (stats, degraded). Store failures yield zeroed stats with degraded=True."""
        user_oid = to_object_id(user_id, 'userId')
        now = self.clock()
        try:
            latest = self.messages.latest_for_participant(user_oid)
            data = {
                'unreadCount': self.messages.count_unread_for(user_oid),
                'totalMessages': self.messages.count_for_participant(user_oid),
                'totalConversations': len(self.messages.counterpart_ids(user_oid)),
                'messagesThisWeek': self.messages.count_for_participant(user_oid, since=start_of_week(now)),
                'messagesThisMonth': self.messages.count_for_participant(user_oid, since=start_of_month(now)),
                'lastMessageTime': latest.get('createdAt') if latest else None,
            }
            return data, False
        except PyMongoError as e:
            logger.warning("Message stats degraded for %s: %s", user_oid, e)
            return {
                'unreadCount': 0,
                'totalMessages': 0,
                'totalConversations': 0,
                'messagesThisWeek': 0,
                'messagesThisMonth': 0,
                'lastMessageTime': None,
            }, True


# Singleton instance
_messaging_service = None


def get_messaging_service() -> MessagingService:
    """Get singleton messaging service instance."""
    global _messaging_service
    if _messaging_service is None:
        from relay_server.notification.bridge import get_notification_bridge
        from relay_server.websocket.event_emitter import get_realtime_publisher
        _messaging_service = MessagingService(listeners=[get_realtime_publisher(), get_notification_bridge()])
    return _messaging_service


def reset_messaging_service():
    global _messaging_service
    _messaging_service = None
