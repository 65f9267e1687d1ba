"""Messaging data models.

Collections:
- messages: append-only message log (camelCase fields)

Conversations are never stored; ConversationSummary is built per request
from the message log.
"""
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum

from bson import ObjectId

from relay_server.exception.ValidationError import ValidationError
from relay_server.utils.time_utils import to_iso, utc_now


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    AUDIO = "audio"
    VIDEO = "video"

    @classmethod
    def parse(cls, value) -> 'MessageType':
        if value is None or value == '':
            return cls.TEXT
        try:
            return cls(str(value))
        except ValueError:
            allowed = ', '.join(t.value for t in cls)
            raise ValidationError('Invalid message type', {'messageType': f'messageType must be one of: {allowed}'})


def _str_id(value):
    return str(value) if value is not None else None


class Attachment:
    """Descriptor of a file already held by the file storage service."""

    def __init__(self, file_id: str, filename: str, url: str, mime_type: str, size: int):
        self.file_id = file_id
        self.filename = filename
        self.url = url
        self.mime_type = mime_type
        self.size = size

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> 'Attachment':
        if not isinstance(data, dict):
            raise ValidationError('Invalid attachment', {'attachments': 'each attachment must be an object'})
        missing = [f for f in ('fileId', 'filename', 'url') if not data.get(f)]
        if missing:
            raise ValidationError('Invalid attachment', {'attachments': f'missing fields: {", ".join(missing)}'})
        size = data.get('size', 0)
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise ValidationError('Invalid attachment', {'attachments': 'size must be a non-negative integer'})
        return cls(
            file_id=str(data['fileId']),
            filename=str(data['filename']),
            url=str(data['url']),
            mime_type=str(data.get('mimeType') or 'application/octet-stream'),
            size=size,
        )

    def to_doc(self) -> Dict[str, Any]:
        return {
            'fileId': self.file_id,
            'filename': self.filename,
            'url': self.url,
            'mimeType': self.mime_type,
            'size': self.size,
        }


class Message:
    """Message document structure."""

    def __init__(
        self,
        sender_id: ObjectId,
        recipient_id: ObjectId,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        project_id: Optional[ObjectId] = None,
        attachments: Optional[List[Dict[str, Any]]] = None,
        reply_to: Optional[ObjectId] = None,
        is_read: bool = False,
        read_at: Optional[datetime] = None,
        reactions: Optional[List[Dict[str, Any]]] = None,
        is_deleted: bool = False,
        deleted_at: Optional[datetime] = None,
        edited_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        message_id: Optional[ObjectId] = None,
    ):
        self.message_id = message_id
        self.sender_id = sender_id
        self.recipient_id = recipient_id
        self.project_id = project_id
        self.content = content
        self.message_type = MessageType(message_type)
        self.attachments = attachments or []
        self.reply_to = reply_to
        self.is_read = is_read
        self.read_at = read_at
        self.reactions = reactions or []
        self.is_deleted = is_deleted
        self.deleted_at = deleted_at
        self.edited_at = edited_at
        self.created_at = created_at or utc_now()
        self.updated_at = updated_at or self.created_at
        # Display projections ({_id, name, role}) filled in by the service
        self.sender: Optional[Dict[str, Any]] = None
        self.recipient: Optional[Dict[str, Any]] = None

    def counterpart_of(self, user_id: ObjectId) -> ObjectId:
        return self.recipient_id if self.sender_id == user_id else self.sender_id

    def involves(self, user_id: ObjectId) -> bool:
        return user_id in (self.sender_id, self.recipient_id)

    def to_db_doc(self) -> Dict[str, Any]:
        doc = {
            'senderId': self.sender_id,
            'recipientId': self.recipient_id,
            'projectId': self.project_id,
            'content': self.content,
            'messageType': self.message_type.value,
            'attachments': self.attachments,
            'replyTo': self.reply_to,
            'isRead': self.is_read,
            'readAt': self.read_at,
            'reactions': self.reactions,
            'isDeleted': self.is_deleted,
            'deletedAt': self.deleted_at,
            'editedAt': self.edited_at,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }
        if self.message_id is not None:
            doc['_id'] = self.message_id
        return doc

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Message':
        return cls(
            message_id=doc.get('_id'),
            sender_id=doc.get('senderId'),
            recipient_id=doc.get('recipientId'),
            project_id=doc.get('projectId'),
            content=doc.get('content', ''),
            message_type=doc.get('messageType') or MessageType.TEXT,
            attachments=doc.get('attachments', []),
            reply_to=doc.get('replyTo'),
            is_read=bool(doc.get('isRead', False)),
            read_at=doc.get('readAt'),
            reactions=doc.get('reactions', []),
            is_deleted=bool(doc.get('isDeleted', False)),
            deleted_at=doc.get('deletedAt'),
            edited_at=doc.get('editedAt'),
            created_at=doc.get('createdAt'),
            updated_at=doc.get('updatedAt'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            '_id': _str_id(self.message_id),
            'senderId': _str_id(self.sender_id),
            'recipientId': _str_id(self.recipient_id),
            'projectId': _str_id(self.project_id),
            'sender': _display(self.sender),
            'recipient': _display(self.recipient),
            'content': self.content,
            'messageType': self.message_type.value,
            'attachments': list(self.attachments),
            'replyTo': _str_id(self.reply_to),
            'isRead': self.is_read,
            'readAt': to_iso(self.read_at),
            'reactions': [
                {
                    'userId': _str_id(r.get('userId')),
                    'emoji': r.get('emoji'),
                    'createdAt': to_iso(r.get('createdAt')),
                }
                for r in self.reactions
            ],
            'isDeleted': self.is_deleted,
            'editedAt': to_iso(self.edited_at),
            'createdAt': to_iso(self.created_at),
            'updatedAt': to_iso(self.updated_at),
        }


def _display(user: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not user:
        return None
    return {'_id': _str_id(user.get('_id')), 'name': user.get('name'), 'role': user.get('role')}


class ConversationSummary:
    """One row of a user's derived conversation list."""

    def __init__(
        self,
        participant: Dict[str, Any],
        last_message: str = '',
        last_message_time: Optional[datetime] = None,
        last_message_id: Optional[ObjectId] = None,
        unread_count: int = 0,
        project_id: Optional[ObjectId] = None,
        project_title: Optional[str] = None,
        is_online: bool = False,
    ):
        self.participant = participant
        self.last_message = last_message
        self.last_message_time = last_message_time
        self.last_message_id = last_message_id
        self.unread_count = unread_count
        self.project_id = project_id
        self.project_title = project_title
        self.is_online = is_online

    @property
    def participant_id(self) -> ObjectId:
        return self.participant['_id']

    @property
    def has_history(self) -> bool:
        return self.last_message_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'participantId': _str_id(self.participant_id),
            'participantName': self.participant.get('name'),
            'participantRole': self.participant.get('role'),
            'participantEmail': self.participant.get('email'),
            'participantAvatar': self.participant.get('avatar'),
            'lastMessage': self.last_message,
            'lastMessageTime': to_iso(self.last_message_time),
            'lastMessageId': _str_id(self.last_message_id),
            'unreadCount': self.unread_count,
            'projectId': _str_id(self.project_id),
            'projectTitle': self.project_title,
            'isOnline': self.is_online,
        }
