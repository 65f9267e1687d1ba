"""Centralized Event Emitter for real-time Socket.IO delivery.

Every connection joins a personal room named after its user id, and may join
project rooms named ``project:<projectId>``. Events are emitted into rooms
only; delivery is best effort and failures are logged, never retried.

Usage:
    from relay_server.websocket.event_emitter import EventEmitter

    EventEmitter.emit_to_user(user_id, EventEmitter.MESSAGE_NEW, data)
    EventEmitter.emit_to_room(project_room(project_id), EventEmitter.TYPING_START, data, skip_sid=sid)
"""
import logging
from typing import Any, Dict, Optional

from relay_server.utils.time_utils import to_iso, utc_now

logger = logging.getLogger(__name__)

# Set when the WebSocket hub initializes
_socketio = None

PROJECT_ROOM_PREFIX = 'project:'


def set_socketio(socketio_instance):
    """Set the Socket.IO instance for the event emitter."""
    global _socketio
    _socketio = socketio_instance
    logger.debug("EventEmitter initialized with Socket.IO instance")


def user_room(user_id) -> str:
    return str(user_id)


def project_room(project_id) -> str:
    return f'{PROJECT_ROOM_PREFIX}{project_id}'


class EventEmitter:
    """Centralized event emitter for all real-time events."""

    # Chat Events
    MESSAGE_NEW = 'message:new'
    MESSAGE_SENT = 'message:sent'
    MESSAGE_ERROR = 'message:error'
    MESSAGE_READ = 'message:read'
    MESSAGE_DELETED = 'message:deleted'
    MESSAGE_REACTION = 'message:reaction'
    TYPING_START = 'typing:start'
    TYPING_STOP = 'typing:stop'

    # Room Events
    PROJECT_JOINED = 'project:joined'
    PROJECT_LEFT = 'project:left'

    @staticmethod
    def _with_metadata(event: str, data: Dict[str, Any], target: str, target_id: str) -> Dict[str, Any]:
        return {
            **data,
            '_event': event,
            '_timestamp': to_iso(utc_now()),
            '_target': target,
            '_target_id': target_id,
        }

    @staticmethod
    def emit_to_room(room_id: str, event: str, data: Dict[str, Any], skip_sid: Optional[str] = None) -> bool:
        """Emit event to every connection in a room.

        Args:
            room_id: The room identifier (user id or ``project:<id>``)
            event: Event name
            data: Event payload
            skip_sid: Optional socket id that should not receive the event

        Returns:
            True if the event was handed to Socket.IO
        """
        if not _socketio:
            logger.warning("EVENT_EMITTER: Socket.IO not initialized, %s to room %s dropped", event, room_id)
            return False

        target = 'project' if room_id.startswith(PROJECT_ROOM_PREFIX) else 'user'
        payload = EventEmitter._with_metadata(event, data, target, room_id)
        try:
            _socketio.emit(event, payload, to=room_id, skip_sid=skip_sid)
        except Exception as e:
            logger.error("EVENT_EMITTER: Error emitting %s to room %s: %s", event, room_id, e)
            return False
        logger.debug("EVENT_EMITTER: Emitted '%s' to room '%s'", event, room_id)
        return True

    @staticmethod
    def emit_to_user(user_id, event: str, data: Dict[str, Any], skip_sid: Optional[str] = None) -> bool:
        """Emit event to all connected devices of a user (their personal room)."""
        return EventEmitter.emit_to_room(user_room(user_id), event, data, skip_sid=skip_sid)

    @staticmethod
    def emit_to_project(project_id, event: str, data: Dict[str, Any], skip_sid: Optional[str] = None) -> bool:
        return EventEmitter.emit_to_room(project_room(project_id), event, data, skip_sid=skip_sid)


class RealtimePublisher:
    """Messaging-service listener that pushes persisted changes to rooms.

    It runs only after the store write succeeded, so a dropped event is
    recovered by the client's next list fetch.
    """

    def message_persisted(self, message):
        payload = {'message': message.to_dict()}
        EventEmitter.emit_to_user(message.recipient_id, EventEmitter.MESSAGE_NEW, payload)
        if message.project_id is not None:
            EventEmitter.emit_to_project(message.project_id, EventEmitter.MESSAGE_NEW, payload)

    def messages_read(self, reader_id, counterpart_id, count, read_at):
        EventEmitter.emit_to_user(counterpart_id, EventEmitter.MESSAGE_READ, {
            'readerId': str(reader_id),
            'participantId': str(reader_id),
            'count': count,
            'readAt': to_iso(read_at),
        })

    def message_read(self, message):
        EventEmitter.emit_to_user(message.sender_id, EventEmitter.MESSAGE_READ, {
            'readerId': str(message.recipient_id),
            'messageId': str(message.message_id),
            'count': 1,
            'readAt': to_iso(message.read_at),
        })

    def reaction_changed(self, message, user_id, emoji, action):
        payload = {
            'messageId': str(message.message_id),
            'userId': str(user_id),
            'emoji': emoji,
            'action': action,
            'reactions': message.to_dict()['reactions'],
        }
        EventEmitter.emit_to_user(message.counterpart_of(user_id), EventEmitter.MESSAGE_REACTION, payload)

    def message_deleted(self, message):
        EventEmitter.emit_to_user(message.recipient_id, EventEmitter.MESSAGE_DELETED, {
            'messageId': str(message.message_id),
            'deletedAt': to_iso(message.deleted_at),
        })


_publisher = None


def get_realtime_publisher() -> RealtimePublisher:
    global _publisher
    if _publisher is None:
        _publisher = RealtimePublisher()
    return _publisher
