"""WebSocket Chat Handler.

Real-time counterpart of the REST messages API:
- message:send    persist through MessagingService, ack the sender with message:sent
- messages:read   bulk read receipt for one counterpart
- typing:start / typing:stop   relayed through the TypingBroadcaster

Data Consistency:
- Messages are stored in MongoDB before being broadcast
- Each message has a stable ``_id``; clients de-duplicate on it and match
  their optimistic copy through the echoed ``tempId``
- Failed sends are reported to the sender with message:error
"""
import logging
from typing import Dict, Any

from flask import request
from flask_socketio import emit

from relay_server.exception.ForbiddenError import ForbiddenError
from relay_server.exception.NotFoundError import NotFoundError
from relay_server.exception.ServiceUnavailableError import ServiceUnavailableError
from relay_server.exception.ValidationError import ValidationError
from relay_server.messaging.presence import get_presence_tracker
from relay_server.messaging.service import get_messaging_service
from relay_server.messaging.typing_signals import get_typing_broadcaster
from relay_server.utils.validation import is_object_id, to_object_id
from relay_server.websocket.event_emitter import EventEmitter

logger = logging.getLogger(__name__)

# Exception type -> error code sent to the client
ERROR_CODES = (
    (ValidationError, 'INVALID_DATA'),
    (ForbiddenError, 'FORBIDDEN'),
    (NotFoundError, 'NOT_FOUND'),
    (ServiceUnavailableError, 'SERVICE_UNAVAILABLE'),
)


def error_code_for(exc: Exception) -> str:
    for exc_type, code in ERROR_CODES:
        if isinstance(exc, exc_type):
            return code
    return 'SEND_FAILED'


class ChatHandler:
    """Handler for WebSocket chat events."""

    EVENT_MESSAGE_SEND = 'message:send'
    EVENT_MESSAGES_READ = 'messages:read'

    def __init__(self, socketio, hub):
        """Initialize chat handler.

        Args:
            socketio: Flask-SocketIO instance
            hub: WebSocketHub owning the connection bookkeeping
        """
        self.socketio = socketio
        self.hub = hub

    def _current_user(self):
        user = self.hub.get_user(request.sid)
        if user:
            get_presence_tracker().touch(user['user_id'])
        return user

    def register_handlers(self):
        """Register all chat WebSocket event handlers."""

        @self.socketio.on(self.EVENT_MESSAGE_SEND)
        def handle_send_message(data=None):
            """Handle sending a new message.

            Data:
                recipientId: str
                content: str
                projectId: str - optional project thread
                attachments: list - optional attachment descriptors
                replyTo: str - optional message id being replied to
                messageType: str - text, image, file, audio or video
                tempId: str - client-side temporary id, echoed back

            Response Events:
                - message:sent (to sender) - stored message plus tempId
                - message:new (to recipient / project room) - via RealtimePublisher
                - message:error (on failure)
            """
            data = data or {}
            if not isinstance(data, dict):
                emit(EventEmitter.MESSAGE_ERROR, {'code': 'INVALID_DATA', 'message': 'Payload must be an object', 'tempId': None})
                return
            temp_id = data.get('tempId')
            user = self._current_user()
            if not user:
                emit(EventEmitter.MESSAGE_ERROR, {'code': 'UNAUTHORIZED', 'message': 'Not authenticated', 'tempId': temp_id})
                return

            try:
                message = get_messaging_service().send(
                    user['user_id'],
                    data.get('recipientId'),
                    data.get('content'),
                    project_id=data.get('projectId'),
                    attachments=data.get('attachments'),
                    reply_to=data.get('replyTo'),
                    message_type=data.get('messageType'),
                )
            except (ValidationError, ForbiddenError, NotFoundError, ServiceUnavailableError) as e:
                logger.info("WS send rejected for %s: %s", user['user_id'], e)
                emit(EventEmitter.MESSAGE_ERROR, {'code': error_code_for(e), 'message': str(e), 'tempId': temp_id})
                return

            emit(EventEmitter.MESSAGE_SENT, {'message': message.to_dict(), 'tempId': temp_id})

        @self.socketio.on(self.EVENT_MESSAGES_READ)
        def handle_mark_read(data=None):
            """Mark everything from ``participantId`` as read for the current user."""
            data = data or {}
            if not isinstance(data, dict):
                emit('error', {'code': 'INVALID_DATA', 'message': 'Payload must be an object'})
                return
            user = self._current_user()
            if not user:
                emit('error', {'code': 'UNAUTHORIZED', 'message': 'Not authenticated'})
                return
            try:
                count = get_messaging_service().mark_read(user['user_id'], data.get('participantId'))
            except (ValidationError, ServiceUnavailableError) as e:
                emit('error', {'code': error_code_for(e), 'message': str(e)})
                return
            return {'success': True, 'markedCount': count}

        @self.socketio.on(EventEmitter.TYPING_START)
        def handle_typing_start(data=None):
            self._relay_typing(data or {}, True)

        @self.socketio.on(EventEmitter.TYPING_STOP)
        def handle_typing_stop(data=None):
            self._relay_typing(data or {}, False)

    def _relay_typing(self, data: Dict[str, Any], is_typing: bool):
        """Typing events carry no guarantee: invalid ones are dropped quietly."""
        user = self.hub.get_user(request.sid)
        if not user or not isinstance(data, dict):
            return
        recipient_id = data.get('recipientId')
        project_id = data.get('projectId')
        if project_id is not None and not is_object_id(project_id):
            return
        if project_id is None and not is_object_id(recipient_id):
            return
        get_typing_broadcaster().broadcast(
            {
                'user_id': to_object_id(user['user_id']),
                'role': user.get('role'),
                'name': user.get('name'),
            },
            is_typing,
            recipient_id=to_object_id(recipient_id) if project_id is None else None,
            project_id=to_object_id(project_id) if project_id is not None else None,
            sid=request.sid,
            joined_rooms=self.hub.joined_rooms(request.sid),
        )


# Singleton instance
_chat_handler = None


def init_chat_handler(socketio, hub) -> ChatHandler:
    """Initialize and register chat handler."""
    global _chat_handler
    _chat_handler = ChatHandler(socketio, hub)
    _chat_handler.register_handlers()
    logger.debug("Chat handler initialized")
    return _chat_handler


def get_chat_handler() -> ChatHandler:
    """Get chat handler instance."""
    return _chat_handler
