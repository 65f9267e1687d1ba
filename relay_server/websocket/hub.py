"""Centralized WebSocket Hub.

Authenticates Socket.IO connections, places each one in its user's personal
room, manages project room membership and delegates chat events to the
ChatHandler. The only in-process state is the connection bookkeeping below.
"""
import logging
import threading
from typing import Dict, Any, Optional, Set

from flask import Flask, request
from flask_socketio import SocketIO, emit, join_room, leave_room

from relay_server.exception.UnauthorizedError import UnauthorizedError
from relay_server.messaging.presence import get_presence_tracker
from relay_server.repository.mongo_helper import MongoRepositorySingleton
from relay_server.security.authentication import AuthSecurity
from relay_server.security.roles import Role
from relay_server.utils.time_utils import to_iso, utc_now
from relay_server.utils.validation import is_object_id, to_object_id
from relay_server.websocket.event_emitter import EventEmitter, project_room, set_socketio, user_room

logger = logging.getLogger(__name__)


class WebSocketHub:
    """Centralized WebSocket Hub for real-time communication."""

    def __init__(self, socketio: SocketIO = None):
        self.socketio = socketio
        # sid -> {user_id, role, name, rooms}
        self.connected_users: Dict[str, Dict[str, Any]] = {}
        # user_id -> set of sids
        self.user_sockets: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()
        self._initialized = False
        self._chat_handler = None

    def init_app(self, app: Flask, socketio: SocketIO):
        """Initialize the WebSocket hub."""
        logger.debug("WS_HUB: init app=%s, mode=%s", app.name, getattr(socketio, 'async_mode', '?'))

        self.socketio = socketio
        self.app = app
        set_socketio(socketio)

        self._register_handlers()
        self._init_chat_handler()

        self._initialized = True
        logger.debug("WS_HUB: initialized")

    def _init_chat_handler(self):
        from relay_server.websocket.handlers.chat_handler import init_chat_handler
        self._chat_handler = init_chat_handler(self.socketio, self)

    # =========================================================================
    # Connection bookkeeping
    # =========================================================================

    def _register_connection(self, sid: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        user_id = str(payload['user_id'])
        info = {
            'user_id': user_id,
            'role': payload.get('role'),
            'name': payload.get('name'),
            'rooms': {user_room(user_id)},
            'connected_at': to_iso(utc_now()),
        }
        with self._lock:
            self.connected_users[sid] = info
            self.user_sockets.setdefault(user_id, set()).add(sid)
        return info

    def _drop_connection(self, sid: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            info = self.connected_users.pop(sid, None)
            if info:
                sockets = self.user_sockets.get(info['user_id'])
                if sockets is not None:
                    sockets.discard(sid)
                    if not sockets:
                        del self.user_sockets[info['user_id']]
        return info

    def get_user(self, sid: str = None) -> Optional[Dict[str, Any]]:
        """Get user info for a socket (defaults to the current request's sid)."""
        sid = sid or request.sid
        with self._lock:
            return self.connected_users.get(sid)

    def joined_rooms(self, sid: str) -> Set[str]:
        with self._lock:
            info = self.connected_users.get(sid)
            return set(info['rooms']) if info else set()

    def is_connected(self, user_id) -> bool:
        with self._lock:
            return bool(self.user_sockets.get(str(user_id)))

    def _authenticate(self, token: str) -> Optional[Dict]:
        """Authenticate WebSocket connection."""
        if not token:
            return None
        try:
            payload = AuthSecurity.decode_token(token)
        except UnauthorizedError as e:
            logger.debug("WS auth error: %s", e)
            return None
        if not is_object_id(payload.get('user_id')):
            return None
        return payload

    @staticmethod
    def _token_from_request(auth) -> str:
        token = None
        if auth and isinstance(auth, dict):
            token = auth.get('token')
        if not token:
            header = request.headers.get('Authorization', '')
            if header.startswith('Bearer '):
                token = header.split(' ', 1)[1]
        if not token:
            token = request.args.get('token', '')
        return token

    def _can_join_project(self, user: Dict[str, Any], project_id) -> bool:
        project = MongoRepositorySingleton.get_instance().project.get_by_id(project_id)
        if not project:
            return False
        if Role.is_owner_admin(user.get('role')):
            return True
        return MongoRepositorySingleton.get_instance().project.is_member(project, to_object_id(user['user_id']))

    # =========================================================================
    # Handlers
    # =========================================================================

    def _register_handlers(self):
        """Register connection, room and ping handlers."""

        @self.socketio.on_error_default
        def default_error_handler(e):
            logger.exception("WS error: %s", e)
            emit('error', {'code': 'SERVER_ERROR', 'message': 'Unexpected error'})

        @self.socketio.on('connect')
        def handle_connect(auth=None):
            """Authenticate and join the personal room; returning False refuses the connection."""
            sid = request.sid
            payload = self._authenticate(self._token_from_request(auth))
            if not payload:
                logger.warning("WS auth failed: sid=%s", sid)
                return False

            info = self._register_connection(sid, payload)
            join_room(user_room(info['user_id']))
            get_presence_tracker().touch(info['user_id'])
            logger.info("WS connected: user=%s, sid=%s", info['user_id'], sid)

            emit('connected', {
                'message': 'Connected',
                'userId': info['user_id'],
                'socketId': sid,
            })
            return True

        @self.socketio.on('disconnect')
        def handle_disconnect(*args):
            """Room membership is the only per-connection state to clean up."""
            info = self._drop_connection(request.sid)
            if info:
                logger.debug("WS disconnected: user=%s, sid=%s", info['user_id'], request.sid)

        @self.socketio.on('project:join')
        def handle_project_join(data=None):
            user = self.get_user()
            if not user:
                emit('error', {'code': 'UNAUTHORIZED', 'message': 'Not authenticated'})
                return
            project_id = data.get('projectId') if isinstance(data, dict) else None
            if not is_object_id(project_id):
                emit('error', {'code': 'INVALID_DATA', 'message': 'projectId is required'})
                return
            # Room names use the canonical lowercase id, as RealtimePublisher does
            project_id = to_object_id(project_id)
            if not self._can_join_project(user, project_id):
                emit('error', {'code': 'FORBIDDEN', 'message': 'Not a member of this project', 'projectId': str(project_id)})
                return

            room = project_room(project_id)
            join_room(room)
            with self._lock:
                user['rooms'].add(room)
            get_presence_tracker().touch(user['user_id'])
            emit(EventEmitter.PROJECT_JOINED, {'projectId': str(project_id)})

        @self.socketio.on('project:leave')
        def handle_project_leave(data=None):
            user = self.get_user()
            project_id = data.get('projectId') if isinstance(data, dict) else None
            if not user or not is_object_id(project_id):
                return
            project_id = to_object_id(project_id)
            room = project_room(project_id)
            leave_room(room)
            with self._lock:
                user['rooms'].discard(room)
            emit(EventEmitter.PROJECT_LEFT, {'projectId': str(project_id)})

        @self.socketio.on('ping')
        def handle_ping(data=None):
            user = self.get_user()
            if user:
                get_presence_tracker().touch(user['user_id'])
            emit('pong', {'timestamp': to_iso(utc_now())})


# Singleton instance
_hub_instance: Optional[WebSocketHub] = None


def get_websocket_hub() -> WebSocketHub:
    """Get WebSocket hub singleton."""
    global _hub_instance
    if _hub_instance is None:
        _hub_instance = WebSocketHub()
    return _hub_instance


def init_websocket_hub(app: Flask, socketio: SocketIO) -> WebSocketHub:
    """Initialize a fresh WebSocket hub bound to ``socketio``."""
    global _hub_instance
    _hub_instance = WebSocketHub()
    _hub_instance.init_app(app, socketio)
    return _hub_instance
