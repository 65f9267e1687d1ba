"""Ephemeral typing indicators.

Typing signals are relayed, never stored. Receivers clear the indicator on
their own after about a second without a new signal, so a lost event needs
no server-side cleanup.
"""
import logging
from typing import Optional

from relay_server.messaging.permissions import can_message
from relay_server.repository.mongo_helper import MongoRepositorySingleton
from relay_server.websocket.event_emitter import EventEmitter, project_room

logger = logging.getLogger(__name__)


class TypingBroadcaster:

    def __init__(self, repos=None, emitter=EventEmitter):
        self._repos = repos
        self.emitter = emitter

    @property
    def repos(self):
        if self._repos is None:
            self._repos = MongoRepositorySingleton.get_instance()
        return self._repos

    def broadcast(
        self,
        user: dict,
        is_typing: bool,
        recipient_id=None,
        project_id=None,
        sid: Optional[str] = None,
        joined_rooms=(),
    ) -> bool:
        """Relay a typing signal from ``user`` ({user_id, role, name}).

        Project signals go to ``project:<id>`` (excluding ``sid``) and require
        the connection to have joined that room. Direct signals go to the
        recipient's personal room and require messaging permission.
        """
        event = EventEmitter.TYPING_START if is_typing else EventEmitter.TYPING_STOP
        payload = {
            'userId': str(user['user_id']),
            'userName': user.get('name'),
            'isTyping': bool(is_typing),
        }

        if project_id is not None:
            room = project_room(project_id)
            if room not in joined_rooms:
                logger.debug("Typing from %s dropped: not in room %s", user['user_id'], room)
                return False
            payload['projectId'] = str(project_id)
            return self.emitter.emit_to_room(room, event, payload, skip_sid=sid)

        if recipient_id is None:
            return False

        recipient = self.repos.user.get_by_id(recipient_id, active_only=True)
        if not recipient:
            return False
        if not can_message(user['user_id'], recipient_id, user.get('role'), recipient.get('role'), self.repos.project):
            logger.debug("Typing from %s to %s dropped: not permitted", user['user_id'], recipient_id)
            return False
        payload['recipientId'] = str(recipient_id)
        return self.emitter.emit_to_user(recipient_id, event, payload)


_typing_broadcaster = None


def get_typing_broadcaster() -> TypingBroadcaster:
    global _typing_broadcaster
    if _typing_broadcaster is None:
        _typing_broadcaster = TypingBroadcaster()
    return _typing_broadcaster


def reset_typing_broadcaster():
    global _typing_broadcaster
    _typing_broadcaster = None
