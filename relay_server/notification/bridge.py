"""Bridge from persisted messages to the notification collection.

Each persisted message yields one ``message_received`` notification for its
recipient. The insert runs on the shared background pool so sending never
waits on it; a failed insert is logged and the message stays delivered.
"""
import logging
from typing import Any, Callable, Dict, Optional

from config import config
from relay_server.repository.mongo_helper import MongoRepositorySingleton
from relay_server.utils.threading_util.pool import submit_task
from relay_server.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = 'message_received'


class NotificationBridge:

    def __init__(self, repo=None, submit: Callable = submit_task, enabled: Optional[bool] = None):
        self._repo = repo
        self.submit = submit
        self.enabled = config.NOTIFICATIONS_ENABLED if enabled is None else enabled

    @property
    def repo(self):
        if self._repo is None:
            self._repo = MongoRepositorySingleton.get_instance().notification
        return self._repo

    @staticmethod
    def build_notification(message) -> Dict[str, Any]:
        sender_name = (message.sender or {}).get('name') or 'Someone'
        return {
            'recipient': message.recipient_id,
            'sender': message.sender_id,
            'type': NOTIFICATION_TYPE,
            'title': 'New Message',
            'message': f'{sender_name} sent you a message',
            'data': {
                'messageId': message.message_id,
                'projectId': message.project_id,
            },
            'isRead': False,
            'priority': 'medium',
            'category': 'info',
            'createdAt': utc_now(),
        }

    def create_notification(self, doc: Dict[str, Any]):
        notification_id = self.repo.create(doc)
        logger.debug("Notification %s created for %s", notification_id, doc['recipient'])
        return notification_id

    def message_persisted(self, message):
        """Listener hook called by MessagingService after a send is stored."""
        if not self.enabled:
            return None
        return self.submit(self.create_notification, self.build_notification(message))


_bridge = None


def get_notification_bridge() -> NotificationBridge:
    global _bridge
    if _bridge is None:
        _bridge = NotificationBridge()
    return _bridge


def reset_notification_bridge():
    global _bridge
    _bridge = None
