"""Messaging module.

This module provides:
- The permission rules deciding who may message whom
- MessagingService: send, paged history, read receipts, reactions, soft delete
- ConversationDeriver: conversation list derived from the message log
- PresenceTracker: last-activity based online flags
- TypingBroadcaster: ephemeral typing signals
"""

from relay_server.messaging.models import (
    Attachment, ConversationSummary, Message, MessageType
)
from relay_server.messaging.permissions import available_contacts, can_message
from relay_server.messaging.service import MessagingService, get_messaging_service
from relay_server.messaging.conversations import ConversationDeriver, get_conversation_deriver
from relay_server.messaging.presence import PresenceTracker, get_presence_tracker
from relay_server.messaging.typing_signals import TypingBroadcaster, get_typing_broadcaster

__all__ = [
    'Attachment', 'ConversationSummary', 'Message', 'MessageType',
    'available_contacts', 'can_message',
    'MessagingService', 'get_messaging_service',
    'ConversationDeriver', 'get_conversation_deriver',
    'PresenceTracker', 'get_presence_tracker',
    'TypingBroadcaster', 'get_typing_broadcaster',
]
