"""WebSocket module for real-time communication.

This module provides:
- Centralized WebSocket Hub (authentication, personal and project rooms)
- Event Emitter and the RealtimePublisher listener
- The chat event handler
"""

from relay_server.websocket.event_emitter import EventEmitter
from relay_server.websocket.hub import WebSocketHub

__all__ = ['EventEmitter', 'WebSocketHub']
