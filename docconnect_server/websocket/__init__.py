"""WebSocket module for real-time communication.

This module provides:
- Centralized WebSocket Hub (authentication, presence, offline replay)
- Event Emitter for personal and conversation rooms
- Handlers for chat and notification events
"""

from docconnect_server.websocket.event_emitter import EventEmitter
from docconnect_server.websocket.hub import WebSocketHub, init_websocket_hub, get_websocket_hub

__all__ = ['EventEmitter', 'WebSocketHub', 'init_websocket_hub', 'get_websocket_hub']
