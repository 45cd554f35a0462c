"""WebSocket event handlers package."""

from docconnect_server.websocket.handlers.notification_handler import NotificationHandler
from docconnect_server.websocket.handlers.chat_handler import ChatHandler, init_chat_handler, get_chat_handler

__all__ = ['NotificationHandler', 'ChatHandler', 'init_chat_handler', 'get_chat_handler']
