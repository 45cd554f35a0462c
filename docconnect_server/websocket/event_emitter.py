"""Event emitter for real-time WebSocket communication.

Wraps the Socket.IO server with the broadcast groups used by messaging:
a personal room per user and a room per conversation.

Usage:
    emitter = EventEmitter(socketio)

    # Emit to every connection of a user
    emitter.emit_to_user(user_key, EventEmitter.NEW_NOTIFICATION, data)

    # Emit to everyone who joined a conversation
    emitter.emit_to_conversation(conversation_id, EventEmitter.NEW_MESSAGE, data)
"""
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


def user_room(user_key: str) -> str:
    return f"user:{user_key}"


def conversation_room(conversation_id) -> str:
    return f"conversation:{conversation_id}"


class EventEmitter:
    """Server to client events."""

    # Connection
    CONNECTED = 'connected'
    ERROR = 'error'
    PONG = 'pong'

    # Chat
    NEW_MESSAGE = 'new_message'
    MESSAGE_SENT = 'message_sent'
    MESSAGE_DELIVERED = 'message_delivered'
    MESSAGES_DELIVERED = 'messages_delivered'
    MESSAGES_READ = 'messages_read'
    MESSAGE_NOTIFICATION = 'message_notification'
    MESSAGE_EDITED = 'message_edited'
    MESSAGE_DELETED = 'message_deleted'
    USER_TYPING = 'user_typing'
    USER_STOPPED_TYPING = 'user_stopped_typing'

    # Presence
    USER_STATUS_CHANGED = 'user_status_changed'

    # Notifications
    NEW_NOTIFICATION = 'new_notification'
    NOTIFICATIONS_LOADED = 'notifications_loaded'
    NOTIFICATION_MARKED_READ = 'notification_marked_read'
    ALL_NOTIFICATIONS_MARKED_READ = 'all_notifications_marked_read'
    NOTIFICATION_DELETED = 'notification_deleted'

    def __init__(self, socketio, namespace: str = '/'):
        self.socketio = socketio
        self.namespace = namespace

    def emit_to_user(self, user_key: str, event: str, data: Any, skip_sid: Optional[str] = None) -> None:
        """Emit event to all connected devices of a specific user."""
        self.emit_to_room(user_room(user_key), event, data, skip_sid=skip_sid)

    def emit_to_conversation(self, conversation_id, event: str, data: Any, skip_sid: Optional[str] = None) -> None:
        self.emit_to_room(conversation_room(conversation_id), event, data, skip_sid=skip_sid)

    def emit_to_room(self, room: str, event: str, data: Any, skip_sid: Optional[str] = None) -> None:
        logger.debug("Emitting %s to %s", event, room)
        self.socketio.emit(event, data, to=room, skip_sid=skip_sid, namespace=self.namespace)

    def emit_to_sid(self, sid: str, event: str, data: Any) -> None:
        self.socketio.emit(event, data, to=sid, namespace=self.namespace)

    def broadcast(self, event: str, data: Any) -> None:
        """Emit to every connected client."""
        logger.debug("Broadcasting %s", event)
        self.socketio.emit(event, data, namespace=self.namespace)
