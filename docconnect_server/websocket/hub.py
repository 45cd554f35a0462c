"""Centralized WebSocket Hub.

Owns the connection lifecycle (authentication, personal room, presence,
offline queue replay) and dispatches every inbound event through the closed
protocol in docconnect_server.messaging.protocol.
"""
import logging
from typing import Dict, Any, Optional, Callable

from flask import Flask, request
from flask_socketio import SocketIO, ConnectionRefusedError, emit, join_room

from config import config

from docconnect_server.exception import MessagingError, UnauthorizedError
from docconnect_server.messaging import protocol
from docconnect_server.messaging.offline_queue import OfflineMessageQueue
from docconnect_server.messaging.presence import ConnectionRegistry, PresenceTracker
from docconnect_server.security.authentication import AuthSecurity, extract_socket_token
from docconnect_server.utils.time_utils import utc_now, to_iso
from docconnect_server.websocket.event_emitter import EventEmitter, user_room

logger = logging.getLogger(__name__)


class WebSocketHub:
    """Centralized WebSocket Hub for real-time communication."""

    def __init__(self, registry: ConnectionRegistry, offline_queue: OfflineMessageQueue):
        self.registry = registry
        self.offline_queue = offline_queue
        self.socketio: Optional[SocketIO] = None
        self.emitter: Optional[EventEmitter] = None
        self.presence: Optional[PresenceTracker] = None
        self.messaging = None
        self.notifications = None
        self._chat_handler = None
        self._notification_handler = None
        self._dispatch: Dict[type, Callable] = {}
        self._initialized = False

    def init_app(self, app: Flask, socketio: SocketIO, messaging_service, notification_service):
        """Initialize the WebSocket hub."""
        logger.debug("WS_HUB: init app=%s, mode=%s", app.name, getattr(socketio, 'async_mode', '?'))
        self.socketio = socketio
        self.messaging = messaging_service
        self.notifications = notification_service
        self.emitter = EventEmitter(socketio)
        self.presence = PresenceTracker(self.registry, messaging_service.users, self.emitter)
        notification_service.attach(self.presence, self.offline_queue, self.emitter)

        from docconnect_server.websocket.handlers.chat_handler import init_chat_handler
        from docconnect_server.websocket.handlers.notification_handler import NotificationHandler
        self._chat_handler = init_chat_handler(messaging_service, notification_service, self.presence, self.emitter)
        self._notification_handler = NotificationHandler(notification_service, self.emitter)

        self._dispatch = self._build_dispatch()
        self._register_handlers()
        self._initialized = True
        logger.debug("WS_HUB: initialized")

    def _build_dispatch(self) -> Dict[type, Callable]:
        chat = self._chat_handler
        notif = self._notification_handler
        dispatch = {
            protocol.JoinConversation: chat.on_join_conversation,
            protocol.LeaveConversation: chat.on_leave_conversation,
            protocol.SendMessage: chat.on_send_message,
            protocol.TypingStart: chat.on_typing,
            protocol.TypingStop: chat.on_typing,
            protocol.MarkAsDelivered: chat.on_mark_delivered,
            protocol.MarkAsRead: chat.on_mark_read,
            protocol.EditMessage: chat.on_edit_message,
            protocol.DeleteMessage: chat.on_delete_message,
            protocol.UpdateStatus: self._on_update_status,
            protocol.UserActivity: self._on_user_activity,
            protocol.Ping: self._on_ping,
            protocol.GetNotifications: notif.on_get_notifications,
            protocol.MarkNotificationRead: notif.on_mark_read,
            protocol.MarkAllNotificationsRead: notif.on_mark_all_read,
            protocol.DeleteNotification: notif.on_delete,
        }
        missing = set(protocol.EVENT_TYPES.values()) - set(dispatch)
        if missing:
            raise RuntimeError(f"No handler for events: {sorted(cls.name for cls in missing)}")
        return dispatch

    def _register_handlers(self):
        """Register WebSocket event handlers."""

        @self.socketio.on('connect')
        def handle_connect(auth=None):
            return self.on_connect(auth)

        @self.socketio.on('disconnect')
        def handle_disconnect(*args):
            self.on_disconnect(request.sid)

        for name in protocol.EVENT_TYPES:
            self.socketio.on(name)(self._make_event_handler(name))

    def _make_event_handler(self, name: str):
        def handle_event(payload=None):
            self.dispatch(name, payload, request.sid)
        handle_event.__name__ = f"handle_{name}"
        return handle_event

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def authenticate(self, token: str) -> Dict[str, Any]:
        """Resolve a handshake token to an active user record."""
        payload = AuthSecurity.decode_token(token)
        user = self.messaging.users.get_user(payload['user_key'])
        if not user:
            raise UnauthorizedError('User not found')
        if not self.messaging.users.is_active(user):
            raise UnauthorizedError('Account is not active')
        return user

    def on_connect(self, auth=None):
        sid = request.sid
        try:
            user = self.authenticate(extract_socket_token(auth, request))
        except UnauthorizedError as e:
            logger.warning("WS auth failed: sid=%s, reason=%s", sid, e.message)
            raise ConnectionRefusedError({'code': e.code, 'message': e.message})

        user_key = user['user_key']
        join_room(user_room(user_key))
        pending = []
        try:
            self.presence.connect(user_key, sid)
            emit(EventEmitter.CONNECTED, {'userKey': user_key, 'socketId': sid})
            pending = self.offline_queue.drain(user_key)
            while pending:
                emit(pending[0]['event'], pending[0]['data'])
                pending.pop(0)
        except Exception:
            # A refused handshake never fires disconnect, so undo the registration here
            logger.exception("WS connect setup failed: user=%s, sid=%s", user_key, sid)
            self.offline_queue.requeue(user_key, pending)
            self.presence.disconnect(sid)
            raise ConnectionRefusedError({'code': 'SERVER_ERROR', 'message': 'Connection setup failed'})
        return True

    def on_disconnect(self, sid: str):
        """Explicit disconnects and heartbeat timeouts both end up here."""
        self.presence.disconnect(sid)

    # =========================================================================
    # Dispatch
    # =========================================================================

    def dispatch(self, name: str, payload, sid: str):
        user_key = self.registry.user_for(sid)
        if not user_key:
            self.emitter.emit_to_sid(sid, EventEmitter.ERROR,
                                     {'code': 'AUTH_FAILED', 'message': 'Not authenticated'})
            return
        event_cls = protocol.EVENT_TYPES[name]
        try:
            event = protocol.parse_event(name, payload)
            self._dispatch[type(event)](event, user_key, sid)
        except MessagingError as e:
            logger.info("WS %s failed for %s: %s", name, user_key, e.message)
            self.emitter.emit_to_sid(sid, EventEmitter.ERROR, {'code': e.code, 'message': e.message, 'event': name})
        except Exception:
            logger.exception("WS %s crashed for %s", name, user_key)
            self.emitter.emit_to_sid(sid, EventEmitter.ERROR,
                                     {'code': 'SERVER_ERROR', 'message': f'Failed to {event_cls.action}', 'event': name})

    # =========================================================================
    # Presence and heartbeat events
    # =========================================================================

    def _on_update_status(self, event: protocol.UpdateStatus, user_key: str, sid: str):
        self.presence.set_status(user_key, event.status)

    def _on_user_activity(self, event: protocol.UserActivity, user_key: str, sid: str):
        self.presence.touch(user_key)

    def _on_ping(self, event: protocol.Ping, user_key: str, sid: str):
        self.emitter.emit_to_sid(sid, EventEmitter.PONG, {'timestamp': to_iso(utc_now())})

    def health(self) -> Dict[str, Any]:
        return {
            'connections': self.registry.connection_count(),
            'onlineUsers': len(self.registry.online_users()),
            'messageQueue': self.offline_queue.stats(),
        }


_hub: Optional[WebSocketHub] = None


def init_websocket_hub(app: Flask, socketio: SocketIO, messaging_service, notification_service,
                       registry: Optional[ConnectionRegistry] = None,
                       offline_queue: Optional[OfflineMessageQueue] = None) -> WebSocketHub:
    """Create the hub for this process and bind it to the app."""
    global _hub
    hub = WebSocketHub(registry or ConnectionRegistry(),
                       offline_queue or OfflineMessageQueue(config.OFFLINE_QUEUE_MAX_PER_USER))
    hub.init_app(app, socketio, messaging_service, notification_service)
    _hub = hub
    return hub


def get_websocket_hub() -> Optional[WebSocketHub]:
    return _hub
