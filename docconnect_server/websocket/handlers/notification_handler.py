"""WebSocket handler for a user's own notifications.

Replies go only to the requesting connection.
"""
import logging

from docconnect_server.messaging import protocol
from docconnect_server.websocket.event_emitter import EventEmitter

logger = logging.getLogger(__name__)


class NotificationHandler:

    def __init__(self, notification_service, emitter: EventEmitter):
        self.notifications = notification_service
        self.emitter = emitter

    def on_get_notifications(self, event: protocol.GetNotifications, user_key: str, sid: str):
        items, pagination = self.notifications.list_notifications(
            user_key, page=event.page, limit=event.limit, read=event.read
        )
        self.emitter.emit_to_sid(sid, EventEmitter.NOTIFICATIONS_LOADED, {
            'notifications': items,
            'pagination': pagination,
            'unreadCount': self.notifications.unread_count(user_key),
        })

    def on_mark_read(self, event: protocol.MarkNotificationRead, user_key: str, sid: str):
        self.notifications.mark_read(event.notification_id, user_key)
        self.emitter.emit_to_sid(sid, EventEmitter.NOTIFICATION_MARKED_READ,
                                 {'notificationId': event.notification_id})

    def on_mark_all_read(self, event: protocol.MarkAllNotificationsRead, user_key: str, sid: str):
        count = self.notifications.mark_all_read(user_key)
        logger.debug("Marked %d notification(s) read for %s", count, user_key)
        self.emitter.emit_to_sid(sid, EventEmitter.ALL_NOTIFICATIONS_MARKED_READ, {'modifiedCount': count})

    def on_delete(self, event: protocol.DeleteNotification, user_key: str, sid: str):
        self.notifications.delete(event.notification_id, user_key)
        self.emitter.emit_to_sid(sid, EventEmitter.NOTIFICATION_DELETED,
                                 {'notificationId': event.notification_id})
