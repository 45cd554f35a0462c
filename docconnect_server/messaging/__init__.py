"""Messaging core for doctor-to-doctor conversations.

This module provides:
- Two-party conversations with unread counters and mute/archive flags
- Messages with a sent -> delivered -> read status machine
- Presence tracking across multiple devices
- A bounded offline queue and notification fan-out
"""

from docconnect_server.messaging.models import (
    Message, Conversation, Notification,
    MessageType, MessageStatus, PresenceStatus, NotificationPriority
)
from docconnect_server.messaging.service import (
    MessagingService, get_messaging_service, reset_messaging_service
)
from docconnect_server.messaging.presence import ConnectionRegistry, PresenceTracker
from docconnect_server.messaging.offline_queue import OfflineMessageQueue
from docconnect_server.messaging.notifications import (
    NotificationService, get_notification_service, reset_notification_service
)

__all__ = [
    # Models
    'Message', 'Conversation', 'Notification',
    'MessageType', 'MessageStatus', 'PresenceStatus', 'NotificationPriority',
    # Service
    'MessagingService', 'get_messaging_service', 'reset_messaging_service',
    # Realtime state
    'ConnectionRegistry', 'PresenceTracker', 'OfflineMessageQueue',
    # Notifications
    'NotificationService', 'get_notification_service', 'reset_notification_service'
]
