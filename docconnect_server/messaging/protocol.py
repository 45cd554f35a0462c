"""Client to server realtime protocol.

The wire format stays string-keyed JSON (Socket.IO event name + payload).
Internally every inbound event is parsed into exactly one of the classes
below, and the gateway dispatches on the class. EVENT_TYPES is the closed
set of events the server accepts.
"""
from typing import Any, Dict, List, Optional

from docconnect_server.exception import ValidationFailedError


def _conversation_id(payload) -> str:
    """Conversation events accept either the bare id or {"conversationId": id}."""
    if isinstance(payload, dict):
        payload = payload.get('conversationId')
    if not isinstance(payload, str) or not payload:
        raise ValidationFailedError('conversationId is required')
    return payload


def _require_dict(payload, event: str) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValidationFailedError(f'{event} expects an object payload')
    return payload


def _message_ids(payload: Dict[str, Any]) -> List[str]:
    ids = payload.get('messageIds')
    if not isinstance(ids, list) or not ids:
        raise ValidationFailedError('messageIds must be a non-empty array')
    return [str(i) for i in ids]


class InboundEvent:
    """Base for parsed client events."""
    name = None
    action = None

    @classmethod
    def from_payload(cls, payload) -> 'InboundEvent':
        return cls()

    def __eq__(self, other):
        return type(self) is type(other) and vars(self) == vars(other)

    def __repr__(self):
        return f"{type(self).__name__}({vars(self)})"


class JoinConversation(InboundEvent):
    name = 'join_conversation'
    action = 'join conversation'

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id

    @classmethod
    def from_payload(cls, payload):
        return cls(_conversation_id(payload))


class LeaveConversation(JoinConversation):
    name = 'leave_conversation'
    action = 'leave conversation'


class TypingStart(JoinConversation):
    name = 'typing_start'
    action = 'send typing indicator'


class TypingStop(JoinConversation):
    name = 'typing_stop'
    action = 'send typing indicator'


class SendMessage(InboundEvent):
    name = 'send_message'
    action = 'send message'

    def __init__(self, conversation_id: str, message: Dict[str, Any]):
        self.conversation_id = conversation_id
        self.message = message

    @classmethod
    def from_payload(cls, payload):
        payload = _require_dict(payload, cls.name)
        fields = ('content', 'messageType', 'fileUrl', 'fileName', 'fileSize', 'replyTo')
        return cls(_conversation_id(payload), {k: payload[k] for k in fields if k in payload})


class MarkAsDelivered(InboundEvent):
    name = 'mark_as_delivered'
    action = 'mark messages as delivered'

    def __init__(self, message_ids: List[str], conversation_id: Optional[str] = None):
        self.message_ids = message_ids
        self.conversation_id = conversation_id

    @classmethod
    def from_payload(cls, payload):
        payload = _require_dict(payload, cls.name)
        return cls(_message_ids(payload), payload.get('conversationId'))


class MarkAsRead(MarkAsDelivered):
    name = 'mark_as_read'
    action = 'mark messages as read'


class EditMessage(InboundEvent):
    name = 'edit_message'
    action = 'edit message'

    def __init__(self, message_id: str, content: Any):
        self.message_id = message_id
        self.content = content

    @classmethod
    def from_payload(cls, payload):
        payload = _require_dict(payload, cls.name)
        if not payload.get('messageId'):
            raise ValidationFailedError('messageId is required')
        return cls(str(payload['messageId']), payload.get('content'))


class DeleteMessage(InboundEvent):
    name = 'delete_message'
    action = 'delete message'

    def __init__(self, message_id: str):
        self.message_id = message_id

    @classmethod
    def from_payload(cls, payload):
        payload = _require_dict(payload, cls.name)
        if not payload.get('messageId'):
            raise ValidationFailedError('messageId is required')
        return cls(str(payload['messageId']))


class UpdateStatus(InboundEvent):
    name = 'update_status'
    action = 'update status'

    def __init__(self, status: str):
        self.status = status

    @classmethod
    def from_payload(cls, payload):
        if isinstance(payload, dict):
            payload = payload.get('status')
        if not isinstance(payload, str) or not payload:
            raise ValidationFailedError('status is required')
        return cls(payload)


class UserActivity(InboundEvent):
    name = 'user_activity'
    action = 'record activity'


class Ping(InboundEvent):
    name = 'ping'
    action = 'ping'


class GetNotifications(InboundEvent):
    name = 'get_notifications'
    action = 'fetch notifications'

    def __init__(self, page: int = 1, limit: int = 20, read: Optional[bool] = None):
        self.page = page
        self.limit = limit
        self.read = read

    @classmethod
    def from_payload(cls, payload):
        payload = payload if isinstance(payload, dict) else {}
        page, limit = payload.get('page', 1), payload.get('limit', 20)
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            raise ValidationFailedError('page must be a positive integer')
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= 100:
            raise ValidationFailedError('limit must be between 1 and 100')
        read = payload.get('read')
        if read is not None and not isinstance(read, bool):
            raise ValidationFailedError('read must be a boolean')
        return cls(page, limit, read)


class MarkNotificationRead(InboundEvent):
    name = 'mark_notification_read'
    action = 'mark notification as read'

    def __init__(self, notification_id: str):
        self.notification_id = notification_id

    @classmethod
    def from_payload(cls, payload):
        if isinstance(payload, dict):
            payload = payload.get('notificationId')
        if not isinstance(payload, str) or not payload:
            raise ValidationFailedError('notificationId is required')
        return cls(payload)


class DeleteNotification(MarkNotificationRead):
    name = 'delete_notification'
    action = 'delete notification'


class MarkAllNotificationsRead(InboundEvent):
    name = 'mark_all_read'
    action = 'mark all notifications as read'


EVENT_TYPES = {cls.name: cls for cls in (
    JoinConversation, LeaveConversation, SendMessage, TypingStart, TypingStop,
    MarkAsDelivered, MarkAsRead, EditMessage, DeleteMessage,
    UpdateStatus, UserActivity, Ping,
    GetNotifications, MarkNotificationRead, MarkAllNotificationsRead, DeleteNotification,
)}


def parse_event(name: str, payload=None) -> InboundEvent:
    """Parse a raw Socket.IO event into its protocol class."""
    event_cls = EVENT_TYPES.get(name)
    if event_cls is None:
        raise ValidationFailedError(f"Unknown event '{name}'")
    return event_cls.from_payload(payload)
