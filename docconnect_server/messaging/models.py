"""Messaging data models for two-party doctor conversations.

Collections:
- conversations: two-participant threads with last message cache and unread counters
- chat_messages: individual messages with sent -> delivered -> read status
- notifications: persisted notification records
"""
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum

from bson import ObjectId

from docconnect_server.exception import ValidationFailedError, InvalidOperationError
from docconnect_server.utils.helpers import normalize_doc
from docconnect_server.utils.time_utils import utc_now, to_iso


class MessageType(str, Enum):
    TEXT = "text"
    FILE = "file"
    SYSTEM = "system"


class MessageStatus(str, Enum):
    SENT = "sent"            # Persisted, recipient has not confirmed
    DELIVERED = "delivered"  # Reached a live connection of the recipient
    READ = "read"            # Viewed by the recipient


# Position of each status along the delivery state machine
STATUS_RANK = {
    MessageStatus.SENT.value: 0,
    MessageStatus.DELIVERED.value: 1,
    MessageStatus.READ.value: 2,
}


class PresenceStatus(str, Enum):
    ONLINE = "online"
    AWAY = "away"
    OFFLINE = "offline"

    @classmethod
    def parse(cls, value) -> 'PresenceStatus':
        try:
            return cls(value)
        except ValueError:
            raise ValidationFailedError(f"Invalid status '{value}'. Must be one of: online, away, offline")


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def participant_key(user_a: str, user_b: str) -> str:
    """Order-independent key for the unordered participant pair."""
    first, second = sorted([user_a, user_b])
    return f"{first}|{second}"


def preview_text(message: Dict[str, Any]) -> Optional[str]:
    """Short text for a serialized message, as shown in notifications."""
    if message.get('messageType') == MessageType.FILE.value:
        return f"📎 {message.get('fileName')}"
    return message.get('content')


def _iso(value):
    return to_iso(value) if isinstance(value, datetime) else value


def _str_id(value):
    return str(value) if value is not None else None


class Message:
    """Chat message document structure."""

    def __init__(
        self,
        conversation_id: ObjectId,
        sender: str,
        recipient: str,
        message_type: MessageType = MessageType.TEXT,
        content: Optional[str] = None,
        file_url: Optional[str] = None,
        file_name: Optional[str] = None,
        file_size: Optional[int] = None,
        reply_to: Optional[ObjectId] = None,
        status: MessageStatus = MessageStatus.SENT,
        seq: Optional[int] = None,
        message_id: Optional[ObjectId] = None,
        delivered_at: Optional[datetime] = None,
        read_at: Optional[datetime] = None,
        edited_at: Optional[datetime] = None,
        deleted_by: Optional[List[str]] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None
    ):
        self.message_id = message_id or ObjectId()
        self.conversation_id = conversation_id
        self.sender = sender
        self.recipient = recipient
        self.message_type = MessageType(message_type)
        self.content = content
        self.file_url = file_url
        self.file_name = file_name
        self.file_size = file_size
        self.reply_to = reply_to
        self.status = MessageStatus(status)
        self.seq = seq
        self.delivered_at = delivered_at
        self.read_at = read_at
        self.edited_at = edited_at
        self.deleted_by = deleted_by or []
        self.created_at = created_at or utc_now()
        self.updated_at = updated_at or self.created_at

    @staticmethod
    def validate_payload(payload: Dict[str, Any], max_length: int = 5000) -> Dict[str, Any]:
        """Validate the type-specific fields of a new message.

        Returns the normalized fields (message_type, content, file_*).
        Text and system messages need content; file messages need url, name and size.
        """
        raw_type = payload.get('messageType') or MessageType.TEXT.value
        try:
            message_type = MessageType(raw_type)
        except ValueError:
            raise InvalidOperationError(f"Unsupported message type '{raw_type}'")

        fields = {'message_type': message_type, 'content': None,
                  'file_url': None, 'file_name': None, 'file_size': None}
        if message_type == MessageType.FILE:
            file_url = payload.get('fileUrl')
            file_name = payload.get('fileName')
            file_size = payload.get('fileSize')
            if not file_url or not file_name or file_size is None:
                raise InvalidOperationError('File messages require fileUrl, fileName and fileSize')
            if isinstance(file_size, bool) or not isinstance(file_size, (int, float)) or file_size < 0:
                raise ValidationFailedError('fileSize must be a non-negative number')
            fields.update(file_url=file_url, file_name=file_name, file_size=int(file_size))
            # Optional caption
            if isinstance(payload.get('content'), str) and payload['content'].strip():
                fields['content'] = Message.validate_content(payload['content'], max_length)
        else:
            fields['content'] = Message.validate_content(payload.get('content'), max_length)
        return fields

    @staticmethod
    def validate_content(content, max_length: int = 5000) -> str:
        if not isinstance(content, str) or not content.strip():
            raise ValidationFailedError('Message content is required')
        content = content.strip()
        if len(content) > max_length:
            raise ValidationFailedError(f'Message content cannot exceed {max_length} characters')
        return content

    def preview(self) -> str:
        """Content snapshot stored as the conversation's last message."""
        if self.message_type == MessageType.FILE:
            return f"📎 {self.file_name}"
        return self.content

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            '_id': self.message_id,
            'conversation_id': self.conversation_id,
            'sender': self.sender,
            'recipient': self.recipient,
            'content': self.content,
            'message_type': self.message_type.value,
            'file_url': self.file_url,
            'file_name': self.file_name,
            'file_size': self.file_size,
            'status': self.status.value,
            'delivered_at': self.delivered_at,
            'read_at': self.read_at,
            'deleted_by': self.deleted_by,
            'edited_at': self.edited_at,
            'reply_to': self.reply_to,
            'seq': self.seq,
            'created_at': self.created_at,
            'updated_at': self.updated_at
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Message':
        return cls(
            message_id=doc.get('_id'),
            conversation_id=doc.get('conversation_id'),
            sender=doc.get('sender'),
            recipient=doc.get('recipient'),
            message_type=doc.get('message_type', MessageType.TEXT.value),
            content=doc.get('content'),
            file_url=doc.get('file_url'),
            file_name=doc.get('file_name'),
            file_size=doc.get('file_size'),
            reply_to=doc.get('reply_to'),
            status=doc.get('status', MessageStatus.SENT.value),
            seq=doc.get('seq'),
            delivered_at=doc.get('delivered_at'),
            read_at=doc.get('read_at'),
            edited_at=doc.get('edited_at'),
            deleted_by=doc.get('deleted_by', []),
            created_at=doc.get('created_at'),
            updated_at=doc.get('updated_at')
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': str(self.message_id),
            'conversationId': _str_id(self.conversation_id),
            'sender': self.sender,
            'recipient': self.recipient,
            'content': self.content,
            'messageType': self.message_type.value,
            'fileUrl': self.file_url,
            'fileName': self.file_name,
            'fileSize': self.file_size,
            'status': self.status.value,
            'deliveredAt': _iso(self.delivered_at),
            'readAt': _iso(self.read_at),
            'editedAt': _iso(self.edited_at),
            'deletedBy': list(self.deleted_by),
            'replyTo': _str_id(self.reply_to),
            'seq': self.seq,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }


class Conversation:
    """Two-party conversation document structure."""

    def __init__(
        self,
        participants: List[str],
        related_to: Optional[Dict[str, Any]] = None,
        conversation_id: Optional[ObjectId] = None,
        last_message: Optional[Dict[str, Any]] = None,
        unread_count: Optional[Dict[str, int]] = None,
        muted_by: Optional[List[str]] = None,
        archived_by: Optional[List[str]] = None,
        message_seq: int = 0,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None
    ):
        self.conversation_id = conversation_id
        self.participants = sorted(participants)
        self.related_to = related_to or {'type': 'general'}
        self.last_message = last_message
        self.unread_count = unread_count if unread_count is not None else {p: 0 for p in self.participants}
        self.muted_by = muted_by or []
        self.archived_by = archived_by or []
        self.message_seq = message_seq
        self.created_at = created_at or utc_now()
        self.updated_at = updated_at or self.created_at

    @property
    def participant_key(self) -> str:
        return participant_key(*self.participants)

    def other_participant(self, user_key: str) -> Optional[str]:
        for participant in self.participants:
            if participant != user_key:
                return participant
        return None

    def to_db_doc(self) -> Dict[str, Any]:
        """Insert document; _id is left to the database."""
        doc = {
            'participants': self.participants,
            'participant_key': self.participant_key,
            'related_to': self.related_to,
            'last_message': self.last_message,
            'unread_count': self.unread_count,
            'muted_by': self.muted_by,
            'archived_by': self.archived_by,
            'message_seq': self.message_seq,
            'created_at': self.created_at,
            'updated_at': self.updated_at
        }
        if self.conversation_id is not None:
            doc['_id'] = self.conversation_id
        return doc

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Conversation':
        return cls(
            conversation_id=doc.get('_id'),
            participants=doc.get('participants', []),
            related_to=doc.get('related_to'),
            last_message=doc.get('last_message'),
            unread_count=doc.get('unread_count', {}),
            muted_by=doc.get('muted_by', []),
            archived_by=doc.get('archived_by', []),
            message_seq=doc.get('message_seq', 0),
            created_at=doc.get('created_at'),
            updated_at=doc.get('updated_at')
        )

    def to_dict_for(self, user_key: str, other_profile: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Conversation as seen by one participant: flags and counters resolved for that user only."""
        last_message = None
        if self.last_message:
            last_message = {
                'messageId': _str_id(self.last_message.get('message_id')),
                'content': self.last_message.get('content'),
                'sender': self.last_message.get('sender'),
                'messageType': self.last_message.get('message_type'),
                'timestamp': _iso(self.last_message.get('timestamp')),
            }
        related_to = dict(self.related_to or {})
        if related_to.get('id') is not None:
            related_to['id'] = str(related_to['id'])
        return {
            'id': _str_id(self.conversation_id),
            'participants': self.participants,
            'otherParticipant': other_profile,
            'lastMessage': last_message,
            'unreadCount': max(0, int(self.unread_count.get(user_key, 0))),
            'isMuted': user_key in self.muted_by,
            'isArchived': user_key in self.archived_by,
            'relatedTo': related_to,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }


class Notification:
    """Persisted notification record."""

    def __init__(
        self,
        recipient: str,
        notification_type: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        action_url: Optional[str] = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        read: bool = False,
        read_at: Optional[datetime] = None,
        notification_id: Optional[ObjectId] = None,
        created_at: Optional[datetime] = None
    ):
        self.notification_id = notification_id or ObjectId()
        self.recipient = recipient
        self.notification_type = notification_type
        self.title = title
        self.message = message
        self.data = data or {}
        self.action_url = action_url
        self.priority = NotificationPriority(priority)
        self.read = read
        self.read_at = read_at
        self.created_at = created_at or utc_now()

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            '_id': self.notification_id,
            'recipient': self.recipient,
            'type': self.notification_type,
            'title': self.title,
            'message': self.message,
            'data': self.data,
            'action_url': self.action_url,
            'priority': self.priority.value,
            'read': self.read,
            'read_at': self.read_at,
            'created_at': self.created_at
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Notification':
        return cls(
            notification_id=doc.get('_id'),
            recipient=doc.get('recipient'),
            notification_type=doc.get('type'),
            title=doc.get('title'),
            message=doc.get('message'),
            data=doc.get('data', {}),
            action_url=doc.get('action_url'),
            priority=doc.get('priority', NotificationPriority.MEDIUM.value),
            read=doc.get('read', False),
            read_at=doc.get('read_at'),
            created_at=doc.get('created_at')
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': str(self.notification_id),
            'recipient': self.recipient,
            'type': self.notification_type,
            'title': self.title,
            'message': self.message,
            'data': normalize_doc(self.data),
            'actionUrl': self.action_url,
            'priority': self.priority.value,
            'read': self.read,
            'readAt': _iso(self.read_at),
            'createdAt': _iso(self.created_at)
        }
