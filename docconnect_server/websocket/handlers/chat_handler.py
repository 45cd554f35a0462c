"""WebSocket Chat Handler.

Handles the real-time chat events once the hub has authenticated the
connection and parsed the event:
- Joining and leaving conversation rooms
- Sending messages (and the fan-out shared with the REST fallback)
- Typing indicators
- Delivery and read receipts
- Message edits and deletes

Data Consistency:
- Messages are stored in MongoDB before anything is broadcast
- Failed operations are reported to the client as an 'error' event
- Typing indicators are relayed only, never stored or queued
"""
import logging
from collections import defaultdict
from typing import Dict, Any, Optional, List

from flask_socketio import join_room, leave_room

from docconnect_server.messaging import protocol
from docconnect_server.messaging.models import Conversation, preview_text
from docconnect_server.utils.time_utils import utc_now, to_iso
from docconnect_server.websocket.event_emitter import EventEmitter, conversation_room

logger = logging.getLogger(__name__)


def _group_by_sender(messages: List[Dict[str, Any]]) -> Dict[tuple, List[str]]:
    grouped = defaultdict(list)
    for msg in messages:
        grouped[(msg['sender'], msg['conversationId'])].append(msg['id'])
    return grouped


class ChatHandler:
    """Handler for WebSocket chat events."""

    def __init__(self, messaging_service, notification_service, presence, emitter: EventEmitter):
        self.messaging = messaging_service
        self.notifications = notification_service
        self.presence = presence
        self.emitter = emitter

    # =========================================================================
    # Conversation rooms
    # =========================================================================

    def on_join_conversation(self, event: protocol.JoinConversation, user_key: str, sid: str):
        """Join the room, then mark the caller's pending messages read and tell the sender."""
        conv = self.messaging.require_participant(event.conversation_id, user_key)
        join_room(conversation_room(conv['_id']), sid=sid)
        logger.debug("User %s joined conversation %s", user_key, conv['_id'])

        read = self.messaging.mark_conversation_read(conv['_id'], user_key)
        if read:
            other = Conversation.from_doc(conv).other_participant(user_key)
            self.emitter.emit_to_user(other, EventEmitter.MESSAGES_READ, {
                'conversationId': str(conv['_id']),
                'messageIds': [m['id'] for m in read],
                'readBy': user_key,
                'readAt': to_iso(utc_now()),
            })

    def on_leave_conversation(self, event: protocol.LeaveConversation, user_key: str, sid: str):
        leave_room(conversation_room(event.conversation_id), sid=sid)

    # =========================================================================
    # Messages
    # =========================================================================

    def on_send_message(self, event: protocol.SendMessage, user_key: str, sid: str):
        message, _ = self.messaging.send_message(event.conversation_id, user_key, event.message)
        self.publish_new_message(message, sender_sid=sid)

    def publish_new_message(self, message: Dict[str, Any], sender_sid: Optional[str] = None) -> Dict[str, Any]:
        """Fan out a message that is already stored.

        Used by both the realtime send and the REST fallback. The message is
        marked delivered right away when the recipient has a live connection.
        Notification failures are logged and never fail the send.
        """
        conversation_id = message['conversationId']
        sender_key = message['sender']
        recipient = message['recipient']

        self.emitter.emit_to_conversation(conversation_id, EventEmitter.NEW_MESSAGE, message)

        if self.presence.is_online(recipient):
            delivered = self.messaging.mark_delivered([message['id']], recipient)
            if delivered:
                message = delivered[0]
                self.emitter.emit_to_user(sender_key, EventEmitter.MESSAGE_DELIVERED, {
                    'messageId': message['id'],
                    'conversationId': conversation_id,
                    'deliveredAt': message['deliveredAt'],
                })

        sender_profile = self.messaging.users.get_public_profile(sender_key) or {'userKey': sender_key}
        self.notifications.notify_new_message_safely(
            recipient, sender_profile, preview_text(message), conversation_id, message_id=message['id']
        )
        try:
            self.notifications.deliver(recipient, EventEmitter.MESSAGE_NOTIFICATION, {
                'conversationId': conversation_id,
                'message': message,
                'sender': sender_profile,
            })
        except Exception:
            logger.warning("Failed to push message notification to %s", recipient, exc_info=True)

        if sender_sid:
            self.emitter.emit_to_sid(sender_sid, EventEmitter.MESSAGE_SENT, {
                'messageId': message['id'],
                'status': message['status'],
            })
        return message

    def on_typing(self, event, user_key: str, sid: str):
        conv = self.messaging.require_participant(event.conversation_id, user_key)
        other = Conversation.from_doc(conv).other_participant(user_key)
        if isinstance(event, protocol.TypingStart):
            profile = self.messaging.users.get_public_profile(user_key) or {}
            name = f"{profile.get('firstName') or ''} {profile.get('lastName') or ''}".strip()
            self.emitter.emit_to_user(other, EventEmitter.USER_TYPING, {
                'conversationId': str(conv['_id']), 'userId': user_key, 'userName': name or user_key
            })
        else:
            self.emitter.emit_to_user(other, EventEmitter.USER_STOPPED_TYPING, {
                'conversationId': str(conv['_id']), 'userId': user_key
            })

    # =========================================================================
    # Receipts
    # =========================================================================

    def on_mark_delivered(self, event: protocol.MarkAsDelivered, user_key: str, sid: str):
        delivered = self.messaging.mark_delivered(event.message_ids, user_key, event.conversation_id)
        self.notify_delivered(delivered)

    def on_mark_read(self, event: protocol.MarkAsRead, user_key: str, sid: str):
        read = self.messaging.mark_read(event.message_ids, user_key, event.conversation_id)
        self.notify_read(read, user_key)

    def notify_delivered(self, delivered: List[Dict[str, Any]]):
        now = to_iso(utc_now())
        for (sender, conversation_id), ids in _group_by_sender(delivered).items():
            self.emitter.emit_to_user(sender, EventEmitter.MESSAGES_DELIVERED, {
                'messageIds': ids, 'conversationId': conversation_id, 'deliveredAt': now
            })

    def notify_read(self, read: List[Dict[str, Any]], reader: str):
        now = to_iso(utc_now())
        for (sender, conversation_id), ids in _group_by_sender(read).items():
            self.emitter.emit_to_user(sender, EventEmitter.MESSAGES_READ, {
                'messageIds': ids, 'conversationId': conversation_id, 'readBy': reader, 'readAt': now
            })

    # =========================================================================
    # Edit / delete
    # =========================================================================

    def on_edit_message(self, event: protocol.EditMessage, user_key: str, sid: str):
        message = self.messaging.edit_message(event.message_id, user_key, event.content)
        self.notify_edited(message)

    def notify_edited(self, message: Dict[str, Any]):
        self.emitter.emit_to_conversation(message['conversationId'], EventEmitter.MESSAGE_EDITED, {
            'messageId': message['id'],
            'conversationId': message['conversationId'],
            'content': message['content'],
            'editedAt': message['editedAt'],
        })

    def on_delete_message(self, event: protocol.DeleteMessage, user_key: str, sid: str):
        result = self.messaging.soft_delete_message(event.message_id, user_key)
        self.notify_deleted(result, user_key)

    def notify_deleted(self, result: Dict[str, Any], user_key: str):
        """The deleting user's devices always hear about it; the room only once both sides deleted."""
        payload = {'messageId': result['id'], 'conversationId': result['conversationId']}
        self.emitter.emit_to_user(user_key, EventEmitter.MESSAGE_DELETED, payload)
        if result.get('deletedForEveryone'):
            self.emitter.emit_to_conversation(result['conversationId'], EventEmitter.MESSAGE_DELETED, payload)


_chat_handler: Optional[ChatHandler] = None


def init_chat_handler(messaging_service, notification_service, presence, emitter) -> ChatHandler:
    """Initialize the chat handler singleton."""
    global _chat_handler
    _chat_handler = ChatHandler(messaging_service, notification_service, presence, emitter)
    logger.debug("Chat handler initialized")
    return _chat_handler


def get_chat_handler() -> Optional[ChatHandler]:
    return _chat_handler
