"""Messaging service layer for conversation and message business logic.

This service owns every mutation of conversations and chat messages. It is
shared by the realtime gateway and the REST fallback, so both paths enforce
the same participancy rules, status transitions and unread bookkeeping.
"""
import logging
from collections import defaultdict
from typing import Optional, Dict, Any, List, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import PyMongoError

from config import config
from docconnect_server.exception import (
    NotFoundError, ForbiddenError, InvalidOperationError, ValidationFailedError
)
from docconnect_server.messaging.models import (
    Message, Conversation, MessageType, MessageStatus, participant_key
)
from docconnect_server.repository.media import (
    ConversationRepository, ChatMessageRepository, UserPresenceRepository
)
from docconnect_server.repository.mongo_helper import MongoRepositorySingleton
from docconnect_server.utils.helpers import to_object_id, build_pagination

logger = logging.getLogger(__name__)

RELATED_TO_TYPES = ('job', 'application', 'general')

UNREAD_STATUSES = [MessageStatus.SENT.value, MessageStatus.DELIVERED.value]


class MessagingService:
    """High-level messaging service."""

    def __init__(self, db=None):
        db = db if db is not None else MongoRepositorySingleton.get_db()
        self.conversations = ConversationRepository(db)
        self.messages = ChatMessageRepository(db)
        self.users = UserPresenceRepository(db)

    # =========================================================================
    # Conversation Operations
    # =========================================================================

    def find_or_create_conversation(self, user_a: str, user_b: str,
                                    related_to: Optional[Dict[str, Any]] = None) -> Tuple[Dict, bool]:
        """Return the conversation between two users, creating it on first contact.

        Safe under concurrent calls from both participants: the unordered pair
        maps to one participant_key and the store keeps that key unique.
        """
        if not user_b:
            raise ValidationFailedError('participantId is required')
        if user_a == user_b:
            raise ValidationFailedError('Cannot start a conversation with yourself')
        if not self.users.exists(user_b):
            raise NotFoundError('User not found')

        key = participant_key(user_a, user_b)
        existing = self.conversations.find_by_participant_key(key)
        if existing:
            return existing, False

        conversation = Conversation(participants=[user_a, user_b],
                                    related_to=self._validate_related_to(related_to))
        doc, created = self.conversations.upsert_by_participant_key(conversation.to_db_doc())
        if created:
            logger.info("Created conversation %s between %s", doc['_id'], key)
        return doc, created

    @staticmethod
    def _validate_related_to(related_to):
        if related_to is None:
            return None
        if not isinstance(related_to, dict):
            raise ValidationFailedError('relatedTo must be an object')
        rel_type = related_to.get('type', 'general')
        if rel_type not in RELATED_TO_TYPES:
            raise ValidationFailedError(f"relatedTo.type must be one of: {', '.join(RELATED_TO_TYPES)}")
        result = {'type': rel_type}
        if related_to.get('id') is not None:
            result['id'] = str(related_to['id'])
        return result

    def list_conversations(self, user_key: str, page: int = 1, limit: int = 20) -> Tuple[List[Dict], Dict]:
        skip = (page - 1) * limit
        docs = self.conversations.list_for_user(user_key, skip=skip, limit=limit)
        total = self.conversations.count_for_user(user_key)
        conversations = [Conversation.from_doc(d) for d in docs]
        profiles = self.users.get_public_profiles([c.other_participant(user_key) for c in conversations])
        items = [c.to_dict_for(user_key, profiles.get(c.other_participant(user_key))) for c in conversations]
        return items, build_pagination(page, limit, total)

    def require_participant(self, conversation_id, user_key: str) -> Dict:
        """Load a conversation, failing unless user_key takes part in it."""
        conv = self.conversations.get(to_object_id(conversation_id, 'Conversation'))
        if not conv:
            raise NotFoundError('Conversation not found')
        if user_key not in conv.get('participants', []):
            raise ForbiddenError('Not authorized to access this conversation')
        return conv

    def get_conversation(self, conversation_id, user_key: str) -> Dict[str, Any]:
        return self.conversation_view(self.require_participant(conversation_id, user_key), user_key)

    def conversation_view(self, doc: Dict, user_key: str) -> Dict[str, Any]:
        conversation = Conversation.from_doc(doc)
        other = conversation.other_participant(user_key)
        return conversation.to_dict_for(user_key, self.users.get_public_profile(other))

    def increment_unread(self, conversation_id, user_key: str) -> bool:
        return self.conversations.increment_unread(to_object_id(conversation_id, 'Conversation'), user_key)

    def reset_unread(self, conversation_id, user_key: str, read_count: Optional[int] = None) -> None:
        """Reset a participant's unread counter.

        With read_count, only that many are taken off (then clamped at zero),
        so a message arriving during the read-mark keeps its increment.
        Without it the counter is set to zero outright.
        """
        conv_oid = to_object_id(conversation_id, 'Conversation')
        if read_count is None:
            self.conversations.set_unread(conv_oid, user_key, 0)
        else:
            self.conversations.decrement_unread(conv_oid, user_key, read_count)

    def toggle_archive(self, conversation_id, user_key: str) -> bool:
        conv = self.require_participant(conversation_id, user_key)
        return self.conversations.toggle_membership(conv['_id'], 'archived_by', user_key)

    def toggle_mute(self, conversation_id, user_key: str) -> bool:
        conv = self.require_participant(conversation_id, user_key)
        return self.conversations.toggle_membership(conv['_id'], 'muted_by', user_key)

    # =========================================================================
    # Message Operations
    # =========================================================================

    def send_message(self, conversation_id, sender_key: str, payload: Dict[str, Any]) -> Tuple[Dict, Dict]:
        """Persist a message and update the owning conversation.

        The conversation update (sequence number, recipient unread counter,
        last message snapshot) is applied first as one atomic update. If the
        message insert then fails the conversation update is compensated
        and the error propagates; the server never retries the write.

        Returns (message, conversation) as stored.
        """
        conv = self.require_participant(conversation_id, sender_key)
        fields = Message.validate_payload(payload, config.MAX_MESSAGE_LENGTH)
        recipient = Conversation.from_doc(conv).other_participant(sender_key)
        if not recipient or not self.users.exists(recipient):
            raise NotFoundError('Recipient not found')

        reply_to = None
        if payload.get('replyTo'):
            reply_to = to_object_id(payload['replyTo'], 'Replied message')
            replied = self.messages.get(reply_to)
            if not replied or replied.get('conversation_id') != conv['_id']:
                raise NotFoundError('Replied message not found')

        message = Message(conversation_id=conv['_id'], sender=sender_key, recipient=recipient,
                          reply_to=reply_to, **fields)
        last_message = {
            'message_id': message.message_id,
            'content': message.preview(),
            'sender': sender_key,
            'message_type': message.message_type.value,
            'timestamp': message.created_at
        }
        before = self.conversations.apply_new_message(conv['_id'], recipient, last_message)
        if before is None:
            raise NotFoundError('Conversation not found')
        message.seq = before.get('message_seq', 0) + 1

        try:
            self.messages.insert(message.to_db_doc())
        except PyMongoError:
            logger.exception("Message insert failed in conversation %s, reverting conversation update", conv['_id'])
            self.conversations.revert_new_message(conv['_id'], recipient, message.message_id,
                                                  before.get('last_message'))
            raise

        logger.info("Message %s sent in conversation %s (seq %s)", message.message_id, conv['_id'], message.seq)
        updated = self.conversations.get(conv['_id'])
        return message.to_dict(), updated

    def mark_delivered(self, message_ids: List, user_key: str, conversation_id=None) -> List[Dict]:
        """Move the caller's sent messages to delivered.

        Messages already delivered or read, or addressed to someone else, are
        skipped silently. Returns the messages this call transitioned.
        """
        ids = self._parse_message_ids(message_ids)
        conv_oid = None
        if conversation_id:
            conv_oid = self.require_participant(conversation_id, user_key)['_id']
        pending = self.messages.find_pending_ids(user_key, [MessageStatus.SENT.value], message_ids=ids,
                                                 conversation_id=conv_oid)
        return self._transition(pending, user_key, [MessageStatus.SENT.value],
                                MessageStatus.DELIVERED.value, 'delivered_at')

    def mark_read(self, message_ids: List, user_key: str, conversation_id=None) -> List[Dict]:
        """Move the caller's sent or delivered messages to read.

        Each affected conversation's unread counter drops by exactly the number
        of its messages this call moved to read.
        """
        ids = self._parse_message_ids(message_ids)
        conv_oid = None
        if conversation_id:
            conv_oid = self.require_participant(conversation_id, user_key)['_id']
        pending = self.messages.find_pending_ids(user_key, UNREAD_STATUSES, message_ids=ids,
                                                 conversation_id=conv_oid)
        return self._read_and_reconcile(pending, user_key)

    def mark_conversation_read(self, conversation_id, user_key: str) -> List[Dict]:
        """Mark every pending message of the caller in one conversation as
        delivered, then read. Returns the messages moved to read.
        """
        conv = self.require_participant(conversation_id, user_key)
        sent = self.messages.find_pending_ids(user_key, [MessageStatus.SENT.value], conversation_id=conv['_id'])
        self._transition(sent, user_key, [MessageStatus.SENT.value], MessageStatus.DELIVERED.value, 'delivered_at')
        pending = self.messages.find_pending_ids(user_key, UNREAD_STATUSES, conversation_id=conv['_id'])
        return self._read_and_reconcile(pending, user_key)

    def _read_and_reconcile(self, pending: List[ObjectId], user_key: str) -> List[Dict]:
        transitioned = self._transition(pending, user_key, UNREAD_STATUSES, MessageStatus.READ.value, 'read_at')
        per_conversation = defaultdict(int)
        for msg in transitioned:
            per_conversation[msg['conversationId']] += 1
        for conv_id, count in per_conversation.items():
            self.reset_unread(conv_id, user_key, read_count=count)
        return transitioned

    def _transition(self, ids: List[ObjectId], user_key: str, from_statuses: List[str],
                    to_status: str, stamp_field: str) -> List[Dict]:
        transitioned = []
        for message_id in ids:
            doc = self.messages.transition(message_id, user_key, from_statuses, to_status, stamp_field)
            if doc:
                transitioned.append(Message.from_doc(doc).to_dict())
        if transitioned:
            logger.debug("%s moved %d message(s) to %s", user_key, len(transitioned), to_status)
        return transitioned

    @staticmethod
    def _parse_message_ids(message_ids) -> List[ObjectId]:
        if not isinstance(message_ids, list) or not message_ids:
            raise ValidationFailedError('messageIds must be a non-empty array')
        ids = []
        for value in message_ids:
            try:
                ids.append(ObjectId(str(value)))
            except (InvalidId, TypeError):
                # Unknown ids are no-ops like any other message the caller does not own
                logger.debug("Ignoring malformed message id %r", value)
        return ids

    def get_message(self, message_id, user_key: str) -> Dict:
        """Load a message for one of its participants."""
        doc = self.messages.get(to_object_id(message_id, 'Message'))
        if not doc:
            raise NotFoundError('Message not found')
        if user_key not in (doc.get('sender'), doc.get('recipient')):
            raise ForbiddenError('Not authorized to access this message')
        return doc

    def edit_message(self, message_id, user_key: str, content) -> Dict[str, Any]:
        doc = self.messages.get(to_object_id(message_id, 'Message'))
        if not doc:
            raise NotFoundError('Message not found')
        if doc.get('sender') != user_key:
            raise ForbiddenError('Not authorized to edit this message')
        if doc.get('message_type') != MessageType.TEXT.value:
            raise InvalidOperationError('Only text messages can be edited')
        content = Message.validate_content(content, config.MAX_MESSAGE_LENGTH)
        updated = self.messages.update_content(doc['_id'], content)
        return Message.from_doc(updated).to_dict()

    def soft_delete_message(self, message_id, user_key: str) -> Dict[str, Any]:
        """Hide a message for user_key only.

        Returns the message plus 'deletedForEveryone', true once both
        participants have hidden it.
        """
        doc = self.get_message(message_id, user_key)
        updated = self.messages.hide_for(doc['_id'], user_key)
        result = Message.from_doc(updated).to_dict()
        participants = {updated.get('sender'), updated.get('recipient')}
        result['deletedForEveryone'] = participants.issubset(set(updated.get('deleted_by', [])))
        return result

    def list_messages(self, conversation_id, user_key: str, page: int = 1, limit: int = 20) -> Tuple[List[Dict], Dict]:
        """One page of visible messages, oldest first within the page.

        Pages are counted from the newest message backwards.
        """
        conv = self.require_participant(conversation_id, user_key)
        skip = (page - 1) * limit
        docs = self.messages.list_visible(conv['_id'], user_key, skip=skip, limit=limit)
        total = self.messages.count_visible(conv['_id'], user_key)
        docs.reverse()
        return [Message.from_doc(d).to_dict() for d in docs], build_pagination(page, limit, total)

    def unread_for(self, conversation_id, user_key: str) -> int:
        conv = self.require_participant(conversation_id, user_key)
        return max(0, int((conv.get('unread_count') or {}).get(user_key, 0)))


_messaging_service = None


def get_messaging_service() -> MessagingService:
    """Get singleton messaging service."""
    global _messaging_service
    if _messaging_service is None:
        _messaging_service = MessagingService()
    return _messaging_service


def reset_messaging_service(service: Optional[MessagingService] = None) -> None:
    global _messaging_service
    _messaging_service = service
