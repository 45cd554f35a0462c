"""Conversation repository for two-party chat.

Every mutation is a single-document atomic update. The unordered participant
pair is stored as participant_key, which carries a unique index.
"""
import logging
from typing import Optional, Dict, Any, List, Tuple

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from docconnect_server.repository.base_repository import BaseRepository
from docconnect_server.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class ConversationRepository(BaseRepository):
    """Repository for chat conversations."""
    collection_name = "conversations"

    def get(self, conversation_id: ObjectId) -> Optional[Dict]:
        return self.collection.find_one({'_id': conversation_id})

    def find_by_participant_key(self, key: str) -> Optional[Dict]:
        return self.collection.find_one({'participant_key': key})

    def upsert_by_participant_key(self, doc: Dict[str, Any]) -> Tuple[Dict, bool]:
        """Insert the conversation unless one exists for the same pair.

        Returns (conversation, created). Two concurrent upserts can both miss
        and race on insert; the loser gets DuplicateKeyError from the unique
        index and reads the winner's record instead.
        """
        key = doc['participant_key']
        on_insert = {k: v for k, v in doc.items() if k not in ('participant_key', '_id')}
        try:
            result = self.collection.update_one(
                {'participant_key': key},
                {'$setOnInsert': on_insert},
                upsert=True
            )
            created = result.upserted_id is not None
        except DuplicateKeyError:
            logger.info("Concurrent conversation create for %s, reusing existing", key)
            created = False
        return self.collection.find_one({'participant_key': key}), created

    def list_for_user(self, user_key: str, skip: int = 0, limit: int = 20) -> List[Dict]:
        """Non-archived conversations of a user, most recent activity first."""
        cursor = self.collection.find(self._visible_query(user_key)).sort(
            [('last_message.timestamp', -1), ('updated_at', -1)]
        ).skip(skip).limit(limit)
        return list(cursor)

    def count_for_user(self, user_key: str) -> int:
        return self.collection.count_documents(self._visible_query(user_key))

    @staticmethod
    def _visible_query(user_key: str) -> Dict[str, Any]:
        return {'participants': user_key, 'archived_by': {'$ne': user_key}}

    def apply_new_message(self, conversation_id: ObjectId, recipient: str, last_message: Dict[str, Any]) -> Optional[Dict]:
        """Assign the next sequence number, bump the recipient's unread counter
        and overwrite the last message snapshot in one atomic update.

        Returns the document as it was before the update (None if missing);
        the new message's seq is the returned message_seq + 1.
        """
        return self.collection.find_one_and_update(
            {'_id': conversation_id},
            {
                '$inc': {'message_seq': 1, f'unread_count.{recipient}': 1},
                '$set': {'last_message': last_message, 'updated_at': last_message['timestamp']}
            },
            return_document=ReturnDocument.BEFORE
        )

    def revert_new_message(self, conversation_id: ObjectId, recipient: str, message_id: ObjectId,
                           previous_last_message: Optional[Dict[str, Any]]) -> None:
        """Compensate apply_new_message after a failed message insert.

        The sequence counter is left alone (gaps are harmless, reuse is not).
        The snapshot is restored only if no newer message replaced it meanwhile.
        """
        self.decrement_unread(conversation_id, recipient, 1)
        self.collection.update_one(
            {'_id': conversation_id, 'last_message.message_id': message_id},
            {'$set': {'last_message': previous_last_message}}
        )

    def increment_unread(self, conversation_id: ObjectId, user_key: str, amount: int = 1) -> bool:
        result = self.collection.update_one(
            {'_id': conversation_id},
            {'$inc': {f'unread_count.{user_key}': amount}}
        )
        return result.matched_count > 0

    def decrement_unread(self, conversation_id: ObjectId, user_key: str, amount: int) -> None:
        """Subtract amount from the user's counter, then clamp it at zero."""
        if amount <= 0:
            return
        field = f'unread_count.{user_key}'
        self.collection.update_one({'_id': conversation_id}, {'$inc': {field: -amount}})
        self.collection.update_one(
            {'_id': conversation_id, field: {'$lt': 0}},
            {'$set': {field: 0}}
        )

    def set_unread(self, conversation_id: ObjectId, user_key: str, value: int = 0) -> bool:
        result = self.collection.update_one(
            {'_id': conversation_id},
            {'$set': {f'unread_count.{user_key}': value}}
        )
        return result.matched_count > 0

    def toggle_membership(self, conversation_id: ObjectId, field: str, user_key: str) -> bool:
        """Flip user_key's membership in a set-valued field; returns the new state."""
        removed = self.collection.update_one(
            {'_id': conversation_id, field: user_key},
            {'$pull': {field: user_key}, '$set': {'updated_at': utc_now()}}
        )
        if removed.modified_count:
            return False
        self.collection.update_one(
            {'_id': conversation_id},
            {'$addToSet': {field: user_key}, '$set': {'updated_at': utc_now()}}
        )
        return True
