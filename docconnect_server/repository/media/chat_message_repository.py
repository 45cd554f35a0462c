"""Chat message repository.

Status transitions are guarded by the current status in the update filter,
so a message only ever moves forward along sent -> delivered -> read.
"""
import logging
from typing import Optional, Dict, Any, List
from bson import ObjectId
from pymongo import ReturnDocument

from docconnect_server.repository.base_repository import BaseRepository
from docconnect_server.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class ChatMessageRepository(BaseRepository):
    """Repository for chat messages."""
    collection_name = "chat_messages"

    def insert(self, doc: Dict[str, Any]) -> ObjectId:
        result = self.collection.insert_one(doc)
        return result.inserted_id

    def get(self, message_id: ObjectId) -> Optional[Dict]:
        return self.collection.find_one({'_id': message_id})

    def list_visible(self, conversation_id: ObjectId, user_key: str, skip: int = 0, limit: int = 20) -> List[Dict]:
        """One page of messages not hidden for user_key, newest first."""
        cursor = self.collection.find(self._visible_query(conversation_id, user_key)).sort(
            [('seq', -1), ('created_at', -1)]
        ).skip(skip).limit(limit)
        return list(cursor)

    def count_visible(self, conversation_id: ObjectId, user_key: str) -> int:
        return self.collection.count_documents(self._visible_query(conversation_id, user_key))

    @staticmethod
    def _visible_query(conversation_id: ObjectId, user_key: str) -> Dict[str, Any]:
        return {'conversation_id': conversation_id, 'deleted_by': {'$ne': user_key}}

    def find_pending_ids(self, recipient: str, statuses: List[str],
                         message_ids: Optional[List[ObjectId]] = None,
                         conversation_id: Optional[ObjectId] = None) -> List[ObjectId]:
        """Ids of messages addressed to recipient that are still in one of statuses."""
        query = {'recipient': recipient, 'status': {'$in': statuses}}
        if message_ids is not None:
            query['_id'] = {'$in': message_ids}
        if conversation_id is not None:
            query['conversation_id'] = conversation_id
        return [doc['_id'] for doc in self.collection.find(query, {'_id': 1}).sort('seq', 1)]

    def transition(self, message_id: ObjectId, recipient: str, from_statuses: List[str],
                   to_status: str, stamp_field: str) -> Optional[Dict]:
        """Move one message to to_status if it is still in from_statuses.

        Returns the updated document, or None when another call got there
        first (or the message is not addressed to recipient).
        """
        now = utc_now()
        return self.collection.find_one_and_update(
            {'_id': message_id, 'recipient': recipient, 'status': {'$in': from_statuses}},
            {'$set': {'status': to_status, stamp_field: now, 'updated_at': now}},
            return_document=ReturnDocument.AFTER
        )

    def update_content(self, message_id: ObjectId, content: str) -> Optional[Dict]:
        now = utc_now()
        return self.collection.find_one_and_update(
            {'_id': message_id},
            {'$set': {'content': content, 'edited_at': now, 'updated_at': now}},
            return_document=ReturnDocument.AFTER
        )

    def hide_for(self, message_id: ObjectId, user_key: str) -> Optional[Dict]:
        """Add user_key to deleted_by (idempotent)."""
        return self.collection.find_one_and_update(
            {'_id': message_id},
            {'$addToSet': {'deleted_by': user_key}},
            return_document=ReturnDocument.AFTER
        )

    def count_unread(self, conversation_id: ObjectId, recipient: str) -> int:
        return self.collection.count_documents({
            'conversation_id': conversation_id,
            'recipient': recipient,
            'status': {'$in': ['sent', 'delivered']}
        })
