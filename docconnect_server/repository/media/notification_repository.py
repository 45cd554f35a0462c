from typing import Optional, Dict, Any, List

from bson import ObjectId

from docconnect_server.repository.base_repository import BaseRepository
from docconnect_server.utils.time_utils import utc_now


class NotificationRepository(BaseRepository):
    collection_name = "notifications"

    def create(self, doc: Dict[str, Any]) -> ObjectId:
        return self.collection.insert_one(doc).inserted_id

    def list_for_user(self, user_key: str, read: Optional[bool] = None, skip: int = 0, limit: int = 20) -> List[Dict]:
        cursor = self.collection.find(self._user_query(user_key, read)).sort('created_at', -1).skip(skip).limit(limit)
        return list(cursor)

    def count_for_user(self, user_key: str, read: Optional[bool] = None) -> int:
        return self.collection.count_documents(self._user_query(user_key, read))

    @staticmethod
    def _user_query(user_key, read=None):
        query = {'recipient': user_key}
        if read is not None:
            query['read'] = read
        return query

    def mark_read(self, notification_id: ObjectId, user_key: str) -> Optional[Dict]:
        now = utc_now()
        result = self.collection.update_one(
            {'_id': notification_id, 'recipient': user_key, 'read': False},
            {'$set': {'read': True, 'read_at': now}}
        )
        if result.matched_count == 0 and not self.collection.count_documents({'_id': notification_id, 'recipient': user_key}):
            return None
        return self.collection.find_one({'_id': notification_id})

    def mark_all_read(self, user_key: str) -> int:
        result = self.collection.update_many(
            {'recipient': user_key, 'read': False},
            {'$set': {'read': True, 'read_at': utc_now()}}
        )
        return result.modified_count

    def delete(self, notification_id: ObjectId, user_key: str) -> bool:
        result = self.collection.delete_one({'_id': notification_id, 'recipient': user_key})
        return result.deleted_count > 0
