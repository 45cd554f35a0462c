"""User directory repository for the messaging core.

Reads public profile fields from the externally owned users collection and
persists only the presence fields (online_status.status / last_seen).
"""
import logging
from typing import Optional, Dict, Any, List
from datetime import datetime

from docconnect_server.repository.base_repository import BaseRepository
from docconnect_server.utils.time_utils import utc_now, to_iso

logger = logging.getLogger(__name__)

PUBLIC_PROFILE_PROJECTION = {field: 1 for field in (
    'user_key', 'first_name', 'last_name', 'profile_photo', 'role', 'primary_specialty', 'online_status'
)}


class UserPresenceRepository(BaseRepository):
    """Repository for user lookups and presence status."""
    collection_name = "users"

    def get_user(self, user_key: str) -> Optional[Dict]:
        return self.collection.find_one({'user_key': user_key})

    def exists(self, user_key: str) -> bool:
        return self.collection.count_documents({'user_key': user_key}, limit=1) > 0

    @staticmethod
    def is_active(user: Optional[Dict]) -> bool:
        """Accounts without an explicit status are treated as active."""
        return bool(user) and user.get('account_status', 'active') == 'active'

    def get_public_profile(self, user_key: str) -> Optional[Dict[str, Any]]:
        user = self.collection.find_one({'user_key': user_key})
        return self.to_public_profile(user) if user else None

    def get_public_profiles(self, user_keys: List[str]) -> Dict[str, Dict[str, Any]]:
        """Public profiles keyed by user_key for a batch of users."""
        if not user_keys:
            return {}
        cursor = self.collection.find({'user_key': {'$in': list(set(user_keys))}}, PUBLIC_PROFILE_PROJECTION)
        return {u['user_key']: self.to_public_profile(u) for u in cursor}

    @staticmethod
    def to_public_profile(user: Dict) -> Dict[str, Any]:
        online_status = user.get('online_status') or {}
        last_seen = online_status.get('last_seen')
        return {
            'userKey': user.get('user_key'),
            'firstName': user.get('first_name'),
            'lastName': user.get('last_name'),
            'profilePhoto': user.get('profile_photo'),
            'role': user.get('role'),
            'primarySpecialty': user.get('primary_specialty'),
            'onlineStatus': {
                'status': online_status.get('status', 'offline'),
                'lastSeen': to_iso(last_seen) if isinstance(last_seen, datetime) else last_seen
            }
        }

    def set_status(self, user_key: str, status: str, last_seen: Optional[datetime] = None) -> bool:
        """Persist presence status and last seen timestamp on the user record."""
        result = self.collection.update_one(
            {'user_key': user_key},
            {'$set': {
                'online_status.status': status,
                'online_status.last_seen': last_seen or utc_now()
            }}
        )
        if result.matched_count == 0:
            logger.warning("Presence update for unknown user %s", user_key)
        return result.matched_count > 0

    def touch_last_seen(self, user_key: str) -> bool:
        result = self.collection.update_one(
            {'user_key': user_key},
            {'$set': {'online_status.last_seen': utc_now()}}
        )
        return result.matched_count > 0

    def get_presence(self, user_key: str) -> Optional[Dict[str, Any]]:
        user = self.collection.find_one({'user_key': user_key}, {'online_status': 1})
        if not user:
            return None
        return user.get('online_status') or {'status': 'offline', 'last_seen': None}
