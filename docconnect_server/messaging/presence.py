"""Presence tracking for connected users.

ConnectionRegistry records which live connections (socket ids) belong to
which user. PresenceTracker builds online/away/offline status on top of it,
persists the status on the user record and announces changes.
"""
import logging
import threading
from typing import Dict, Any, Optional, Set, Tuple, List

from docconnect_server.messaging.models import PresenceStatus
from docconnect_server.utils.time_utils import utc_now, to_iso

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """In-process map of live connections, guarded by a lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._sid_to_user: Dict[str, str] = {}
        self._user_to_sids: Dict[str, Set[str]] = {}

    def register(self, user_key: str, sid: str) -> bool:
        """Record a connection. Returns True if it is the user's first one."""
        with self._lock:
            self._sid_to_user[sid] = user_key
            sids = self._user_to_sids.setdefault(user_key, set())
            first = not sids
            sids.add(sid)
            return first

    def unregister(self, sid: str) -> Tuple[Optional[str], bool]:
        """Forget a connection. Returns (user_key, was_last_connection)."""
        with self._lock:
            user_key = self._sid_to_user.pop(sid, None)
            if user_key is None:
                return None, False
            sids = self._user_to_sids.get(user_key, set())
            sids.discard(sid)
            if not sids:
                self._user_to_sids.pop(user_key, None)
                return user_key, True
            return user_key, False

    def user_for(self, sid: str) -> Optional[str]:
        with self._lock:
            return self._sid_to_user.get(sid)

    def sids_for(self, user_key: str) -> Set[str]:
        with self._lock:
            return set(self._user_to_sids.get(user_key, ()))

    def is_connected(self, user_key: str) -> bool:
        with self._lock:
            return bool(self._user_to_sids.get(user_key))

    def online_users(self) -> List[str]:
        with self._lock:
            return list(self._user_to_sids.keys())

    def connection_count(self) -> int:
        with self._lock:
            return len(self._sid_to_user)


class PresenceTracker:
    """Online/away/offline status per user.

    A user is online while at least one connection is registered. Status
    changes are persisted through the user repository and broadcast to all
    connected clients as user_status_changed. The first/last connection
    decision and the write that follows it run under one lock per user.
    """

    def __init__(self, registry: ConnectionRegistry, users, emitter=None):
        self.registry = registry
        self.users = users
        self.emitter = emitter
        self._locks_guard = threading.Lock()
        self._user_locks = {}

    def _lock_for(self, user_key: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._user_locks.get(user_key)
            if lock is None:
                lock = self._user_locks[user_key] = threading.RLock()
            return lock

    def connect(self, user_key: str, sid: str) -> bool:
        with self._lock_for(user_key):
            first = self.registry.register(user_key, sid)
            if first:
                try:
                    self._persist_and_announce(user_key, PresenceStatus.ONLINE)
                except Exception:
                    self.registry.unregister(sid)
                    raise
        logger.info("User %s connected (sid=%s, first=%s)", user_key, sid, first)
        return first

    def disconnect(self, sid: str) -> Tuple[Optional[str], bool]:
        user_key = self.registry.user_for(sid)
        if user_key is None:
            return None, False
        with self._lock_for(user_key):
            user_key, last = self.registry.unregister(sid)
            if user_key is None:
                return None, False
            if last:
                self._persist_and_announce(user_key, PresenceStatus.OFFLINE)
        logger.info("User %s disconnected (sid=%s, last=%s)", user_key, sid, last)
        return user_key, last

    def set_status(self, user_key: str, status) -> Dict[str, Any]:
        """Manual status update from the client."""
        status = PresenceStatus.parse(status)
        with self._lock_for(user_key):
            return self._persist_and_announce(user_key, status)

    def touch(self, user_key: str) -> None:
        self.users.touch_last_seen(user_key)

    def is_online(self, user_key: str) -> bool:
        return self.registry.is_connected(user_key)

    def get_presence(self, user_key: str) -> Dict[str, Any]:
        stored = self.users.get_presence(user_key) or {}
        last_seen = stored.get('last_seen')
        status = stored.get('status', PresenceStatus.OFFLINE.value)
        if not self.is_online(user_key):
            status = PresenceStatus.OFFLINE.value
        return {
            'userId': user_key,
            'status': status,
            'lastSeen': to_iso(last_seen) if last_seen else None,
            'connections': len(self.registry.sids_for(user_key))
        }

    def _persist_and_announce(self, user_key: str, status: PresenceStatus) -> Dict[str, Any]:
        now = utc_now()
        self.users.set_status(user_key, status.value, now)
        change = {'userId': user_key, 'status': status.value, 'lastSeen': to_iso(now)}
        if self.emitter is not None:
            self.emitter.broadcast('user_status_changed', change)
        return change
