"""Per-user bounded buffer of events for users without a live connection.

The queue lives in process memory only. Entries are lost on restart, and
when a user's buffer is full the oldest entry is dropped to make room. Both
are accepted limits of best-effort offline delivery; a durable or shared
store would be needed for multi-instance deployments.
"""
import logging
import threading
from collections import deque
from typing import Dict, Any, List

from docconnect_server.utils.time_utils import utc_now, to_iso

logger = logging.getLogger(__name__)


class OfflineMessageQueue:

    def __init__(self, max_per_user: int = 100):
        if max_per_user < 1:
            raise ValueError('max_per_user must be >= 1')
        self.max_per_user = max_per_user
        self._queues: Dict[str, deque] = {}
        self._dropped = 0
        self._enqueued = 0
        self._delivered = 0
        self._lock = threading.Lock()

    def enqueue(self, user_key: str, event: str, data: Any) -> None:
        entry = {'event': event, 'data': data, 'queued_at': to_iso(utc_now())}
        with self._lock:
            queue = self._queues.get(user_key)
            if queue is None:
                queue = self._queues[user_key] = deque(maxlen=self.max_per_user)
            if len(queue) == self.max_per_user:
                self._dropped += 1
                logger.warning("Offline queue full for %s, dropping oldest entry", user_key)
            queue.append(entry)
            self._enqueued += 1
        logger.debug("Queued %s for offline user %s", event, user_key)

    def drain(self, user_key: str) -> List[Dict[str, Any]]:
        """Remove and return everything queued for user_key, oldest first."""
        with self._lock:
            queue = self._queues.pop(user_key, None)
            entries = list(queue) if queue else []
            self._delivered += len(entries)
        if entries:
            logger.debug("Drained %d queued event(s) for %s", len(entries), user_key)
        return entries

    def requeue(self, user_key: str, entries: List[Dict[str, Any]]) -> None:
        """Put drained but undelivered entries back ahead of anything queued since."""
        if not entries:
            return
        with self._lock:
            newer = self._queues.get(user_key) or ()
            merged = list(entries) + list(newer)
            overflow = max(0, len(merged) - self.max_per_user)
            self._dropped += overflow
            self._delivered -= len(entries)
            self._queues[user_key] = deque(merged[overflow:], maxlen=self.max_per_user)
        logger.debug("Requeued %d event(s) for %s", len(entries), user_key)

    def size(self, user_key: str) -> int:
        with self._lock:
            queue = self._queues.get(user_key)
            return len(queue) if queue else 0

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                'users': len(self._queues),
                'queued': sum(len(q) for q in self._queues.values()),
                'enqueued': self._enqueued,
                'delivered': self._delivered,
                'dropped': self._dropped,
                'maxPerUser': self.max_per_user,
            }

    def clear(self) -> None:
        with self._lock:
            self._queues.clear()
