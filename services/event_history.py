import threading
import time
from typing import Callable, Dict, List, Optional

from models.attendance_event import AttendanceEvent

# Cache TTL in seconds for a worker's recent events
HISTORY_CACHE_TTL = 30


class EventHistoryCache:
    """
    Short-lived per-worker cache of recent attendance events.

    Every successful submission invalidates the worker's entry, so the next
    read reflects the new event. A load that overlaps an invalidation is
    returned to its caller but never stored.
    """

    def __init__(self, ttl: float = HISTORY_CACHE_TTL, clock: Optional[Callable[[], float]] = None):
        self._ttl = ttl
        self._clock = clock or time.monotonic
        self._entries: Dict[str, dict] = {}
        self._generations: Dict[str, int] = {}
        self._lock = threading.Lock()

    def get(
        self,
        worker_id: str,
        loader: Callable[[], List[AttendanceEvent]],
    ) -> List[AttendanceEvent]:
        with self._lock:
            entry = self._entries.get(worker_id)
            if entry is not None and self._clock() - entry["timestamp"] <= self._ttl:
                return list(entry["data"])
            generation = self._generations.get(worker_id, 0)

        # Load outside the lock; the DB read may be slow
        data = list(loader())

        with self._lock:
            if self._generations.get(worker_id, 0) == generation:
                self._entries[worker_id] = {"data": data, "timestamp": self._clock()}
        return list(data)

    def invalidate(self, worker_id: str) -> None:
        with self._lock:
            self._generations[worker_id] = self._generations.get(worker_id, 0) + 1
            self._entries.pop(worker_id, None)


# Shared by the API routes
history_cache = EventHistoryCache()
