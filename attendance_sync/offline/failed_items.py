import threading
from typing import Iterable, List, Set

from attendance_sync.logging_config import get_logger
from attendance_sync.offline.state_store import delete_state, get_state, set_state

logger = get_logger(__name__)

FAILED_ITEMS_KEY = "sync_failed_items"


class FailedItemSet:
    """
    Queue ids whose replay was rejected by the server and must not be retried
    automatically.

    Persisted as one JSON list so membership survives a restart. Loaded lazily
    on first use because construction happens before an app context exists.
    Other processes may change the stored list, so writes re-read it first and
    readers `reload()` before relying on it. Every write lands in the
    database before the in-memory set changes.
    """

    def __init__(self, key: str = FAILED_ITEMS_KEY):
        self.key = key
        self._ids: Set[int] = set()
        self._loaded = False
        self._lock = threading.RLock()

    def _ensure_loaded(self):
        if self._loaded:
            return
        stored = get_state(self.key, default=[]) or []
        ids = set()
        for raw in stored:
            try:
                ids.add(int(raw))
            except (TypeError, ValueError):
                logger.warning("Dropping invalid failed item id", raw_id=raw)
        self._ids = ids
        self._loaded = True

    def _persist(self, ids: Set[int]):
        set_state(self.key, sorted(ids))
        self._ids = ids

    def reload(self):
        """Re-read the stored set."""
        with self._lock:
            self._loaded = False
            self._ensure_loaded()

    def __contains__(self, item_id) -> bool:
        with self._lock:
            self._ensure_loaded()
            return item_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            self._ensure_loaded()
            return len(self._ids)

    def ids(self) -> List[int]:
        with self._lock:
            self._ensure_loaded()
            return sorted(self._ids)

    def add(self, item_id: int) -> None:
        """Add and persist immediately."""
        with self._lock:
            self.reload()
            self._persist(self._ids | {int(item_id)})

    def discard_many(self, item_ids: Iterable[int]) -> int:
        """Remove ids (absent ones ignored), persist, and return how many were present."""
        with self._lock:
            self.reload()
            remaining = set(self._ids)
            removed = 0
            for item_id in item_ids:
                if item_id in remaining:
                    remaining.discard(item_id)
                    removed += 1
            self._persist(remaining)
            return removed

    def clear(self) -> int:
        with self._lock:
            self.reload()
            count = len(self._ids)
            delete_state(self.key)
            self._ids = set()
            logger.info(f"Cleared {count} failed items - they can be retried now")
            return count
