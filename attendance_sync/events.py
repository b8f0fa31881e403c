import threading
from typing import Any, Callable, List

from attendance_sync.logging_config import get_logger

logger = get_logger(__name__)


class ListenerRegistry:
    """Ordered observer list with exception-isolated, synchronous dispatch."""

    def __init__(self, name: str):
        self.name = name
        self._listeners: List[Callable[[Any], None]] = []
        self._lock = threading.Lock()

    def add(self, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Register callback; returns a function that removes it again."""
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe():
            with self._lock:
                self._listeners = [cb for cb in self._listeners if cb is not callback]

        return unsubscribe

    def notify(self, event: Any) -> None:
        # Snapshot so a callback may unsubscribe itself mid-dispatch
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in {self.name} listener", error=str(e), exc_info=True)

    def __len__(self):
        with self._lock:
            return len(self._listeners)
