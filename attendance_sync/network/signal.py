"""
Process-wide connectivity signal.

Transitions come from platform connectivity events (the UI forwards browser
online/offline events); nothing here polls. `check_connectivity` is an
explicit, caller-driven liveness probe.
"""
import threading
from typing import Callable, Optional

import requests

from attendance_sync.events import ListenerRegistry
from attendance_sync.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_PROBE_TIMEOUT = 5


class NetworkSignal:

    def __init__(self, initial_status: bool = True, health_url: Optional[str] = None,
                 probe_timeout: float = DEFAULT_PROBE_TIMEOUT):
        self._status = bool(initial_status)
        self._lock = threading.Lock()
        self._listeners = ListenerRegistry("network")
        self.health_url = health_url
        self.probe_timeout = probe_timeout

    def get_status(self) -> bool:
        with self._lock:
            return self._status

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Call `callback(status)` now and on every transition; returns unsubscribe."""
        unsubscribe = self._listeners.add(callback)
        try:
            callback(self.get_status())
        except Exception as e:
            logger.error("Error in network listener", error=str(e), exc_info=True)
        return unsubscribe

    def set_status(self, online: bool) -> bool:
        """Apply a platform connectivity event. Returns True if it was a transition."""
        online = bool(online)
        with self._lock:
            if online == self._status:
                return False
            self._status = online
        logger.info("Network status changed", online=online)
        self._listeners.notify(online)
        return True

    def go_online(self) -> bool:
        return self.set_status(True)

    def go_offline(self) -> bool:
        return self.set_status(False)

    def check_connectivity(self, url: Optional[str] = None, timeout: Optional[float] = None) -> bool:
        """
        Active probe: HEAD the health endpoint.

        Returns True only on a 2xx response; False when already offline, on
        timeout, or on any request failure.
        """
        if not self.get_status():
            return False

        ping_url = url or self.health_url
        if not ping_url:
            return False

        try:
            response = requests.head(
                ping_url,
                timeout=timeout or self.probe_timeout,
                headers={"Cache-Control": "no-cache"},
            )
            return 200 <= response.status_code < 300
        except requests.RequestException as e:
            logger.debug("Connectivity probe failed", url=ping_url, error=str(e))
            return False
