from typing import List, Optional

from attendance_sync.datetime_utils import MS_PER_SECOND, now_ms
from attendance_sync.exceptions import SyncError
from attendance_sync.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_OVERLAP_SECONDS = 300


class ResolutionFeed:
    """
    Client for the server's "resolved by an administrator" feed.

    Best-effort: every failure degrades to "nothing resolved this cycle".
    """

    def __init__(self, api, overlap_seconds: int = DEFAULT_OVERLAP_SECONDS):
        self.api = api
        self.overlap_ms = int(overlap_seconds * MS_PER_SECOND)
        self.last_checked: Optional[int] = None
        self._checkpoint: Optional[int] = None

    def _fetch(self, since: Optional[int]) -> Optional[List[int]]:
        """Resolved ids, or None when the feed could not be reached."""
        try:
            response = self.api.get_resolved_attendance_ids(since=since)
        except SyncError as e:
            logger.warning("Could not fetch resolved attendance ids", error=str(e))
            return None
        return self._normalize(response)

    def get_resolved_ids(self, since: Optional[int] = None) -> List[int]:
        return self._fetch(since) or []

    def poll(self) -> List[int]:
        """
        Fetch ids resolved since the last committed poll (with overlap for clock skew).

        The watermark only moves on `commit()`, once the caller has acted on
        the ids; until then the next poll asks for the same window again.
        """
        since = None
        if self.last_checked is not None:
            since = max(0, self.last_checked - self.overlap_ms)
        started = now_ms()

        resolved_ids = self._fetch(since)
        if resolved_ids is None:
            self._checkpoint = None
            return []

        self._checkpoint = started
        return resolved_ids

    def commit(self) -> None:
        """Advance the watermark to the start of the last successful poll."""
        if self._checkpoint is not None:
            self.last_checked = self._checkpoint
            self._checkpoint = None

    @staticmethod
    def _normalize(response) -> List[int]:
        if isinstance(response, dict):
            raw_ids = response.get("resolvedIds")
            if raw_ids is None:
                raw_ids = response.get("data")
        else:
            raw_ids = response

        if not isinstance(raw_ids, list):
            if raw_ids is not None:
                logger.warning("Unexpected resolved ids payload", payload_type=type(raw_ids).__name__)
            return []

        ids = []
        for raw_id in raw_ids:
            # Queue keys are ints; the server may hand back strings
            try:
                if isinstance(raw_id, bool):
                    raise ValueError(raw_id)
                ids.append(int(raw_id))
            except (TypeError, ValueError):
                logger.warning(f"Invalid attendance ID received: {raw_id}")
        return ids
