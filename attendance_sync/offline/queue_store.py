"""
Durable queue of attendance submissions awaiting upstream confirmation.

Rows are only appended by the submission gateway; the orchestrator flips
them to synced, and deletion happens on admin resolution or user cancel.
"""
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from attendance_sync.datetime_utils import now_ms
from attendance_sync.exceptions import StorageError
from attendance_sync.logging_config import get_logger
from attendance_sync.models import PendingAttendance, db

logger = get_logger(__name__)


class QueueStore:
    """CRUD over the pending_attendance table. Requires an app context."""

    def _fail(self, operation, error):
        logger.error(
            "Queue store operation failed",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
        )
        try:
            db.session.rollback()
        except Exception:
            pass  # Ignore rollback errors
        raise StorageError(f"Queue store {operation} failed: {error}") from error

    def enqueue(self, payload: dict) -> int:
        """Persist a new unsynced submission and return its id."""
        try:
            item = PendingAttendance(
                payload=dict(payload),
                timestamp=now_ms(),
                synced=False,
            )
            db.session.add(item)
            db.session.commit()
        except (SQLAlchemyError, RuntimeError) as e:
            # RuntimeError: no application context / db not initialised
            self._fail("enqueue", e)

        logger.info("Attendance queued for sync", queued_id=item.id, class_id=item.class_id)
        return item.id

    def get(self, item_id: int) -> Optional[PendingAttendance]:
        try:
            return db.session.get(PendingAttendance, item_id)
        except (SQLAlchemyError, RuntimeError) as e:
            self._fail("get", e)

    def list_pending(self) -> List[PendingAttendance]:
        """All unsynced submissions, oldest first."""
        try:
            return (
                PendingAttendance.query
                .filter(PendingAttendance.synced.is_(False))
                .order_by(PendingAttendance.id)
                .all()
            )
        except (SQLAlchemyError, RuntimeError) as e:
            self._fail("list_pending", e)

    def mark_synced(self, item_id: int) -> None:
        try:
            item = db.session.get(PendingAttendance, item_id)
            if item is None:
                logger.debug(f"mark_synced: queued item {item_id} not found")
                return
            item.synced = True
            item.synced_at = now_ms()
            db.session.commit()
        except (SQLAlchemyError, RuntimeError) as e:
            self._fail("mark_synced", e)

    def delete(self, item_id: int) -> bool:
        """Remove an entry; returns False when it was already gone."""
        try:
            item = db.session.get(PendingAttendance, item_id)
            if item is None:
                return False
            db.session.delete(item)
            db.session.commit()
        except (SQLAlchemyError, RuntimeError) as e:
            self._fail("delete", e)

        logger.info(f"Queued item {item_id} deleted")
        return True

    def prune_synced_older_than(self, duration_ms: int) -> int:
        cutoff = now_ms() - duration_ms
        try:
            removed = (
                PendingAttendance.query
                .filter(
                    PendingAttendance.synced.is_(True),
                    PendingAttendance.synced_at < cutoff,
                )
                .delete(synchronize_session=False)
            )
            db.session.commit()
        except (SQLAlchemyError, RuntimeError) as e:
            self._fail("prune", e)

        if removed:
            logger.info("Pruned synced queue entries", removed=removed)
        return removed

    def stats(self) -> dict:
        try:
            pending_count, oldest = (
                db.session.query(func.count(PendingAttendance.id), func.min(PendingAttendance.timestamp))
                .filter(PendingAttendance.synced.is_(False))
                .one()
            )
            synced_count = PendingAttendance.query.filter(PendingAttendance.synced.is_(True)).count()
        except (SQLAlchemyError, RuntimeError) as e:
            self._fail("stats", e)

        return {
            "pendingCount": pending_count,
            "syncedCount": synced_count,
            "oldestPending": oldest,
        }

    def clear(self) -> int:
        """Drop every queued row, synced or not."""
        try:
            removed = PendingAttendance.query.delete(synchronize_session=False)
            db.session.commit()
        except (SQLAlchemyError, RuntimeError) as e:
            self._fail("clear", e)
        logger.warning("Offline queue cleared", removed=removed)
        return removed
