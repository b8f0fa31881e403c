import os
import socket
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from attendance_sync.datetime_utils import MS_PER_SECOND, now_ms
from attendance_sync.exceptions import StorageError, SyncInProgressError
from attendance_sync.logging_config import get_logger
from attendance_sync.models import SyncLease, db

logger = get_logger(__name__)

SYNC_LEASE_NAME = "attendance-sync"
DEFAULT_LEASE_SECONDS = 600


class DatabaseLease:
    """
    Sync claim stored in the queue database, so the agent and a one-shot
    maintenance command on the same file never run a sync at the same time.

    A claim expires after `ttl_seconds` unless renewed; a crashed holder
    therefore blocks other processes for at most one ttl. Requires an app
    context.
    """

    def __init__(self, name: str = SYNC_LEASE_NAME, ttl_seconds: float = DEFAULT_LEASE_SECONDS):
        self.name = name
        self.ttl_ms = int(ttl_seconds * MS_PER_SECOND)
        self.owner = f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"

    def _fail(self, operation, error):
        try:
            db.session.rollback()
        except Exception:
            pass  # Ignore rollback errors
        raise StorageError(f"Sync lease {operation} failed: {error}") from error

    def acquire(self, operation_name: str) -> bool:
        """Claim the lease if it is free or expired. Returns False when someone else holds it."""
        now = now_ms()
        values = {
            "owner": self.owner,
            "operation": operation_name,
            "acquired_at": now,
            "expires_at": now + self.ttl_ms,
        }
        try:
            claimed = (
                SyncLease.query
                .filter(
                    SyncLease.name == self.name,
                    or_(SyncLease.owner.is_(None), SyncLease.expires_at < now),
                )
                .update(values, synchronize_session=False)
            )
            db.session.commit()
            if claimed:
                return True

            if db.session.query(SyncLease.name).filter_by(name=self.name).first() is not None:
                return False

            db.session.add(SyncLease(name=self.name, **values))
            db.session.commit()
            return True
        except IntegrityError:
            # Another process created the row first
            db.session.rollback()
            return False
        except (SQLAlchemyError, RuntimeError) as e:
            self._fail("acquire", e)

    def renew(self) -> bool:
        """Push the expiry out. False means the lease was lost to another process."""
        try:
            renewed = (
                SyncLease.query
                .filter_by(name=self.name, owner=self.owner)
                .update({"expires_at": now_ms() + self.ttl_ms}, synchronize_session=False)
            )
            db.session.commit()
        except (SQLAlchemyError, RuntimeError) as e:
            self._fail("renew", e)
        return bool(renewed)

    def release(self) -> None:
        try:
            (
                SyncLease.query
                .filter_by(name=self.name, owner=self.owner)
                .update(
                    {"owner": None, "operation": None, "acquired_at": None, "expires_at": None},
                    synchronize_session=False,
                )
            )
            db.session.commit()
        except (SQLAlchemyError, RuntimeError) as e:
            self._fail("release", e)

    def holder(self) -> Optional[dict]:
        """The live claim, if any, as {"owner", "operation", "expiresAt"}."""
        try:
            row = (
                db.session.query(SyncLease.owner, SyncLease.operation, SyncLease.expires_at)
                .filter_by(name=self.name)
                .first()
            )
        except (SQLAlchemyError, RuntimeError) as e:
            self._fail("read", e)
        if row is None or row.owner is None or (row.expires_at or 0) < now_ms():
            return None
        return {"owner": row.owner, "operation": row.operation, "expiresAt": row.expires_at}


class SyncLock:
    """
    Non-blocking guard that keeps sync runs from overlapping.

    A second caller never waits: it gets SyncInProgressError immediately and
    is expected to report the run as skipped. With a `lease`, the guard also
    covers other processes sharing the queue database.
    """

    def __init__(self, lease: Optional[DatabaseLease] = None):
        self._lock = threading.Lock()
        self._is_syncing = False
        self._current_operation = None
        self._acquired_at: Optional[datetime] = None
        self.lease = lease

    def _reset(self):
        with self._lock:
            self._is_syncing = False
            self._current_operation = None
            self._acquired_at = None

    @contextmanager
    def acquire_sync_lock(self, operation_name: str):
        """
        Context manager to acquire the sync lock

        Args:
            operation_name: Name of the operation acquiring the lock

        Raises:
            SyncInProgressError: If another sync run is already active
        """
        with self._lock:
            if self._is_syncing:
                logger.info(
                    "Sync lock busy",
                    held_by=self._current_operation,
                    requested_by=operation_name,
                )
                raise SyncInProgressError(f"Sync already in progress: {self._current_operation}")
            self._is_syncing = True
            self._current_operation = operation_name
            self._acquired_at = datetime.now()

        try:
            if self.lease is not None and not self.lease.acquire(operation_name):
                holder = self.lease.holder() or {}
                logger.info(
                    "Sync lease held by another process",
                    held_by=holder.get("owner"),
                    requested_by=operation_name,
                )
                raise SyncInProgressError(f"Sync already in progress: {holder.get('operation')}")
        except Exception:
            self._reset()
            raise

        logger.debug(f"Sync lock acquired for operation: {operation_name}")
        try:
            yield
        finally:
            try:
                if self.lease is not None:
                    self.lease.release()
            except StorageError as e:
                logger.error("Could not release sync lease, it will expire", error=str(e))
            finally:
                self._reset()
                logger.debug(f"Sync lock released for operation: {operation_name}")

    def refresh(self) -> bool:
        """Extend the shared lease during a long run. False if it was lost."""
        if self.lease is None:
            return True
        return self.lease.renew()

    def get_status(self) -> dict:
        """Get current status of the lock, including a claim held by another process"""
        with self._lock:
            is_locked = self._is_syncing
            operation = self._current_operation if is_locked else None
            acquired_at = self._acquired_at
        holder = None
        if not is_locked and self.lease is not None:
            holder = self.lease.holder()
            if holder is not None:
                is_locked = True
                operation = holder["operation"]
        return {
            "is_locked": is_locked,
            "current_operation": operation,
            "held_elsewhere": holder is not None,
            "timestamp": datetime.now().isoformat(),
            "held_for_seconds": (datetime.now() - acquired_at).total_seconds() if acquired_at else 0,
        }
