"""
Reconciles the offline queue against the remote attendance service.

A run:
1. Purges submissions an administrator marked resolved server-side
2. Replays each pending submission in queue order, skipping known failures
3. Marks accepted ones synced; sticks rejected ones in the failed set
4. Stops early on the first transport error (the rest would fail too)
5. Prunes old synced rows

Runs are triggered by the network coming back (after a settle delay), by a
periodic scheduler job while online, or explicitly by the user.
"""
import threading
from contextlib import nullcontext

from flask import has_app_context

from attendance_sync.datetime_utils import days_to_ms, now_ms
from attendance_sync.events import ListenerRegistry
from attendance_sync.exceptions import NetworkError, StorageError, SyncInProgressError
from attendance_sync.logging_config import SyncContext, get_logger
from attendance_sync.sync_lock import SyncLock

logger = get_logger(__name__)

EVENT_SYNC_START = "sync_start"
EVENT_SYNC_PROGRESS = "sync_progress"
EVENT_SYNC_COMPLETE = "sync_complete"
EVENT_SYNC_ERROR = "sync_error"


class SyncOrchestrator:

    def __init__(self, queue_store, failed_items, network_signal, api, resolution_feed,
                 event_logger=None, cache=None, app=None, settle_delay=1.0,
                 retention_days=7, auto_sync=True, lock=None, timer_factory=threading.Timer):
        self.queue_store = queue_store
        self.failed_items = failed_items
        self.network_signal = network_signal
        self.api = api
        self.resolution_feed = resolution_feed
        self.event_logger = event_logger
        self.cache = cache
        self.app = app
        self.settle_delay = settle_delay
        self.retention_ms = days_to_ms(retention_days)
        self.auto_sync_enabled = auto_sync
        self.lock = lock or SyncLock()
        self.timer_factory = timer_factory

        self.last_result = None
        self.last_run_at = None

        self._listeners = ListenerRegistry("sync")
        self._timer_lock = threading.Lock()
        self._settle_timer = None
        self._unsubscribe_network = None
        self._last_network_status = None

    # -------------------------
    # Lifecycle
    # -------------------------
    def start(self):
        """Start listening for connectivity changes."""
        if self._unsubscribe_network is None:
            self._unsubscribe_network = self.network_signal.subscribe(self._on_network_change)
            logger.info("Sync orchestrator started", auto_sync=self.auto_sync_enabled)

    def stop(self):
        self._cancel_settle_timer()
        if self._unsubscribe_network is not None:
            self._unsubscribe_network()
            self._unsubscribe_network = None
        logger.info("Sync orchestrator stopped")

    def subscribe(self, callback):
        """Subscribe to sync events; returns an unsubscribe function."""
        return self._listeners.add(callback)

    def set_auto_sync(self, enabled):
        self.auto_sync_enabled = bool(enabled)
        if not self.auto_sync_enabled:
            self._cancel_settle_timer()
        logger.info(f"Auto-sync {'enabled' if enabled else 'disabled'}")

    def get_sync_status(self):
        lock_status = self.lock.get_status()
        return {
            "isSyncing": lock_status["is_locked"],
            "syncOperation": lock_status["current_operation"],
            "autoSyncEnabled": self.auto_sync_enabled,
            "isOnline": self.network_signal.get_status(),
            "failedCount": len(self.failed_items),
            "lastRunAt": self.last_run_at,
            "lastResult": self.last_result,
        }

    # -------------------------
    # Triggers
    # -------------------------
    def _on_network_change(self, online):
        previous = self._last_network_status
        self._last_network_status = online

        if not online:
            self._cancel_settle_timer()
            return
        if previous is True or not self.auto_sync_enabled:
            return

        logger.info("Network restored, scheduling auto-sync", settle_delay=self.settle_delay)
        self._schedule_settled_sync()

    def _schedule_settled_sync(self):
        # Restarting the timer collapses a burst of flaps into one run
        with self._timer_lock:
            if self._settle_timer is not None:
                self._settle_timer.cancel()
            timer = self.timer_factory(self.settle_delay, self._run_settled)
            timer.daemon = True
            self._settle_timer = timer
            timer.start()

    def _cancel_settle_timer(self):
        with self._timer_lock:
            if self._settle_timer is not None:
                self._settle_timer.cancel()
                self._settle_timer = None

    def _run_settled(self):
        with self._timer_lock:
            self._settle_timer = None
        if not self.network_signal.get_status():
            return None
        return self._run_in_background("network-restored")

    def periodic_sync(self):
        """Scheduler entry point."""
        if not self.auto_sync_enabled or not self.network_signal.get_status():
            return None
        return self._run_in_background("periodic")

    def _run_in_background(self, trigger):
        try:
            return self.sync_all(trigger=trigger)
        except Exception as e:
            logger.error("Background sync failed", trigger=trigger, error=str(e), exc_info=True)
            return None

    def force_sync_now(self):
        logger.info("Force sync triggered")
        return self.sync_all(trigger="manual")

    def clear_failed_items(self):
        """Allow previously rejected submissions to be retried."""
        return self.failed_items.clear()

    def clear_offline_data(self):
        """
        Wipe the queue, the failed set and the projection cache.

        Raises:
            SyncInProgressError: If a sync run (here or in another process) is active
        """
        with self._app_context():
            with self.lock.acquire_sync_lock("clear-offline-data"):
                removed = {
                    "queue": self.queue_store.clear(),
                    "failed": self.failed_items.clear(),
                    "cache": self.cache.clear() if self.cache is not None else 0,
                }
        logger.warning("All offline data cleared", **removed)
        return removed

    # -------------------------
    # Sync run
    # -------------------------
    def _app_context(self):
        if self.app is None or has_app_context():
            return nullcontext()
        return self.app.app_context()

    def sync_all(self, trigger="manual"):
        """
        Run one reconciliation pass.

        Returns:
            dict: {"skipped": True} if a run is already active,
                  {"offline": True} if the network is down,
                  otherwise {"success": int, "failed": int, "errors": [{"id", "error"}]}
        """
        with self._app_context():
            try:
                with self.lock.acquire_sync_lock(f"attendance-sync:{trigger}"):
                    return self._run(trigger)
            except SyncInProgressError:
                logger.info("Sync already in progress, skipping", trigger=trigger)
                return {"skipped": True}

    def _run(self, trigger):
        if not self.network_signal.get_status():
            logger.info("Offline, cannot sync", trigger=trigger)
            return {"offline": True}

        self._listeners.notify({"type": EVENT_SYNC_START})
        results = {"success": 0, "failed": 0, "errors": []}

        try:
            with SyncContext(trigger) as run_context:
                run_context.results = results
                # Another process may have cleared or extended the failed set
                self.failed_items.reload()
                self._cleanup_resolved()

                pending = self.queue_store.list_pending()
                if not pending:
                    logger.info("No pending data to sync")
                    self._prune()
                    self._finish(results)
                    return results

                total = len(pending)
                logger.info(f"Syncing {total} pending attendance records")

                for item in pending:
                    if item.id in self.failed_items:
                        logger.debug(f"Skipping already-failed item {item.id}")
                        continue
                    if not self.lock.refresh():
                        logger.warning("Sync lease lost to another process, stopping sync")
                        break

                    payload = item.wire_payload()
                    try:
                        self.api.save_attendance(payload)
                    except Exception as e:
                        results["failed"] += 1
                        results["errors"].append({"id": item.id, "error": str(e)})
                        network_error = isinstance(e, NetworkError)
                        logger.warning(
                            f"Failed to sync attendance {item.id}",
                            error=str(e),
                            error_type=type(e).__name__,
                        )

                        # Transport errors are retried next run; rejections stick
                        if not network_error:
                            self._mark_failed(item.id)
                        self._report_failure(item, payload, e, report_remote=not network_error)

                        if network_error:
                            logger.info("Network error detected, stopping sync")
                            break
                        continue

                    self.queue_store.mark_synced(item.id)
                    self._after_success(item, payload)
                    results["success"] += 1
                    self._listeners.notify({
                        "type": EVENT_SYNC_PROGRESS,
                        "current": results["success"] + results["failed"],
                        "total": total,
                    })
                    logger.info(f"Synced attendance {item.id}")

                self._prune()

            logger.info(f"Sync complete: {results['success']} success, {results['failed']} failed")
            self._finish(results)
            return results
        except Exception as e:
            self._listeners.notify({"type": EVENT_SYNC_ERROR, "error": str(e)})
            raise

    def _cleanup_resolved(self):
        """Drop queue entries an administrator resolved server-side."""
        try:
            resolved_ids = self.resolution_feed.poll()
            if not resolved_ids:
                self.resolution_feed.commit()
                return
            logger.info(f"Found {len(resolved_ids)} resolved errors from server", ids=resolved_ids)
            for attendance_id in resolved_ids:
                self.queue_store.delete(attendance_id)
            self.failed_items.discard_many(resolved_ids)
            # Only now is it safe to stop asking for these ids
            self.resolution_feed.commit()
            logger.info(f"Cleanup complete. Remaining failed items: {len(self.failed_items)}")
        except Exception as e:
            logger.error("Failed to cleanup resolved items", error=str(e), exc_info=True)

    def _after_success(self, item, payload):
        class_id = payload.get("classId")
        if class_id is not None and self.cache is not None:
            self.cache.invalidate(class_id)
        if self.event_logger is not None:
            self.event_logger.log_success({
                "classId": class_id,
                "attendanceDate": payload.get("attendanceDate"),
                "attendanceType": payload.get("attendanceType"),
                "attendanceId": item.id,
                "recordCount": len(payload.get("records") or []),
            })

    def _mark_failed(self, item_id):
        try:
            self.failed_items.add(item_id)
        except StorageError as e:
            # Left out of the set, the entry is simply retried next run
            logger.error(f"Could not record failed item {item_id}", error=str(e))

    def _report_failure(self, item, payload, error, report_remote=True):
        if self.event_logger is None:
            return
        self.event_logger.log_error({
            "classId": payload.get("classId"),
            "attendanceDate": payload.get("attendanceDate"),
            "attendanceType": payload.get("attendanceType"),
            "error": str(error),
            "attendanceId": item.id,
            "online": self.network_signal.get_status(),
            "records": payload.get("records") or [],
        }, report_remote=report_remote)

    def _prune(self):
        try:
            self.queue_store.prune_synced_older_than(self.retention_ms)
        except Exception as e:
            logger.error("Failed to prune synced entries", error=str(e))

    def _finish(self, results):
        self.last_result = results
        self.last_run_at = now_ms()
        self._listeners.notify({"type": EVENT_SYNC_COMPLETE, "results": results})
