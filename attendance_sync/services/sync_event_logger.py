from datetime import datetime

from attendance_sync.datetime_utils import MS_PER_DAY, MS_PER_SECOND, now_ms
from attendance_sync.logging_config import get_logger
from attendance_sync.models import SyncEvent, db
from attendance_sync.offline.state_store import get_state, set_state

logger = get_logger(__name__)

LOGGED_ERRORS_KEY = "logged_sync_errors"
MAX_LOCAL_LOGS = 50
KIND_ERROR = "error"
KIND_SUCCESS = "success"


class SyncEventLogger:
    """
    Records sync outcomes locally and reports failures to the server's
    sync-error log for administrators.

    Reporting is fire-and-forget: nothing here raises into a sync run.
    """

    def __init__(self, api, network_signal=None, cache=None, dedup_seconds=3600,
                 max_local_logs=MAX_LOCAL_LOGS):
        self.api = api
        self.network_signal = network_signal
        self.cache = cache
        self.dedup_ms = int(dedup_seconds * MS_PER_SECOND)
        self.max_local_logs = max_local_logs

    @staticmethod
    def error_key(error_data):
        return (
            f"{error_data.get('attendanceId')}_{error_data.get('classId')}_"
            f"{error_data.get('attendanceDate')}_{error_data.get('attendanceType')}"
        )

    def log_error(self, error_data, report_remote=True):
        """
        Report a failed replay once per submission identity per dedup window.

        With report_remote=False (transport failures, where the server is
        known to be unreachable) only the local entry is written and the
        identity stays eligible for a later server report.

        Returns:
            bool: True if the report reached the server
        """
        try:
            key = self.error_key(error_data)
            now = now_ms()
            logged = self._recent_error_keys(now)
            if key in logged:
                logger.debug("Error already logged recently, skipping", error_key=key)
                return False

            online = error_data.get("online")
            if online is None and self.network_signal is not None:
                online = self.network_signal.get_status()

            self._save_local(
                KIND_ERROR,
                class_id=error_data.get("classId"),
                attendance_date=error_data.get("attendanceDate"),
                attendance_type=error_data.get("attendanceType"),
                attendance_id=error_data.get("attendanceId"),
                error=error_data.get("error"),
                record_count=len(error_data.get("records") or []),
                online=online,
            )
            if not report_remote:
                return False

            self.api.log_sync_error({
                "classId": error_data.get("classId"),
                "attendanceDate": error_data.get("attendanceDate"),
                "attendanceType": error_data.get("attendanceType"),
                "attendanceId": error_data.get("attendanceId"),
                "error": error_data.get("error"),
                "online": online,
                "records": error_data.get("records") or [],
            })

            logged[key] = now
            set_state(LOGGED_ERRORS_KEY, logged)
            logger.info("Sync error logged to backend", error_key=key)
            return True
        except Exception as e:
            logger.warning("Failed to report sync error", error=str(e), error_type=type(e).__name__)
            try:
                db.session.rollback()
            except Exception:
                pass  # Ignore rollback errors
            return False

    def log_success(self, success_data):
        try:
            self._save_local(
                KIND_SUCCESS,
                class_id=success_data.get("classId"),
                attendance_date=success_data.get("attendanceDate"),
                attendance_type=success_data.get("attendanceType"),
                attendance_id=success_data.get("attendanceId"),
                record_count=success_data.get("recordCount") or 0,
            )
        except Exception as e:
            logger.warning("Failed to record sync success", error=str(e))
            try:
                db.session.rollback()
            except Exception:
                pass  # Ignore rollback errors

    def _recent_error_keys(self, now):
        cutoff = now - self.dedup_ms
        stored = get_state(LOGGED_ERRORS_KEY, default={}) or {}
        return {key: ts for key, ts in stored.items() if ts > cutoff}

    def _class_name(self, class_id):
        if class_id is None or self.cache is None:
            return None
        try:
            return self.cache.class_names().get(class_id)
        except Exception as e:
            logger.debug("Failed to get class name", class_id=class_id, error=str(e))
            return None

    def _save_local(self, kind, class_id=None, **fields):
        db.session.add(SyncEvent(
            kind=kind,
            timestamp=now_ms(),
            class_id=class_id,
            class_name=self._class_name(class_id),
            **fields,
        ))
        db.session.commit()

        # Keep only the newest max_local_logs per kind
        stale_ids = [
            row.id for row in
            SyncEvent.query.filter_by(kind=kind)
            .order_by(SyncEvent.timestamp.desc(), SyncEvent.id.desc())
            .offset(self.max_local_logs)
            .all()
        ]
        if stale_ids:
            SyncEvent.query.filter(SyncEvent.id.in_(stale_ids)).delete(synchronize_session=False)
            db.session.commit()

    # -------------------------
    # Monitor views
    # -------------------------
    def local_logs(self, kind=KIND_ERROR):
        rows = (
            SyncEvent.query.filter_by(kind=kind)
            .order_by(SyncEvent.timestamp.desc(), SyncEvent.id.desc())
            .all()
        )
        return [row.to_dict() for row in rows]

    def all_logs(self):
        rows = SyncEvent.query.order_by(SyncEvent.timestamp.desc(), SyncEvent.id.desc()).all()
        return [row.to_dict() for row in rows]

    def clear_local_logs(self, kind="all"):
        query = SyncEvent.query
        if kind != "all":
            query = query.filter_by(kind=kind)
        removed = query.delete(synchronize_session=False)
        db.session.commit()
        logger.info("Local sync logs cleared", kind=kind, removed=removed)
        return removed

    def stats(self):
        errors = self.local_logs(KIND_ERROR)
        successes = self.local_logs(KIND_SUCCESS)
        one_day_ago = now_ms() - MS_PER_DAY

        by_class = {}
        for log in errors:
            class_key = log["className"] or log["classId"] or "unknown"
            by_class[str(class_key)] = by_class.get(str(class_key), 0) + 1

        return {
            "totalErrors": len(errors),
            "totalSuccesses": len(successes),
            "last24hErrors": sum(1 for log in errors if log["timestamp"] > one_day_ago),
            "last24hSuccesses": sum(1 for log in successes if log["timestamp"] > one_day_ago),
            "byClass": by_class,
            "generatedAt": datetime.utcnow().isoformat(),
        }
