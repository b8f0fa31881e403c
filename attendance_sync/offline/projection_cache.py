"""
Read-through cache of per-class server projections.

`class` and `students` rows feed the pending-items view; `history` and
`excel` are derived from attendance and go stale whenever a submission for
that class lands upstream.
"""
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from attendance_sync.datetime_utils import MS_PER_HOUR, now_ms
from attendance_sync.exceptions import StorageError
from attendance_sync.logging_config import get_logger
from attendance_sync.models import CachedProjection, db

logger = get_logger(__name__)

KIND_CLASS = "class"
KIND_STUDENTS = "students"
KIND_HISTORY = "history"
KIND_EXCEL = "excel"
PROJECTION_KINDS = (KIND_CLASS, KIND_STUDENTS, KIND_HISTORY, KIND_EXCEL)

# Projections rebuilt from attendance data
ATTENDANCE_DERIVED_KINDS = (KIND_HISTORY, KIND_EXCEL)

MAX_CACHED_EXCEL_CLASSES = 5
DEFAULT_MAX_AGE_MS = MS_PER_HOUR


class ProjectionCache:

    def __init__(self, max_excel_classes: int = MAX_CACHED_EXCEL_CLASSES):
        self.max_excel_classes = max_excel_classes

    def put(self, class_id: int, kind: str, data: Any) -> None:
        if kind not in PROJECTION_KINDS:
            raise ValueError(f"Unknown projection kind: {kind}")
        try:
            row = CachedProjection.query.filter_by(class_id=class_id, kind=kind).first()
            if row is None:
                row = CachedProjection(class_id=class_id, kind=kind)
                db.session.add(row)
            row.data = data
            row.last_updated = now_ms()
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageError(f"Could not cache {kind} for class {class_id}: {e}") from e

        if kind == KIND_EXCEL:
            self._evict_old_excel(keep_class_id=class_id)

    def get(self, class_id: int, kind: str) -> Optional[Any]:
        row = CachedProjection.query.filter_by(class_id=class_id, kind=kind).first()
        return row.data if row else None

    def get_entry(self, class_id: int, kind: str) -> Optional[dict]:
        row = CachedProjection.query.filter_by(class_id=class_id, kind=kind).first()
        if row is None:
            return None
        return {"data": row.data, "lastUpdated": row.last_updated}

    def get_all(self, kind: str) -> List[Any]:
        rows = CachedProjection.query.filter_by(kind=kind).order_by(CachedProjection.class_id).all()
        return [row.data for row in rows]

    def cache_classes(self, classes: List[dict]) -> None:
        """Store a class list as individual `class` projections keyed by its id."""
        for class_item in classes:
            self.put(int(class_item["id"]), KIND_CLASS, class_item)

    def class_names(self) -> dict:
        return {
            int(c["id"]): c.get("name")
            for c in self.get_all(KIND_CLASS)
            if isinstance(c, dict) and c.get("id") is not None
        }

    @staticmethod
    def is_stale(last_updated: Optional[int], max_age_ms: int = DEFAULT_MAX_AGE_MS) -> bool:
        if not last_updated:
            return True
        return now_ms() - last_updated > max_age_ms

    def invalidate(self, class_id: int) -> int:
        """Drop attendance-derived projections for a class. Never raises."""
        try:
            removed = (
                CachedProjection.query
                .filter(
                    CachedProjection.class_id == class_id,
                    CachedProjection.kind.in_(ATTENDANCE_DERIVED_KINDS),
                )
                .delete(synchronize_session=False)
            )
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Error invalidating cache", class_id=class_id, error=str(e))
            return 0
        logger.debug(f"Cache invalidated for class {class_id}", removed=removed)
        return removed

    def clear(self) -> int:
        try:
            removed = CachedProjection.query.delete(synchronize_session=False)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageError(f"Could not clear projection cache: {e}") from e
        return removed

    def _evict_old_excel(self, keep_class_id: int) -> None:
        rows = (
            CachedProjection.query
            .filter_by(kind=KIND_EXCEL)
            .order_by(CachedProjection.last_updated, CachedProjection.id)
            .all()
        )
        overflow = len(rows) - self.max_excel_classes
        if overflow <= 0:
            return
        for row in rows:
            if overflow <= 0:
                break
            if row.class_id == keep_class_id:
                continue
            db.session.delete(row)
            overflow -= 1
        db.session.commit()
