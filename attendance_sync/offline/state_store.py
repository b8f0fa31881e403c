"""Single-row key/value persistence for small pieces of sticky sync state."""
from sqlalchemy.exc import SQLAlchemyError

from attendance_sync.exceptions import StorageError
from attendance_sync.logging_config import get_logger
from attendance_sync.models import SyncState, db

logger = get_logger(__name__)


def get_state(key, default=None):
    try:
        # Another process may have written the row since this session loaded it
        row = db.session.get(SyncState, key, populate_existing=True)
    except (SQLAlchemyError, RuntimeError) as e:
        raise StorageError(f"Could not read sync state '{key}': {e}") from e
    if row is None or row.value is None:
        return default
    return row.value


def set_state(key, value):
    try:
        row = db.session.get(SyncState, key)
        if row is None:
            db.session.add(SyncState(key=key, value=value))
        else:
            row.value = value
        db.session.commit()
    except (SQLAlchemyError, RuntimeError) as e:
        try:
            db.session.rollback()
        except Exception:
            pass  # Ignore rollback errors
        raise StorageError(f"Could not write sync state '{key}': {e}") from e


def delete_state(key):
    try:
        row = db.session.get(SyncState, key)
        if row is not None:
            db.session.delete(row)
            db.session.commit()
    except (SQLAlchemyError, RuntimeError) as e:
        try:
            db.session.rollback()
        except Exception:
            pass  # Ignore rollback errors
        raise StorageError(f"Could not delete sync state '{key}': {e}") from e
