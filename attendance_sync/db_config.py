"""Database configuration for the on-device queue database (SQLite)."""
import os
import sqlite3
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import Engine

DEFAULT_DATA_DIR = Path.home() / ".attendance_sync"


def get_sqlite_engine_options(busy_timeout=15):
    """Engine options shared by every file-backed queue database.

    The scheduler thread, the settle timer and request threads all write to
    the same file, so connections may cross threads and wait on a lock.
    """
    return {
        "connect_args": {
            "timeout": busy_timeout,      # seconds to wait on a locked database file
            "check_same_thread": False,
        },
    }


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cursor = dbapi_connection.cursor()
    # WAL lets the UI read the queue while a sync run is writing
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def get_local_database_config():
    """Get database configuration for local development.

    Returns:
        tuple: (database_uri, engine_options)
    """
    database_uri = os.environ.get("LOCAL_DATABASE_URL") or "sqlite:///attendance_sync.sqlite"
    return database_uri, get_sqlite_engine_options()


def get_production_database_config():
    """Get database configuration for a deployed device.

    The queue lives on the device itself, so production is still SQLite, at a
    stable path under the user's home directory unless overridden.

    Returns:
        tuple: (database_uri, engine_options)
    """
    database_url = os.environ.get("PRODUCTION_DATABASE_URL") or os.environ.get("DATABASE_URL")
    if not database_url:
        data_dir = Path(os.environ.get("ATTENDANCE_SYNC_DATA_DIR") or DEFAULT_DATA_DIR)
        data_dir.mkdir(parents=True, exist_ok=True)
        database_url = f"sqlite:///{data_dir / 'queue.sqlite'}"

    return database_url, get_sqlite_engine_options(busy_timeout=30)


def get_database_config(environment=None):
    """Pick the queue database for an environment ('local' or 'production').

    Falls back to ENVIRONMENT / FLASK_ENV when no environment is given.
    """
    if environment is None:
        environment = os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")
    if environment.lower() in ["production", "prod"]:
        return get_production_database_config()
    return get_local_database_config()


def configure_database(app):
    """Set SQLAlchemy config on the app.

    A config class that already pins SQLALCHEMY_DATABASE_URI (tests) keeps it.
    """
    if not app.config.get("SQLALCHEMY_DATABASE_URI"):
        database_uri, engine_options = get_database_config(app.config.get("ENV"))
        app.config["SQLALCHEMY_DATABASE_URI"] = database_uri
        if engine_options:
            app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["SQLALCHEMY_ECHO"] = False  # Set to True for SQL query debugging

    if not event.contains(Engine, "connect", _set_sqlite_pragmas):
        event.listen(Engine, "connect", _set_sqlite_pragmas)
