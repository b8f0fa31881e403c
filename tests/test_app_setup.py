"""
Tests for app wiring: config selection, scheduler setup, the sync lock and run logging.
"""
import pytest
import structlog
from unittest.mock import Mock, patch

from attendance_sync import init_scheduler, SYNC_JOB_ID
from attendance_sync.config import LocalConfig, ProductionConfig, TestingConfig, get_config
from attendance_sync.db_config import configure_database
from attendance_sync.exceptions import SyncInProgressError
from attendance_sync.logging_config import SyncContext
from attendance_sync.sync_lock import SyncLock


class TestConfig:

    @pytest.mark.parametrize("env, expected", [
        ("local", LocalConfig),
        ("development", LocalConfig),
        ("production", ProductionConfig),
        ("prod", ProductionConfig),
        ("test", TestingConfig),
        ("something-else", LocalConfig),
    ])
    def test_get_config(self, monkeypatch, env, expected):
        monkeypatch.delenv("FLASK_ENV", raising=False)
        monkeypatch.setenv("ENVIRONMENT", env)
        assert get_config() is expected

    def test_testing_config_pins_database(self, app):
        assert app.config["SQLALCHEMY_DATABASE_URI"] == "sqlite:///:memory:"
        assert app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] is False

    def test_local_database_from_env(self, monkeypatch):
        monkeypatch.setenv("LOCAL_DATABASE_URL", "sqlite:///custom.sqlite")
        app = Mock()
        app.config = {"ENV": "local"}

        configure_database(app)

        assert app.config["SQLALCHEMY_DATABASE_URI"] == "sqlite:///custom.sqlite"


class TestScheduler:

    def test_disabled_by_config(self, app, services):
        assert init_scheduler(app, services.orchestrator) is None

    def test_registers_periodic_sync_job(self, app, services):
        app.config["SCHEDULER_ENABLED"] = True
        with patch("attendance_sync.BackgroundScheduler") as mock_scheduler_cls, \
                patch("attendance_sync.atexit.register"):
            scheduler = init_scheduler(app, services.orchestrator)

        assert scheduler is mock_scheduler_cls.return_value
        _, kwargs = scheduler.add_job.call_args
        assert kwargs["func"] == services.orchestrator.periodic_sync
        assert kwargs["minutes"] == app.config["SYNC_INTERVAL_MINUTES"]
        assert kwargs["id"] == SYNC_JOB_ID
        scheduler.start.assert_called_once()


class TestSyncLock:

    def test_second_acquire_fails_fast(self):
        lock = SyncLock()
        with lock.acquire_sync_lock("first"):
            status = lock.get_status()
            assert status["is_locked"] is True
            assert status["current_operation"] == "first"
            with pytest.raises(SyncInProgressError):
                with lock.acquire_sync_lock("second"):
                    pass
        assert lock.get_status()["is_locked"] is False

    def test_released_after_exception(self):
        lock = SyncLock()
        with pytest.raises(ValueError):
            with lock.acquire_sync_lock("boom"):
                raise ValueError("boom")
        assert lock.get_status()["is_locked"] is False


class TestSyncContext:

    def test_binds_run_fields_only_inside_the_run(self):
        with SyncContext("manual", operation_id="abc12345") as run_context:
            bound = structlog.contextvars.get_contextvars()
            assert bound["operation_id"] == "abc12345"
            assert bound["trigger"] == "manual"
            run_context.results = {"success": 1, "failed": 0}

        assert "operation_id" not in structlog.contextvars.get_contextvars()
        assert run_context.duration_seconds >= 0

    def test_does_not_swallow_errors(self):
        with pytest.raises(RuntimeError):
            with SyncContext("periodic"):
                raise RuntimeError("boom")
        assert "trigger" not in structlog.contextvars.get_contextvars()
