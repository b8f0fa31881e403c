"""
Shared fixtures: an app on in-memory SQLite with the remote service mocked out.
"""
import pytest
from unittest.mock import Mock

from attendance_sync import create_app
from attendance_sync.config import TestingConfig
from attendance_sync.models import db
from attendance_sync.services import get_services


class FakeTimer:
    """Stand-in for threading.Timer that only fires when a test says so."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled:
            return self.function()
        return None


@pytest.fixture
def mock_api():
    """Remote attendance service that accepts everything by default."""
    api = Mock()
    api.health_url = "http://attendance.test/api/health"
    api.save_attendance.return_value = {"success": True}
    api.get_resolved_attendance_ids.return_value = []
    api.log_sync_error.return_value = {"success": True}
    api.get_classes.return_value = []
    api.get_students.return_value = []
    return api


@pytest.fixture
def app(mock_api):
    """Create Flask application for testing."""
    app = create_app(TestingConfig, api=mock_api)

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def services(app):
    return get_services()


@pytest.fixture
def timers():
    """List of FakeTimers created through `timer_factory`."""
    created = []

    def factory(interval, function):
        timer = FakeTimer(interval, function)
        created.append(timer)
        return timer

    factory.created = created
    return factory


def _make_payload(class_id=1, attendance_date="2025-01-05", attendance_type="Lễ Chúa Nhật", records=None):
    """Wire payload for one attendance session (2025-01-05 is a Sunday)."""
    if records is None:
        records = [
            {"studentId": 10, "isPresent": True},
            {"studentId": 11, "isPresent": False},
        ]
    return {
        "classId": class_id,
        "attendanceDate": attendance_date,
        "attendanceType": attendance_type,
        "records": records,
        "attendanceMethod": "manual",
    }


@pytest.fixture
def make_payload():
    return _make_payload

