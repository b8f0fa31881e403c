"""
Tests for the sync outcome log and the de-duplicated server error report.
"""
from unittest.mock import patch

from attendance_sync.exceptions import NetworkError
from attendance_sync.network.signal import NetworkSignal
from attendance_sync.offline.projection_cache import ProjectionCache
from attendance_sync.services.sync_event_logger import SyncEventLogger


def make_error(attendance_id=5, error="Invalid student ID"):
    return {
        "attendanceId": attendance_id,
        "classId": 1,
        "attendanceDate": "2025-01-05",
        "attendanceType": "Lễ Chúa Nhật",
        "error": error,
        "records": [{"studentId": 10, "isPresent": True}],
    }


class TestLogError:

    def test_reports_to_server_and_keeps_local_copy(self, app, mock_api):
        event_logger = SyncEventLogger(mock_api, network_signal=NetworkSignal(True))

        assert event_logger.log_error(make_error()) is True

        sent = mock_api.log_sync_error.call_args[0][0]
        assert sent["attendanceId"] == 5
        assert sent["online"] is True
        logs = event_logger.local_logs("error")
        assert len(logs) == 1
        assert logs[0]["recordCount"] == 1

    def test_same_failure_reported_once_per_window(self, app, mock_api):
        event_logger = SyncEventLogger(mock_api, dedup_seconds=3600)

        assert event_logger.log_error(make_error()) is True
        assert event_logger.log_error(make_error(error="different text")) is False
        assert mock_api.log_sync_error.call_count == 1

        assert event_logger.log_error(make_error(attendance_id=6)) is True
        assert mock_api.log_sync_error.call_count == 2

    def test_window_expiry_allows_report_again(self, app, mock_api):
        event_logger = SyncEventLogger(mock_api, dedup_seconds=3600)
        with patch("attendance_sync.services.sync_event_logger.now_ms", return_value=1_000_000_000):
            event_logger.log_error(make_error())
        with patch("attendance_sync.services.sync_event_logger.now_ms", return_value=1_000_000_000 + 3_600_001):
            assert event_logger.log_error(make_error()) is True
        assert mock_api.log_sync_error.call_count == 2

    def test_unreachable_sink_never_raises_and_retries_later(self, app, mock_api):
        mock_api.log_sync_error.side_effect = NetworkError("offline")
        event_logger = SyncEventLogger(mock_api)

        assert event_logger.log_error(make_error()) is False

        mock_api.log_sync_error.side_effect = None
        assert event_logger.log_error(make_error()) is True

    def test_local_only_entry_leaves_server_report_for_later(self, app, mock_api):
        event_logger = SyncEventLogger(mock_api)

        assert event_logger.log_error(make_error(error="read timed out"), report_remote=False) is False
        mock_api.log_sync_error.assert_not_called()
        assert len(event_logger.local_logs("error")) == 1

        assert event_logger.log_error(make_error()) is True
        assert mock_api.log_sync_error.call_count == 1

    def test_class_name_taken_from_cache(self, app, mock_api):
        cache = ProjectionCache()
        cache.cache_classes([{"id": 1, "name": "Thêm Sức 2"}])
        event_logger = SyncEventLogger(mock_api, cache=cache)

        event_logger.log_error(make_error())

        assert event_logger.local_logs("error")[0]["className"] == "Thêm Sức 2"


class TestLocalLogs:

    def test_local_log_is_capped_per_kind(self, app, mock_api):
        event_logger = SyncEventLogger(mock_api, max_local_logs=3)
        for n in range(5):
            event_logger.log_success({"classId": 1, "attendanceId": n, "recordCount": 2})
        event_logger.log_error(make_error())

        assert len(event_logger.local_logs("success")) == 3
        assert len(event_logger.local_logs("error")) == 1

    def test_clear_by_kind(self, app, mock_api):
        event_logger = SyncEventLogger(mock_api)
        event_logger.log_success({"classId": 1, "attendanceId": 1})
        event_logger.log_error(make_error())

        assert event_logger.clear_local_logs("success") == 1
        assert [log["type"] for log in event_logger.all_logs()] == ["error"]

    def test_stats(self, app, mock_api):
        event_logger = SyncEventLogger(mock_api)
        event_logger.log_success({"classId": 1, "attendanceId": 1})
        event_logger.log_error(make_error(attendance_id=1))
        event_logger.log_error(make_error(attendance_id=2))

        stats = event_logger.stats()
        assert stats["totalErrors"] == 2
        assert stats["totalSuccesses"] == 1
        assert stats["last24hErrors"] == 2
        assert stats["byClass"] == {"1": 2}
