"""
Tests for the online-or-queue submission path.
"""
import pytest
from unittest.mock import Mock

from attendance_sync.exceptions import ApplicationError, NetworkError, StorageError
from attendance_sync.network.signal import NetworkSignal
from attendance_sync.offline.queue_store import QueueStore
from attendance_sync.services.submission_gateway import SubmissionGateway
from attendance_sync.submission import AttendanceSubmission


class TestSubmissionGateway:

    def test_online_success_returns_remote_response_and_queues_nothing(self, app, mock_api, make_payload):
        mock_api.save_attendance.return_value = {"success": True, "id": 55}
        store = QueueStore()
        gateway = SubmissionGateway(mock_api, NetworkSignal(True), store)

        result = gateway.save(make_payload())

        assert result == {"success": True, "id": 55}
        assert store.list_pending() == []

    def test_offline_queues_without_calling_remote(self, app, mock_api, make_payload):
        store = QueueStore()
        gateway = SubmissionGateway(mock_api, NetworkSignal(False), store)

        result = gateway.save(make_payload())

        mock_api.save_attendance.assert_not_called()
        assert result["offline"] is True
        assert store.get(result["queuedId"]).wire_payload() == make_payload()

    def test_network_error_falls_back_to_queue(self, app, mock_api, make_payload):
        mock_api.save_attendance.side_effect = NetworkError("timed out")
        store = QueueStore()
        gateway = SubmissionGateway(mock_api, NetworkSignal(True), store)

        result = gateway.save(make_payload())

        assert result["offline"] is True
        assert len(store.list_pending()) == 1

    def test_application_error_propagates_and_is_not_queued(self, app, mock_api, make_payload):
        mock_api.save_attendance.side_effect = ApplicationError("Invalid class ID", status_code=400)
        store = QueueStore()
        gateway = SubmissionGateway(mock_api, NetworkSignal(True), store)

        with pytest.raises(ApplicationError):
            gateway.save(make_payload())
        assert store.list_pending() == []

    def test_storage_error_propagates_when_offline(self, make_payload):
        store = Mock()
        store.enqueue.side_effect = StorageError("disk full")
        gateway = SubmissionGateway(Mock(), NetworkSignal(False), store)

        with pytest.raises(StorageError):
            gateway.save(make_payload())

    def test_accepts_submission_objects(self, app, mock_api, make_payload):
        gateway = SubmissionGateway(mock_api, NetworkSignal(True), QueueStore())
        submission = AttendanceSubmission.from_payload(make_payload(attendance_type="Le Chua Nhat"))

        gateway.save(submission)

        sent = mock_api.save_attendance.call_args[0][0]
        assert sent["attendanceType"] == "Lễ Chúa Nhật"
        assert sent["records"][0] == {"studentId": 10, "isPresent": True}
