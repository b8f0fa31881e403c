from attendance_sync.exceptions import NetworkError
from attendance_sync.logging_config import get_logger
from attendance_sync.submission import AttendanceSubmission

logger = get_logger(__name__)


class SubmissionGateway:
    """Single entry point for saving attendance, online or not."""

    def __init__(self, api, network_signal, queue_store):
        self.api = api
        self.network_signal = network_signal
        self.queue_store = queue_store

    def save(self, submission):
        """
        Submit attendance, falling back to the offline queue.

        Args:
            submission: AttendanceSubmission or its wire payload dict

        Returns:
            dict: the remote response verbatim when it was accepted online, or
            {"offline": True, "queuedId": id} when it was queued locally

        Raises:
            ApplicationError: the server rejected the submission (not queued)
            StorageError: offline and the local queue could not store it
        """
        if isinstance(submission, AttendanceSubmission):
            payload = submission.to_payload()
        else:
            payload = dict(submission)

        if not self.network_signal.get_status():
            logger.info("Offline, queueing attendance", class_id=payload.get("classId"))
            return self._queue(payload)

        try:
            return self.api.save_attendance(payload)
        except NetworkError as e:
            logger.warning(
                "Attendance server unreachable, queueing for later sync",
                class_id=payload.get("classId"),
                error=str(e),
            )
            return self._queue(payload)

    def _queue(self, payload):
        queued_id = self.queue_store.enqueue(payload)
        return {
            "offline": True,
            "queuedId": queued_id,
            "message": "Saved offline; will sync when the connection returns",
        }
