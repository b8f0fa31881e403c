from typing import Dict, List, Optional

import requests
from requests.exceptions import ConnectionError, RequestException, Timeout
from urllib3.exceptions import ProtocolError

from attendance_sync.exceptions import ApplicationError, NetworkError
from attendance_sync.logging_config import get_logger

logger = get_logger(__name__)

# Proxy/load-balancer statuses that mean "the app never saw the request"
GATEWAY_STATUSES = (502, 503, 504)


class AttendanceAPI:
    """Connection layer for the remote attendance service, on a reusable requests session.

    Every failure surfaces as either NetworkError (transport, retry later) or
    ApplicationError (the service answered with a rejection). Retries are the
    orchestrator's concern, not this client's.
    """

    def __init__(self, base_url, token=None, submit_timeout=90, resolution_timeout=10,
                 probe_timeout=5):
        if not base_url:
            raise ValueError("Missing attendance API base URL")

        self.base_url = base_url.rstrip("/")
        self.submit_timeout = submit_timeout
        self.resolution_timeout = resolution_timeout
        self.probe_timeout = probe_timeout

        # Reusable HTTP session
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})

    @property
    def health_url(self):
        return f"{self.base_url}/health"

    def _request(self, method: str, endpoint: str, timeout: float, **kwargs):
        """
        Make a request and classify failures.

        Raises:
            NetworkError: connection refused, DNS, timeout, gateway errors
            ApplicationError: any other HTTP error response
        """
        url = f"{self.base_url}{endpoint}"
        try:
            r = self.session.request(method, url, timeout=timeout, **kwargs)
        except (ConnectionError, ProtocolError, Timeout) as e:
            raise NetworkError(f"Network error calling {method} {endpoint}: {e}") from e
        except RequestException as e:
            raise NetworkError(f"Request to {method} {endpoint} failed: {e}") from e

        if r.status_code >= 400:
            raise self._error_from_response(r, method, endpoint)

        if not r.text:
            return None
        try:
            return r.json()
        except ValueError as e:
            raise ApplicationError(
                f"Invalid JSON from {method} {endpoint}",
                status_code=r.status_code,
                body=r.text,
            ) from e

    @staticmethod
    def _error_from_response(r, method, endpoint):
        try:
            body = r.json()
        except ValueError:
            body = None

        if body is None and r.status_code in GATEWAY_STATUSES:
            return NetworkError(f"{r.status_code} from gateway on {method} {endpoint}")

        message = None
        if isinstance(body, dict):
            message = body.get("error") or body.get("message")
        if not message:
            message = (r.text or "").strip() or f"HTTP {r.status_code}"
        return ApplicationError(message, status_code=r.status_code, body=body)

    # -------------------------
    # Attendance
    # -------------------------
    def save_attendance(self, payload: Dict) -> Dict:
        return self._request("POST", "/attendance", timeout=self.submit_timeout, json=payload)

    # -------------------------
    # Sync errors
    # -------------------------
    def get_resolved_attendance_ids(self, since: Optional[int] = None):
        params = {"since": since} if since is not None else None
        return self._request(
            "GET",
            "/sync-errors/my-resolved-attendance-ids",
            timeout=self.resolution_timeout,
            params=params,
        )

    def log_sync_error(self, entry: Dict) -> Optional[Dict]:
        return self._request("POST", "/sync-errors", timeout=self.resolution_timeout, json=entry)

    # -------------------------
    # Classes (cache warm-up)
    # -------------------------
    def get_classes(self) -> List[Dict]:
        response = self._request("GET", "/classes", timeout=self.resolution_timeout)
        if isinstance(response, dict):
            return response.get("classes") or response.get("data") or []
        return response or []

    def get_students(self, class_id: int) -> List[Dict]:
        response = self._request("GET", f"/classes/{class_id}/students", timeout=self.resolution_timeout)
        if isinstance(response, dict):
            return response.get("students") or response.get("data") or []
        return response or []
