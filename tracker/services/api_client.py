"""
FocusBand API Client
Thin wrapper over the REST backend used by the tracking client.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from config import config

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Raised when the backend cannot be reached or answers with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class FocusApiClient:
    """HTTP client for the sessions, metrics, stats and export endpoints."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or config.API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.REQUEST_TIMEOUT
        self.http = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"{method} {path} failed: {e}")
            raise ApiError(f"{method} {path} failed: {e}") from e

        if not response.ok:
            try:
                payload = response.json()
            except ValueError:
                payload = response.text
            logger.error(f"{method} {path} returned {response.status_code}: {payload}")
            raise ApiError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
                payload=payload,
            )

        return response

    def _json(self, method: str, path: str, **kwargs) -> Any:
        response = self._request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{method} {path} returned a body that is not JSON: {e}")
            raise ApiError(
                f"{method} {path} returned invalid JSON",
                status_code=response.status_code,
                payload=response.text,
            ) from e

    # Sessions

    def create_session(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._json("POST", "/api/sessions", json=data)

    def list_sessions(self) -> List[Dict[str, Any]]:
        return self._json("GET", "/api/sessions")

    def get_session(self, session_id: str) -> Dict[str, Any]:
        return self._json("GET", f"/api/sessions/{session_id}")

    def update_session(self, session_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._json("PATCH", f"/api/sessions/{session_id}", json=data)

    def delete_session(self, session_id: str) -> bool:
        return bool(self._json("DELETE", f"/api/sessions/{session_id}").get("success"))

    # Metrics

    def save_metrics(self, metrics: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self._json("POST", "/api/metrics", json=metrics)

    def get_session_metrics(self, session_id: str) -> List[Dict[str, Any]]:
        return self._json("GET", f"/api/metrics/session/{session_id}")

    # Stats and export

    def get_stats(self) -> Dict[str, Any]:
        return self._json("GET", "/api/stats")

    def export_csv(self) -> str:
        return self._request("GET", "/api/export/csv").text

    def export_json(self) -> List[Dict[str, Any]]:
        return self._json("GET", "/api/export/json")

    def close(self):
        self.http.close()
