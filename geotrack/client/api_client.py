"""
Control API Client

Thin httpx client for the worker control API. Transport failures are
raised as ServiceUnavailable so a SupervisedConnection can treat them
like a dead handle.
"""

from typing import Any, Dict, Optional

import httpx
from loguru import logger

from ..core.errors import ServiceUnavailable


class WorkerClient:
    """Client for a running worker's control API"""

    def __init__(self, base_url: str = "http://127.0.0.1:8000", timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self.client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self.client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise ServiceUnavailable(f"{self.base_url} unreachable: {e}") from e

    def _json(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = self._request(method, path, **kwargs)
        response.raise_for_status()
        return response.json()

    def ping(self) -> bool:
        """Return True if the API answers its health check"""
        try:
            response = self._request("GET", "/health")
        except ServiceUnavailable:
            return False
        return response.status_code == 200 and response.json().get('status') == 'healthy'

    def status(self) -> Dict[str, Any]:
        return self._json("GET", "/api/worker")

    def start(self) -> Dict[str, Any]:
        return self._json("POST", "/api/worker/start")

    def stop(self) -> Dict[str, Any]:
        return self._json("POST", "/api/worker/stop")

    def set_foreground(self, foreground: bool) -> bool:
        """Returns True if the mode changed"""
        return self._json("PUT", "/api/worker/foreground", json={'foreground': foreground})['changed']

    def upload_latest(self) -> bool:
        return self._json("POST", "/api/worker/upload")['queued']

    def get_settings(self) -> Dict[str, Any]:
        return self._json("GET", "/api/settings")

    def update_settings(self, **fields) -> Dict[str, Any]:
        """Update server_url, user_name and/or upload_enabled"""
        return self._json("PATCH", "/api/settings", json=fields)

    def set_interval(self, kind: str, interval_ms: int) -> bool:
        """
        Set an interval.

        Returns:
            False if the worker rejected the value
        """
        response = self._request("PUT", f"/api/settings/intervals/{kind}", json={'interval_ms': interval_ms})
        if response.status_code == 422:
            logger.warning(f"Interval {kind}={interval_ms} rejected: {response.text}")
            return False
        response.raise_for_status()
        return True

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
