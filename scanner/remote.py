# scanner/remote.py
"""Client for the policy scan service."""

import logging
from typing import Any, Optional

import httpx

from models import PolicySummary, ScanResponse
from scanner.exceptions import RemoteScanError
from scanner.runner import summarize_response

logger = logging.getLogger(__name__)

SCAN_PATH = "/v1/policy/scan"


class RemoteScanClient:
    """
    Sends one policy per request; each request is bounded by `timeout` seconds.

    `http_client` may be any httpx.Client (e.g. fastapi's TestClient); `base_url` is then ignored.
    """

    def __init__(self, base_url: str = "http://localhost:50051", timeout: float = 3.0,
                 http_client: Optional[httpx.Client] = None) -> None:
        self.timeout = timeout
        self._client = http_client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "RemoteScanClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def scan(self, policy: str) -> ScanResponse:
        try:
            response = self._client.post(SCAN_PATH, json={"policy": policy})
        except httpx.TimeoutException as e:
            raise RemoteScanError(f"scan request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise RemoteScanError(f"scan request failed: {e}") from e
        if response.status_code >= 400:
            raise RemoteScanError(f"scan service returned {response.status_code}: {response.text}")
        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteScanError("scan service returned a non-JSON response") from e
        logger.debug("Scan response: %s", payload)
        return ScanResponse.from_dict(payload)

    def summarize(self, policy: str) -> PolicySummary:
        return summarize_response(policy, self.scan(policy))
