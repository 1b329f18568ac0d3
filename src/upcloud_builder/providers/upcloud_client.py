"""Async HTTP client for the UpCloud API (version 1.3).

Provides plan listing plus server and storage lifecycle calls. Auth uses
HTTP basic credentials of an API sub-account. Includes exponential backoff
with jitter for transient errors and Retry-After header respect for 429
responses. Create is never retried: a duplicate POST would leak a server.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from ..settings import BuilderSettings

logger = logging.getLogger(__name__)

# Status codes eligible for automatic retry.
_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# Default retry configuration.
_DEFAULT_MAX_RETRIES = 3
_DEFAULT_BASE_DELAY = 1.0  # seconds
_DEFAULT_MAX_DELAY = 30.0  # seconds

STOP_TYPE_SOFT = "soft"


# ── Exception hierarchy ─────────────────────────────────────────


class UpCloudAPIError(Exception):
    """Base exception for UpCloud API errors."""

    def __init__(
        self,
        status_code: int,
        message: str = "",
        *,
        error_code: str = "",
        response_body: str = "",
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.error_code = error_code
        self.response_body = response_body
        detail = f"{error_code}: {message}" if error_code else message
        super().__init__(f"UpCloud API error {status_code}: {detail}")


class UpCloudNotFoundError(UpCloudAPIError):
    """Resource not found (404)."""

    def __init__(self, message: str = "Resource not found", **kwargs: Any) -> None:
        super().__init__(404, message, **kwargs)


class UpCloudTimeoutError(UpCloudAPIError):
    """Request to UpCloud timed out."""

    def __init__(self, message: str = "Request timed out") -> None:
        super().__init__(0, message)


# ── Client ───────────────────────────────────────────────────────


class UpCloudClient:
    """Async HTTP client for the UpCloud server and storage API.

    Responses are returned as decoded JSON dicts; mapping onto the
    provisioning model happens in ``UpCloudServerService``.
    """

    def __init__(
        self,
        *,
        username: str,
        password: str,
        base_url: str = "https://api.upcloud.com/1.3",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        base_delay: float = _DEFAULT_BASE_DELAY,
        max_delay: float = _DEFAULT_MAX_DELAY,
    ) -> None:
        if not username or not password:
            raise ValueError("username and password are required")

        self._auth = httpx.BasicAuth(username, password)
        self._base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient()
        self._owns_client = http_client is None
        self._timeout = float(timeout_seconds)
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay

    @classmethod
    def from_settings(cls, settings: BuilderSettings, **kwargs: Any) -> UpCloudClient:
        """Build a client from the API credentials and endpoint in ``settings``."""
        return cls(
            username=settings.api_user,
            password=settings.api_password,
            base_url=settings.api_base_url,
            **kwargs,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    def _raise_for_status(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return

        body = resp.text
        message = body[:200] if body else f"HTTP {resp.status_code}"
        error_code = ""

        try:
            payload = resp.json()
            error = payload.get("error") if isinstance(payload, dict) else None
            if isinstance(error, dict):
                message = error.get("error_message", message)
                error_code = error.get("error_code", "")
        except ValueError:
            pass

        if resp.status_code == 404:
            raise UpCloudNotFoundError(
                message=message,
                error_code=error_code,
                response_body=body,
            )

        raise UpCloudAPIError(
            status_code=resp.status_code,
            message=message,
            error_code=error_code,
            response_body=body,
        )

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        retry: bool = True,
    ) -> httpx.Response:
        """Execute an HTTP request with exponential backoff retry for transient errors."""
        url = f"{self._base_url}{path}"
        max_retries = self._max_retries if retry else 0

        for attempt in range(max_retries + 1):
            try:
                resp = await self._client.request(
                    method,
                    url,
                    auth=self._auth,
                    headers={"Accept": "application/json"},
                    json=json,
                    timeout=self._timeout,
                )
            except httpx.TimeoutException as e:
                if attempt < max_retries:
                    delay = self._backoff_delay(attempt)
                    logger.warning(
                        "UpCloud request timeout (attempt %d/%d), retrying in %.1fs",
                        attempt + 1,
                        max_retries + 1,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise UpCloudTimeoutError(str(e)) from e

            if resp.status_code not in _RETRYABLE_STATUS_CODES or attempt >= max_retries:
                return resp

            delay = self._retry_after_delay(resp, attempt)
            logger.warning(
                "UpCloud %s %s returned %d (attempt %d/%d), retrying in %.1fs",
                method,
                path,
                resp.status_code,
                attempt + 1,
                max_retries + 1,
                delay,
            )
            await asyncio.sleep(delay)

        raise UpCloudAPIError(0, "exhausted retries with no response")

    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with full jitter."""
        delay = min(self._base_delay * (2 ** attempt), self._max_delay)
        return random.uniform(0, delay)

    def _retry_after_delay(self, resp: httpx.Response, attempt: int) -> float:
        """Use Retry-After header if present, otherwise exponential backoff."""
        retry_after = resp.headers.get("retry-after")
        if retry_after:
            try:
                return max(float(retry_after), 0.1)
            except ValueError:
                pass
        return self._backoff_delay(attempt)

    # ── Public API ───────────────────────────────────────────────

    async def list_plans(self) -> list[dict[str, Any]]:
        """Return the provider's plan catalog."""
        resp = await self._request_with_retry("GET", "/plan")
        self._raise_for_status(resp)
        return resp.json().get("plans", {}).get("plan", [])

    async def create_server(self, server: dict[str, Any]) -> dict[str, Any]:
        """Create a server from a ``server`` request body; no retries."""
        resp = await self._request_with_retry(
            "POST", "/server", json={"server": server}, retry=False,
        )
        self._raise_for_status(resp)

        result = resp.json()["server"]
        logger.info(
            "Server created: uuid=%s title=%s",
            result.get("uuid"),
            result.get("title"),
            extra={"server_uuid": result.get("uuid")},
        )
        return result

    async def get_server(self, uuid: str) -> dict[str, Any]:
        """Get server details.

        Raises UpCloudNotFoundError if the server doesn't exist.
        """
        resp = await self._request_with_retry("GET", f"/server/{uuid}")
        self._raise_for_status(resp)
        return resp.json()["server"]

    async def stop_server(
        self,
        uuid: str,
        *,
        stop_type: str = STOP_TYPE_SOFT,
        timeout_seconds: int = 60,
    ) -> dict[str, Any]:
        """Request a server stop. The server transitions asynchronously."""
        body = {
            "stop_server": {
                "stop_type": stop_type,
                "timeout": str(timeout_seconds),
            }
        }
        resp = await self._request_with_retry("POST", f"/server/{uuid}/stop", json=body)
        self._raise_for_status(resp)
        return resp.json()["server"]

    async def delete_server(self, uuid: str) -> None:
        """Delete a stopped server. Attached storage is left in place."""
        resp = await self._request_with_retry("DELETE", f"/server/{uuid}")
        self._raise_for_status(resp)
        logger.info("Server deleted: uuid=%s", uuid, extra={"server_uuid": uuid})

    async def delete_storage(self, uuid: str) -> None:
        """Delete a detached storage device."""
        resp = await self._request_with_retry("DELETE", f"/storage/{uuid}")
        self._raise_for_status(resp)
        logger.info("Storage deleted: uuid=%s", uuid, extra={"storage_uuid": uuid})
