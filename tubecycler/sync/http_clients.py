"""
HTTP implementations of ContentSource and RemoteStateStore.

Transport policy (timeouts, retries) lives here, not in the scheduling core.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from typing import Any

import httpx
from loguru import logger

from tubecycler.config import Settings, get_settings

from .protocols import ContentBody
from .wire import SchedulerStateWire, parse_wire


class _RetryingClient:
    """Shared httpx.AsyncClient handling with exponential backoff on timeouts."""

    def __init__(
        self,
        api_url: str,
        timeout_ms: int = 30000,
        retry_attempts: int = 3,
        client: httpx.AsyncClient | None = None,
        headers: Mapping[str, str] | None = None,
    ):
        """
        Args:
            api_url: Base URL of the API
            timeout_ms: Request timeout in milliseconds
            retry_attempts: Number of attempts on timeout
            client: Preconfigured client (tests pass one with a MockTransport)
            headers: Extra headers, e.g. Authorization
        """
        self.api_url = api_url.rstrip("/")
        self.timeout_seconds = timeout_ms / 1000.0
        self.retry_attempts = max(1, retry_attempts)
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds),
            follow_redirects=True,
            headers=dict(headers or {}),
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        last_error: Exception | None = None

        for attempt in range(self.retry_attempts):
            try:
                return await self.client.request(method, f"{self.api_url}{path}", **kwargs)
            except httpx.TimeoutException as e:
                last_error = e
                wait_time = 2**attempt  # Exponential backoff: 1s, 2s, 4s
                logger.warning(
                    "{} {} timed out (attempt {}/{}), retrying in {}s",
                    method,
                    path,
                    attempt + 1,
                    self.retry_attempts,
                    wait_time,
                )
                if attempt + 1 < self.retry_attempts:
                    await asyncio.sleep(wait_time)

        assert last_error is not None
        raise last_error


class HttpContentSource(_RetryingClient):
    """Fetches stitch bodies from ``POST {api_url}/content/batch``."""

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs: Any) -> HttpContentSource:
        settings = settings or get_settings()
        return cls(
            settings.content_api_url,
            timeout_ms=settings.api_timeout_ms,
            retry_attempts=settings.api_retry_attempts,
            **kwargs,
        )

    async def fetch_batch(self, content_ids: Sequence[str]) -> dict[str, ContentBody]:
        """
        Fetch a batch of bodies in one request.

        Returns:
            Mapping of content id to body; ids the server did not return are
            simply absent.

        Raises:
            httpx.HTTPError: On API communication failure
        """
        if not content_ids:
            return {}

        response = await self._request("POST", "/content/batch", json={"stitchIds": list(content_ids)})
        response.raise_for_status()
        data = response.json()

        if not data.get("success", True):
            raise httpx.HTTPStatusError(
                data.get("error", "Content batch rejected"),
                request=response.request,
                response=response,
            )

        bodies: dict[str, ContentBody] = {}
        for item in data.get("stitches") or []:
            content_id = item.get("id")
            if content_id:
                bodies[content_id] = item
        logger.debug("Content batch returned {}/{} bodies", len(bodies), len(content_ids))
        return bodies


class HttpRemoteStateStore(_RetryingClient):
    """Loads and saves learner state at ``{api_url}/user-state/{learner_id}``."""

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs: Any) -> HttpRemoteStateStore:
        settings = settings or get_settings()
        return cls(
            settings.state_api_url,
            timeout_ms=settings.api_timeout_ms,
            retry_attempts=settings.api_retry_attempts,
            **kwargs,
        )

    async def load(self, learner_id: str) -> SchedulerStateWire | None:
        response = await self._request("GET", f"/user-state/{learner_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()

        data = response.json()
        payload = data.get("state", data) if isinstance(data, dict) else data
        if not payload:
            return None
        return parse_wire(payload)

    async def save(self, learner_id: str, wire: SchedulerStateWire) -> bool:
        response = await self._request(
            "POST", f"/user-state/{learner_id}", json={"state": wire.to_payload()}
        )
        if response.is_error:
            logger.error("State save for {} returned {}", learner_id, response.status_code)
            return False
        data = response.json() if response.content else {}
        return bool(data.get("success", True))
