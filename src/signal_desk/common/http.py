"""Async HTTP client for the market data service, with retry."""

from __future__ import annotations

import logging

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from signal_desk.common.errors import DataServiceError
from signal_desk.config import get_settings

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


def _is_retryable(exc: BaseException) -> bool:
    """Retry on timeouts, dropped connections and transient status codes."""
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRYABLE_STATUS
    return False


class HttpClient:
    """Async HTTP client with retry logic.

    Attempts default to ``Settings.http_retries``; waits back off
    exponentially between 1 and 10 seconds.
    """

    def __init__(
        self,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        attempts: int | None = None,
    ) -> None:
        settings = get_settings()
        self._attempts = attempts or settings.http_retries
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Accept": "application/json", **(headers or {})},
            timeout=httpx.Timeout(settings.http_timeout),
            transport=transport,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def get(self, url: str, params: dict | None = None) -> httpx.Response:
        async for attempt in self._retrying():
            with attempt:
                resp = await self._client.get(url, params=params)
                resp.raise_for_status()
        return resp

    async def get_json(self, url: str, params: dict | None = None) -> object:
        """GET and decode a JSON body.

        Raises:
            DataServiceError: the body is not valid JSON
        """
        resp = await self.get(url, params=params)
        try:
            return resp.json()
        except ValueError as exc:
            raise DataServiceError(f"Invalid JSON from {resp.request.url}: {exc}") from exc

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
