"""Async HTTP page fetcher for the remote price sources."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import httpx
from aiolimiter import AsyncLimiter
from pydantic import BaseModel, ConfigDict

from gg_prices.core.config import SourceConfig
from gg_prices.core.exceptions import FetchTimeoutError, TransportError

logger = logging.getLogger(__name__)


class FetchResponse(BaseModel):
    """Raw outcome of one HTTP exchange."""

    model_config = ConfigDict(frozen=True)

    url: str
    status: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@runtime_checkable
class PageFetcher(Protocol):
    """Fetch capability consumed by the FetchCoordinator.

    Returns a FetchResponse for any HTTP response (including 4xx/5xx).

    Raises:
        TransportError: The connection failed before a response arrived.
        FetchTimeoutError: The request deadline elapsed.
    """

    async def fetch(self, url: str) -> FetchResponse: ...


class HttpPageFetcher:
    """httpx-backed PageFetcher.

    Every request acquires a token from an AsyncLimiter capped at
    ``config.max_requests_per_minute``, whoever the caller is.

    Use via `async with HttpPageFetcher(config) as fetcher:`.
    """

    def __init__(
        self,
        config: SourceConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        limiter: AsyncLimiter | None = None,
    ) -> None:
        self._config = config
        self._limiter = limiter or AsyncLimiter(
            max_rate=config.max_requests_per_minute, time_period=60.0
        )
        self._client = httpx.AsyncClient(
            headers={"User-Agent": config.user_agent},
            timeout=httpx.Timeout(config.request_timeout),
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> HttpPageFetcher:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client. Called automatically by __aexit__."""
        await self._client.aclose()

    async def fetch(self, url: str) -> FetchResponse:
        await self._limiter.acquire()
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(
                f"Timed out fetching {url}",
                context={"url": url, "timeout": self._config.request_timeout},
            ) from e
        except httpx.TransportError as e:
            raise TransportError(
                f"Transport failure fetching {url}: {e}",
                context={"url": url, "error": str(e)},
            ) from e

        logger.debug("GET %s -> %d", url, response.status_code)
        return FetchResponse(url=url, status=response.status_code, body=response.text)
