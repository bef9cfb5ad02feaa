"""Single-lane, rate-limited fetch coordinator with request coalescing."""

from __future__ import annotations

import asyncio
import logging
import random
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from gg_prices.core.config import PricesConfig
from gg_prices.core.exceptions import FetchTimeoutError, TransportError
from gg_prices.core.models import (
    Extraction,
    ItemClassification,
    ItemIdentifier,
    UnavailableReason,
)
from gg_prices.extract.base import ExtractorRegistry
from gg_prices.fetch.client import PageFetcher
from gg_prices.fetch.routes import SourceRouter

logger = logging.getLogger(__name__)

# gg.deals allows roughly 10 requests a minute
_DEFAULT_INTERVAL = 6.0
_DEFAULT_DEADLINE = 30.0


@dataclass
class FetchTask:
    """A pending lookup; shared by every coalesced submitter."""

    identifier: ItemIdentifier
    classification: ItemClassification
    submitted_at: float
    future: asyncio.Future[Extraction] = field(repr=False)


class FetchCoordinator:
    """Serializes every outbound lookup behind one rate-limited lane.

    Guarantees:
    - At most one request in flight at a time.
    - A request starts no sooner than ``interval`` seconds after the previous
      one completed, plus a uniform random jitter in ``[0, jitter]`` when
      configured. Request latency adds to the spacing.
    - Requests start in first-submitted order. Submitting an identifier that
      is already queued or in flight returns a view of the same pending
      result and does not move it in the queue.
    - Every submission resolves to an Extraction; fetch and extraction
      failures become UnavailablePrice results and never raise.

    Cancellation is not supported: a started fetch runs to completion or to
    its deadline.

    Use via `async with FetchCoordinator(...) as coordinator:`.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        extractors: ExtractorRegistry | None = None,
        router: SourceRouter | None = None,
        *,
        interval: float = _DEFAULT_INTERVAL,
        jitter: float = 0.0,
        deadline: float = _DEFAULT_DEADLINE,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        if jitter < 0:
            raise ValueError("jitter must be >= 0")
        self._fetcher = fetcher
        self._extractors = extractors or ExtractorRegistry()
        self._router = router or SourceRouter()
        self._interval = interval
        self._jitter = jitter
        self._deadline = deadline
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._last_completed: float | None = None

        self._queue: deque[ItemIdentifier] = deque()
        self._tasks: dict[ItemIdentifier, FetchTask] = {}
        self._in_flight: ItemIdentifier | None = None
        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._worker: asyncio.Task[None] | None = None

    @classmethod
    def from_config(
        cls,
        config: PricesConfig,
        fetcher: PageFetcher,
        **kwargs: object,
    ) -> FetchCoordinator:
        return cls(
            fetcher,
            ExtractorRegistry(config.extraction),
            SourceRouter(config.source),
            interval=config.source.request_interval,
            jitter=config.source.jitter,
            deadline=config.source.request_timeout,
            **kwargs,
        )

    async def __aenter__(self) -> FetchCoordinator:
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # --- Lifecycle ---

    def start(self) -> None:
        """Start the drain loop. Idempotent; submit() calls it lazily."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(
                self._drain(), name="gg-prices-fetch-lane"
            )

    async def join(self) -> None:
        """Wait until every submitted lookup has been delivered."""
        await self._idle.wait()

    async def close(self) -> None:
        """Stop the drain loop.

        Lookups still pending are resolved as TRANSPORT_ERROR so no waiter
        is left hanging.
        """
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        if self._tasks:
            logger.warning(
                "Fetch lane closed with %d lookups pending", len(self._tasks)
            )
        for task in self._tasks.values():
            if not task.future.done():
                task.future.set_result(Extraction.failed(UnavailableReason.TRANSPORT_ERROR))
        self._tasks.clear()
        self._queue.clear()
        self._in_flight = None
        self._idle.set()

    # --- Introspection ---

    @property
    def pending(self) -> list[ItemIdentifier]:
        """Queued identifiers in drain order (excludes the in-flight one)."""
        return list(self._queue)

    @property
    def in_flight(self) -> ItemIdentifier | None:
        return self._in_flight

    # --- Submission ---

    def submit(
        self,
        identifier: ItemIdentifier,
        classification: ItemClassification = ItemClassification.STANDARD,
    ) -> asyncio.Future[Extraction]:
        """Queue a lookup, coalescing with any pending one for the same item.

        Returns:
            A future resolving to the Extraction. Each caller gets its own
            shielded view, so one waiter giving up does not affect others.
        """
        task = self._tasks.get(identifier)
        if task is None:
            loop = asyncio.get_running_loop()
            task = FetchTask(
                identifier=identifier,
                classification=classification,
                submitted_at=loop.time(),
                future=loop.create_future(),
            )
            self._tasks[identifier] = task
            self._queue.append(identifier)
            self._idle.clear()
            self._wakeup.set()
            self.start()
            logger.debug("Queued %s (%d pending)", identifier, len(self._queue))
        else:
            logger.debug("Coalesced duplicate lookup for %s", identifier)
        return asyncio.shield(task.future)

    # --- Drain Loop ---

    async def _drain(self) -> None:
        while True:
            if not self._queue:
                self._idle.set()
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            await self._pace()

            identifier = self._queue.popleft()
            task = self._tasks[identifier]
            self._in_flight = identifier
            # Stays registered until delivered so close() can resolve it
            extraction = await self._run(task)
            self._last_completed = asyncio.get_running_loop().time()
            self._in_flight = None
            del self._tasks[identifier]
            if not task.future.done():
                task.future.set_result(extraction)

    async def _pace(self) -> None:
        """Wait out the interval since the last completion, then the jitter."""
        if self._last_completed is not None:
            loop = asyncio.get_running_loop()
            ready_at = self._last_completed + self._interval
            while True:
                remaining = ready_at - loop.time()
                if remaining <= 0:
                    break
                await self._sleep(remaining)
        if self._jitter:
            await self._sleep(self._rng.uniform(0, self._jitter))

    async def _run(self, task: FetchTask) -> Extraction:
        identifier = task.identifier
        url = self._router.url_for(identifier, task.classification)
        logger.info("Fetching %s (%s)", identifier, url)

        try:
            response = await asyncio.wait_for(
                self._fetcher.fetch(url), timeout=self._deadline
            )
        except (TimeoutError, FetchTimeoutError):
            logger.warning("Timed out fetching %s", url)
            return Extraction.failed(UnavailableReason.TIMEOUT)
        except TransportError as e:
            logger.warning("Transport failure for %s: %s", url, e)
            return Extraction.failed(UnavailableReason.TRANSPORT_ERROR)
        except Exception:
            logger.exception("Unexpected fetch failure for %s", url)
            return Extraction.failed(UnavailableReason.TRANSPORT_ERROR)

        if response.status == 404:
            return Extraction.failed(UnavailableReason.NOT_FOUND)
        if not response.ok:
            logger.warning("HTTP %d from %s", response.status, url)
            return Extraction.failed(UnavailableReason.TRANSPORT_ERROR)

        return self._extractors.extract(response.body, identifier, task.classification)
