"""Lookup façade: cache first, then the rate-limited fetch lane."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Awaitable, Callable

from gg_prices.cache.backends import create_backend
from gg_prices.cache.store import CacheStore
from gg_prices.core.config import PricesConfig
from gg_prices.core.models import (
    CacheEntry,
    ItemClassification,
    ItemDescriptor,
    ItemIdentifier,
    ItemKey,
    PriceResult,
    classify,
)
from gg_prices.fetch.client import PageFetcher
from gg_prices.fetch.coordinator import FetchCoordinator
from gg_prices.fetch.routes import SourceRouter

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PriceLookup:
    """Resolves item descriptors to prices for input and display collaborators.

    Only ``resolve`` on a fresh cache hit completes without network
    activity. Every fetched result, including failures, is written back
    through ``CacheStore.put``.
    """

    def __init__(
        self,
        store: CacheStore,
        coordinator: FetchCoordinator,
        router: SourceRouter | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._router = router or SourceRouter()
        self._clock = clock
        self._tracked: dict[ItemIdentifier, ItemDescriptor] = {}

    async def __aenter__(self) -> PriceLookup:
        self._coordinator.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self._coordinator.close()

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def coordinator(self) -> FetchCoordinator:
        return self._coordinator

    # --- Tracking ---

    def track(self, descriptor: ItemDescriptor) -> bool:
        """Remember a descriptor for bulk refreshes. Returns False if already tracked."""
        if descriptor.identifier in self._tracked:
            return False
        self._tracked[descriptor.identifier] = descriptor
        return True

    @property
    def tracked(self) -> list[ItemDescriptor]:
        return list(self._tracked.values())

    # --- Lookups ---

    def classify(self, descriptor: ItemDescriptor) -> ItemClassification:
        identifier = descriptor.identifier
        if identifier.is_catalog:
            return ItemClassification.STANDARD
        return classify(identifier.value, volatile_items=self._store.config.volatile_items)

    def cached(self, descriptor: ItemDescriptor) -> CacheEntry | None:
        return self._store.find(descriptor.identifier)

    def needs_refresh(self, descriptor: ItemDescriptor, now: datetime | None = None) -> bool:
        """True when the entry is missing, stale, or a failed lookup of any age."""
        entry = self.cached(descriptor)
        if entry is None or entry.is_unavailable:
            return True
        return not self._store.is_fresh(entry, now or self._clock())

    async def resolve(self, descriptor: ItemDescriptor) -> PriceResult:
        """Cached price if fresh, otherwise fetch, remember, and return it.

        Raises:
            StorageError: Persisting the fetched result failed.
        """
        entry = self.cached(descriptor)
        if entry is not None and self._store.is_fresh(entry, self._clock()):
            logger.debug("Cache hit for %s", descriptor.identifier)
            return entry.price
        return await self._fetch_and_store(descriptor)

    async def soft_refresh(
        self, descriptors: Iterable[ItemDescriptor] | None = None
    ) -> dict[ItemKey, PriceResult]:
        """Refetch only missing, stale, or failed entries (all tracked by default)."""
        now = self._clock()
        targets = [d for d in self._targets(descriptors) if self.needs_refresh(d, now)]
        logger.info("Soft refresh: %d items need a lookup", len(targets))
        return await self._gather(targets, self._fetch_and_store)

    async def hard_refresh(
        self, descriptors: Iterable[ItemDescriptor] | None = None
    ) -> dict[ItemKey, PriceResult]:
        """Refetch every descriptor regardless of cache freshness."""
        targets = self._targets(descriptors)
        logger.info("Hard refresh: %d items", len(targets))
        return await self._gather(targets, self._fetch_and_store)

    # --- Cache Management ---

    def snapshot(self) -> list[CacheEntry]:
        return self._store.snapshot()

    async def clear_cache(self) -> int:
        return await self._store.clear()

    async def prune(self) -> int:
        return await self._store.prune_expired(self._clock())

    def source_url(self, entry: CacheEntry) -> str:
        """Link to the page an entry was priced from."""
        if entry.canonical_id is not None:
            return self._router.item_url(entry.canonical_id)
        descriptor = ItemDescriptor(identifier=entry.key)
        return self._router.url_for(entry.key, self.classify(descriptor))

    # --- Internals ---

    def _targets(
        self, descriptors: Iterable[ItemDescriptor] | None
    ) -> list[ItemDescriptor]:
        if descriptors is None:
            return self.tracked
        unique: dict[ItemIdentifier, ItemDescriptor] = {}
        for descriptor in descriptors:
            unique.setdefault(descriptor.identifier, descriptor)
        return list(unique.values())

    async def _fetch_and_store(self, descriptor: ItemDescriptor) -> PriceResult:
        identifier = descriptor.identifier
        extraction = await self._coordinator.submit(identifier, self.classify(descriptor))

        previous = self._store.get(identifier)
        canonical_name = (
            extraction.canonical_name
            or descriptor.display_name_hint
            or (previous.canonical_name if previous else None)
            or identifier.key
        )
        await self._store.put(
            identifier,
            canonical_name,
            extraction.canonical_id,
            extraction.price,
            self._clock(),
        )
        return extraction.price

    @staticmethod
    async def _gather(
        descriptors: list[ItemDescriptor],
        action: Callable[[ItemDescriptor], Awaitable[PriceResult]],
    ) -> dict[ItemKey, PriceResult]:
        results = await asyncio.gather(*(action(d) for d in descriptors))
        return {d.identifier.key: price for d, price in zip(descriptors, results)}


async def create_lookup(
    config: PricesConfig,
    fetcher: PageFetcher,
    clock: Clock = utc_now,
) -> PriceLookup:
    """Build a PriceLookup from configuration, loading and pruning the cache."""
    store = CacheStore(create_backend(config.storage), config.cache)
    await store.load(clock())
    coordinator = FetchCoordinator.from_config(config, fetcher)
    return PriceLookup(store, coordinator, SourceRouter(config.source), clock=clock)
