"""The price cache: freshness policy, identity migration, pruning."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from gg_prices.cache.backends import CacheBackend, CacheMapping
from gg_prices.core.config import CacheConfig
from gg_prices.core.models import (
    CacheEntry,
    ItemClassification,
    ItemIdentifier,
    PriceResult,
    classify,
)

logger = logging.getLogger(__name__)


class CacheStore:
    """Durable mapping from canonical item key to its remembered price.

    Invariant: at most one entry per resolved item. When a name lookup
    discovers a catalog id, the name-keyed entry is replaced by a
    catalog-keyed one in the same write.

    Every mutation persists the whole mapping through the backend. If the
    save fails the in-memory mapping is left untouched and StorageError
    propagates, so memory never runs ahead of durable state. Mutations are
    serialized, each one building on the state the previous one committed.
    """

    def __init__(self, backend: CacheBackend, config: CacheConfig | None = None) -> None:
        self._backend = backend
        self._config = config or CacheConfig()
        self._entries: CacheMapping = {}
        self._lock = asyncio.Lock()

    @property
    def config(self) -> CacheConfig:
        return self._config

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: ItemIdentifier) -> bool:
        return key in self._entries

    # --- Lifecycle ---

    async def load(self, now: datetime) -> int:
        """Load the persisted snapshot, then prune expired entries.

        Returns:
            Number of entries pruned.
        """
        async with self._lock:
            self._entries = await self._backend.load()
        logger.info("Loaded %d cached prices", len(self._entries))
        return await self.prune_expired(now)

    # --- Queries ---

    def get(self, key: ItemIdentifier) -> CacheEntry | None:
        return self._entries.get(key)

    def find(self, identifier: ItemIdentifier) -> CacheEntry | None:
        """Like get(), but a name also matches an entry migrated to a catalog id."""
        entry = self._entries.get(identifier)
        if entry is not None or identifier.is_catalog:
            return entry
        wanted = identifier.value.lower()
        for candidate in self._entries.values():
            if candidate.canonical_name.lower() == wanted:
                return candidate
        return None

    def classification(self, entry: CacheEntry) -> ItemClassification:
        key_name = None if entry.key.is_catalog else entry.key.value
        return classify(
            entry.canonical_name, key_name, volatile_items=self._config.volatile_items
        )

    def freshness_window(self, entry: CacheEntry) -> timedelta:
        if self.classification(entry) == ItemClassification.VOLATILE:
            return self._config.volatile_ttl
        return self._config.standard_ttl

    def is_fresh(self, entry: CacheEntry, now: datetime) -> bool:
        return entry.age(now) < self.freshness_window(entry)

    def snapshot(self) -> list[CacheEntry]:
        """All entries sorted by canonical name, for display."""
        return sorted(self._entries.values(), key=lambda e: e.canonical_name.lower())

    def search(self, query: str) -> list[CacheEntry]:
        """Entries whose canonical name or catalog id contains ``query``."""
        needle = query.strip().lower()
        if not needle:
            return self.snapshot()
        return [
            entry
            for entry in self.snapshot()
            if needle in entry.canonical_name.lower()
            or (entry.canonical_id is not None and needle in entry.canonical_id.key)
        ]

    # --- Mutations ---

    async def put(
        self,
        key: ItemIdentifier,
        canonical_name: str,
        canonical_id: ItemIdentifier | None,
        price: PriceResult,
        now: datetime,
    ) -> CacheEntry:
        """Write a price, migrating the entry to ``canonical_id`` when known.

        Any other entry already resolved to the same canonical id is
        removed, so the item is never cached twice.
        """
        target = canonical_id if canonical_id is not None else key
        if key.is_catalog and canonical_id is None:
            canonical_id = key
        entry = CacheEntry(
            key=target,
            canonical_name=canonical_name,
            canonical_id=canonical_id,
            price=price,
            written_at=now,
        )

        async with self._lock:
            entries = dict(self._entries)
            if key != target and key in entries:
                logger.info("Migrating %s to %s", key, target)
                del entries[key]
            if canonical_id is not None:
                for other_key, other in list(entries.items()):
                    if other_key != target and other.canonical_id == canonical_id:
                        logger.info("Dropping duplicate %s of %s", other_key, canonical_id)
                        del entries[other_key]
            entries[target] = entry
            await self._commit(entries)
        return entry

    async def prune_expired(
        self, now: datetime, hard_horizon: timedelta | None = None
    ) -> int:
        """Delete entries older than the hard horizon, whatever their class.

        Persists only when something was removed.
        """
        horizon = hard_horizon if hard_horizon is not None else self._config.hard_horizon
        async with self._lock:
            kept = {k: e for k, e in self._entries.items() if e.age(now) <= horizon}
            removed = len(self._entries) - len(kept)
            if removed:
                await self._commit(kept)
        if removed:
            logger.info("Pruned %d cache entries older than %s", removed, horizon)
        return removed

    async def clear(self) -> int:
        """Drop every entry and persist the empty mapping."""
        async with self._lock:
            removed = len(self._entries)
            await self._commit({})
        logger.info("Cleared %d cache entries", removed)
        return removed

    async def merge(self, incoming: CacheMapping) -> int:
        """Import entries (e.g. a legacy cache), keeping the newer on conflict."""
        async with self._lock:
            entries = dict(self._entries)
            imported = 0
            for key, entry in incoming.items():
                current = entries.get(key)
                if current is None or entry.written_at > current.written_at:
                    entries[key] = entry
                    imported += 1
            if imported:
                await self._commit(entries)
        return imported

    async def _commit(self, entries: CacheMapping) -> None:
        # Caller holds self._lock
        await self._backend.save(entries)
        self._entries = entries
