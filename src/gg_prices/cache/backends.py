"""Cache persistence: snapshot codec, backend protocol, JSON and SQLite backends.

Every backend stores the whole mapping as one snapshot. A save either
replaces the previous snapshot entirely or fails with StorageError; the
old snapshot is never partially visible.

Serialized entry (one per key)::

    {"price": {"kind": "listed", "currency": "USD", "amount_minor": 999},
     "name": "Portal 2", "appid": "app/620", "timestamp": 1718000000000}
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import aiosqlite

from gg_prices.core.config import StorageConfig
from gg_prices.core.exceptions import StorageError
from gg_prices.core.models import (
    CacheEntry,
    CompositePrice,
    ItemIdentifier,
    ListedPrice,
    PriceResult,
    StorageBackend,
    UnavailableReason,
    price_result_adapter,
    unavailable,
)

logger = logging.getLogger(__name__)

CacheMapping = dict[ItemIdentifier, CacheEntry]

# Price strings written by the browser userscripts
_LEGACY_LISTED_RE = re.compile(r"^([A-Z]{3})\|(\d+)$")
_LEGACY_UNAVAILABLE: dict[str, UnavailableReason] = {
    "No LD": UnavailableReason.NO_LISTING_DATA,
    "Error": UnavailableReason.NOT_FOUND,
    "No price found": UnavailableReason.NOT_FOUND,
}


# --- Codec ---


def to_epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def from_epoch_ms(value: int | float) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def decode_price(raw: Any) -> PriceResult:
    """Decode a stored price, accepting the tagged form or a legacy string."""
    if isinstance(raw, str):
        return decode_legacy_price(raw)
    return price_result_adapter.validate_python(raw)


def decode_legacy_price(text: str) -> PriceResult:
    text = text.strip()
    if text in _LEGACY_UNAVAILABLE:
        return unavailable(_LEGACY_UNAVAILABLE[text])
    match = _LEGACY_LISTED_RE.match(text)
    if match is not None:
        return ListedPrice(currency=match[1], amount_minor=int(match[2]))
    if " | " in text:
        primary, secondary = text.split(" | ", 1)
        return CompositePrice(primary=primary.strip(), secondary=secondary.strip())
    if not text:
        return unavailable(UnavailableReason.EMPTY)
    return CompositePrice(primary=text)


def _decode_canonical_id(raw: Any) -> ItemIdentifier | None:
    if raw is None or raw == "":
        return None
    text = str(raw)
    # Older caches stored bare app ids
    if text.isdigit():
        return ItemIdentifier.by_catalog_id("app", text)
    identifier = ItemIdentifier.parse(text)
    return identifier if identifier.is_catalog else None


def encode_entry(entry: CacheEntry) -> dict[str, Any]:
    return {
        "price": price_result_adapter.dump_python(entry.price, mode="json"),
        "name": entry.canonical_name,
        "appid": entry.canonical_id.key if entry.canonical_id else None,
        "timestamp": to_epoch_ms(entry.written_at),
    }


def decode_entry(key: str, record: dict[str, Any]) -> CacheEntry:
    """Decode one serialized entry.

    Raises:
        ValueError: The record is malformed (ValidationError included).
    """
    if not isinstance(record, dict):
        raise ValueError(f"entry must be a mapping, got {type(record).__name__}")
    if "timestamp" not in record or "price" not in record:
        raise ValueError("entry requires 'price' and 'timestamp'")
    identifier = ItemIdentifier.parse(key)
    return CacheEntry(
        key=identifier,
        canonical_name=record.get("name") or key,
        canonical_id=_decode_canonical_id(record.get("appid")),
        price=decode_price(record["price"]),
        written_at=from_epoch_ms(record["timestamp"]),
    )


def encode_snapshot(mapping: CacheMapping) -> dict[str, dict[str, Any]]:
    return {identifier.key: encode_entry(entry) for identifier, entry in mapping.items()}


def decode_snapshot(raw: dict[str, Any]) -> CacheMapping:
    """Decode a whole snapshot, skipping malformed entries with a warning."""
    mapping: CacheMapping = {}
    skipped = 0
    for key, record in raw.items():
        try:
            entry = decode_entry(key, record)
        except (ValueError, TypeError, OverflowError) as e:
            skipped += 1
            logger.warning("Skipping malformed cache entry %r: %s", key, e)
            continue
        mapping[entry.key] = entry
    if skipped:
        logger.warning("Skipped %d malformed cache entries", skipped)
    return mapping


# --- Backends ---


@runtime_checkable
class CacheBackend(Protocol):
    """Durable whole-snapshot storage for the price cache."""

    async def load(self) -> CacheMapping: ...

    async def save(self, mapping: CacheMapping) -> None: ...


class MemoryBackend:
    """Non-durable backend, for tests and dry runs."""

    def __init__(self, snapshot: dict[str, Any] | None = None) -> None:
        self.snapshot: dict[str, Any] = dict(snapshot or {})
        self.saves = 0

    async def load(self) -> CacheMapping:
        return decode_snapshot(self.snapshot)

    async def save(self, mapping: CacheMapping) -> None:
        self.snapshot = encode_snapshot(mapping)
        self.saves += 1


class JsonFileBackend:
    """Stores the snapshot as one JSON document, replaced atomically.

    File I/O runs in a worker thread so large caches do not block the loop.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> CacheMapping:
        raw = await asyncio.to_thread(self._read)
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            logger.warning("Cache file %s is not a mapping, starting empty", self._path)
            return {}
        return decode_snapshot(raw)

    async def save(self, mapping: CacheMapping) -> None:
        payload = json.dumps(encode_snapshot(mapping), ensure_ascii=False, indent=1)
        await asyncio.to_thread(self._write, payload)
        logger.debug("Saved %d cache entries to %s", len(mapping), self._path)

    def _read(self) -> Any:
        if not self._path.exists():
            return None
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(
                f"Failed to read cache file: {e}",
                context={"operation": "load", "path": str(self._path)},
            ) from e

    def _write(self, payload: str) -> None:
        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self._path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(
                f"Failed to write cache file: {e}",
                context={"operation": "save", "path": str(self._path)},
            ) from e


class SqliteBackend:
    """SQLite-backed snapshot storage.

    Each save replaces the table contents inside a single transaction.

    Parameters
    ----------
    db_path : str
        Path to the SQLite database file.
        Created automatically if it doesn't exist.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._initialized = False

    async def _ensure_table(self, db: aiosqlite.Connection) -> None:
        if self._initialized:
            return
        await db.execute(
            """CREATE TABLE IF NOT EXISTS cached_prices (
                key TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                appid TEXT,
                price_json TEXT NOT NULL,
                timestamp INTEGER NOT NULL
            )"""
        )
        await db.commit()
        self._initialized = True

    async def load(self) -> CacheMapping:
        try:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(self._db_path) as db:
                await self._ensure_table(db)
                cursor = await db.execute(
                    "SELECT key, name, appid, price_json, timestamp FROM cached_prices"
                )
                rows = await cursor.fetchall()
        except (OSError, aiosqlite.Error) as e:
            raise StorageError(
                f"Failed to load cache from SQLite: {e}",
                context={"operation": "load", "path": self._db_path},
            ) from e

        raw: dict[str, Any] = {}
        for key, name, appid, price_json, timestamp in rows:
            try:
                price = json.loads(price_json)
            except json.JSONDecodeError:
                price = price_json
            raw[key] = {"name": name, "appid": appid, "price": price, "timestamp": timestamp}
        return decode_snapshot(raw)

    async def save(self, mapping: CacheMapping) -> None:
        rows = [
            (
                key,
                record["name"],
                record["appid"],
                json.dumps(record["price"]),
                record["timestamp"],
            )
            for key, record in encode_snapshot(mapping).items()
        ]
        try:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(self._db_path) as db:
                await self._ensure_table(db)
                await db.execute("DELETE FROM cached_prices")
                await db.executemany(
                    """INSERT INTO cached_prices (key, name, appid, price_json, timestamp)
                       VALUES (?, ?, ?, ?, ?)""",
                    rows,
                )
                await db.commit()
        except (OSError, aiosqlite.Error) as e:
            raise StorageError(
                f"Failed to save cache to SQLite: {e}",
                context={"operation": "save", "path": self._db_path},
            ) from e
        logger.debug("Saved %d cache entries to %s", len(rows), self._db_path)


def create_backend(config: StorageConfig) -> CacheBackend:
    """Create a persistence backend based on configuration."""
    if config.backend == StorageBackend.JSON:
        return JsonFileBackend(config.json_path)
    if config.backend == StorageBackend.SQLITE:
        return SqliteBackend(config.sqlite_path)
    raise StorageError(
        f"Unsupported storage backend: {config.backend}",
        context={"operation": "create_backend", "backend": str(config.backend)},
    )
