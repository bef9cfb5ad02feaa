"""Pydantic data models — the system's type contracts."""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

# --- Type Aliases ---

ItemKey = str
CurrencyCode = str

# --- Constants ---

DEFAULT_STORE = "steam"

DEFAULT_VOLATILE_ITEMS: tuple[str, ...] = (
    "Gems",
    "Sack of Gems",
    "Mann Co. Supply Crate Key",
)

# Optional "<store>:" prefix, then "app/123" or "sub/456"
_CATALOG_KEY_RE = re.compile(
    r"^(?:(?P<store>[a-z0-9_-]+):)?(?P<namespace>app|sub)/(?P<id>\d+)$"
)

# --- Enumerations ---


class IdentifierKind(StrEnum):
    """How an item is addressed in the price source."""

    NAME = "name"
    CATALOG = "catalog"


class CatalogNamespace(StrEnum):
    """Catalog entry families: single applications vs. bundles/packages."""

    APP = "app"
    SUB = "sub"


class ItemClassification(StrEnum):
    """Freshness and sourcing class of an item."""

    STANDARD = "standard"
    VOLATILE = "volatile"


class UnavailableReason(StrEnum):
    """Terminal outcomes of a lookup that produced no price."""

    NOT_FOUND = "not_found"
    NO_LISTING_DATA = "no_listing_data"
    EMPTY = "empty"
    TRANSPORT_ERROR = "transport_error"
    TIMEOUT = "timeout"


class StorageBackend(StrEnum):
    """Supported cache persistence backends."""

    JSON = "json"
    SQLITE = "sqlite"


# --- Identity Models ---


class ItemIdentifier(BaseModel):
    """Canonical lookup key: a free-text name or a catalog id.

    Use the ``by_name`` / ``by_catalog_id`` constructors rather than
    building instances by hand. Instances are hashable and usable as
    dict keys.
    """

    model_config = ConfigDict(frozen=True)

    kind: IdentifierKind
    value: str
    namespace: CatalogNamespace | None = None
    store: str = DEFAULT_STORE

    @field_validator("value")
    @classmethod
    def value_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("identifier value must not be empty")
        return v

    @model_validator(mode="after")
    def shape_matches_kind(self) -> ItemIdentifier:
        if self.kind == IdentifierKind.CATALOG:
            if self.namespace is None:
                raise ValueError("catalog identifiers require a namespace")
            if not self.value.isdigit():
                raise ValueError(f"catalog id must be numeric, got {self.value!r}")
        elif self.namespace is not None:
            raise ValueError("name identifiers cannot carry a namespace")
        return self

    @classmethod
    def by_name(cls, text: str) -> ItemIdentifier:
        return cls(kind=IdentifierKind.NAME, value=text)

    @classmethod
    def by_catalog_id(
        cls,
        namespace: CatalogNamespace | str,
        catalog_id: int | str,
        store: str = DEFAULT_STORE,
    ) -> ItemIdentifier:
        return cls(
            kind=IdentifierKind.CATALOG,
            value=str(catalog_id),
            namespace=CatalogNamespace(namespace),
            store=store,
        )

    @classmethod
    def parse(cls, key: str) -> ItemIdentifier:
        """Inverse of ``key``: ``"app/123"`` is a catalog id, anything else a name."""
        match = _CATALOG_KEY_RE.match(key.strip())
        if match is None:
            return cls.by_name(key)
        return cls.by_catalog_id(
            match["namespace"],
            match["id"],
            store=match["store"] or DEFAULT_STORE,
        )

    @property
    def is_catalog(self) -> bool:
        return self.kind == IdentifierKind.CATALOG

    @property
    def key(self) -> ItemKey:
        """Stable textual form, e.g. ``"Portal 2"`` or ``"app/620"``."""
        if not self.is_catalog:
            return self.value
        path = f"{self.namespace}/{self.value}"
        if self.store == DEFAULT_STORE:
            return path
        return f"{self.store}:{path}"

    def __str__(self) -> str:
        return self.key


def classify(
    *names: str | None,
    volatile_items: Iterable[str] = DEFAULT_VOLATILE_ITEMS,
) -> ItemClassification:
    """Classify an item by any of its known names (case-insensitive)."""
    volatile = {item.lower() for item in volatile_items}
    for name in names:
        if name and name.strip().lower() in volatile:
            return ItemClassification.VOLATILE
    return ItemClassification.STANDARD


class ItemDescriptor(BaseModel):
    """An item discovered by an input collaborator, ready to be priced."""

    model_config = ConfigDict(frozen=True)

    identifier: ItemIdentifier
    display_name_hint: str | None = None

    @classmethod
    def from_key(cls, key: str, display_name_hint: str | None = None) -> ItemDescriptor:
        return cls(identifier=ItemIdentifier.parse(key), display_name_hint=display_name_hint)


# --- Price Models ---


class ListedPrice(BaseModel):
    """A single authoritative numeric price in minor currency units."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["listed"] = "listed"
    currency: CurrencyCode
    amount_minor: int

    @field_validator("currency")
    @classmethod
    def currency_upper(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("currency must not be empty")
        return v

    @field_validator("amount_minor")
    @classmethod
    def amount_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"amount_minor must be >= 0, got {v}")
        return v


class CompositePrice(BaseModel):
    """Human-readable price text, one string per reported channel.

    ``secondary`` is None when the source reported a single textual
    price that could not be reduced to minor units.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["composite"] = "composite"
    primary: str
    secondary: str | None = None


class UnavailablePrice(BaseModel):
    """A lookup that produced no price."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["unavailable"] = "unavailable"
    reason: UnavailableReason


PriceResult = Annotated[
    ListedPrice | CompositePrice | UnavailablePrice,
    Field(discriminator="kind"),
]

price_result_adapter: TypeAdapter[PriceResult] = TypeAdapter(PriceResult)


def unavailable(reason: UnavailableReason) -> UnavailablePrice:
    return UnavailablePrice(reason=reason)


class Extraction(BaseModel):
    """What the extractor learned from one fetched document."""

    model_config = ConfigDict(frozen=True)

    price: PriceResult
    canonical_name: str | None = None
    canonical_id: ItemIdentifier | None = None

    @classmethod
    def failed(cls, reason: UnavailableReason) -> Extraction:
        return cls(price=unavailable(reason))


# --- Cache Models ---


class CacheEntry(BaseModel):
    """A remembered price for one resolved item."""

    model_config = ConfigDict(frozen=True)

    key: ItemIdentifier
    canonical_name: str
    canonical_id: ItemIdentifier | None = None
    price: PriceResult
    written_at: datetime

    @field_validator("written_at")
    @classmethod
    def written_at_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def is_unavailable(self) -> bool:
        return isinstance(self.price, UnavailablePrice)

    def age(self, now: datetime) -> timedelta:
        return now - self.written_at
