"""One-off price sources for volatile commodity items."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class VolatileSource(BaseModel):
    """Where a volatile item is priced and which fields hold the price."""

    model_config = ConfigDict(frozen=True)

    names: tuple[str, ...]
    url: str
    primary_selector: str
    fallback_selector: str | None = None

    def matches(self, name: str) -> bool:
        lowered = name.strip().lower()
        return any(lowered == n.lower() for n in self.names)


STEAM_GEMS = VolatileSource(
    names=("Gems", "Sack of Gems"),
    url="https://steamcommunity.com/market/listings/753/753-Sack%20of%20Gems",
    primary_selector=".market_commodity_orders_header_promote",
    fallback_selector=".market_listing_price",
)

MANNCO_KEY = VolatileSource(
    names=("Mann Co. Supply Crate Key",),
    url="https://mannco.store/item/440-mann-co-supply-crate-key",
    primary_selector=".ecurrency",
)

VOLATILE_SOURCES: tuple[VolatileSource, ...] = (STEAM_GEMS, MANNCO_KEY)


def find_volatile_source(
    name: str,
    sources: tuple[VolatileSource, ...] = VOLATILE_SOURCES,
) -> VolatileSource | None:
    """Return the dedicated source for a volatile item name, if any."""
    for source in sources:
        if source.matches(name):
            return source
    return None
