"""Source URL construction for items."""

from __future__ import annotations

from urllib.parse import quote

from gg_prices.core.config import SourceConfig
from gg_prices.core.models import ItemClassification, ItemIdentifier
from gg_prices.extract.sources import VOLATILE_SOURCES, VolatileSource, find_volatile_source


class SourceRouter:
    """Maps an item to the page that prices it.

    Volatile items go to their dedicated source; everything else goes to
    gg.deals, either the item page (catalog ids) or the search page (names).
    """

    def __init__(
        self,
        config: SourceConfig | None = None,
        volatile_sources: tuple[VolatileSource, ...] = VOLATILE_SOURCES,
    ) -> None:
        self._config = config or SourceConfig()
        self._volatile_sources = volatile_sources

    def url_for(
        self,
        identifier: ItemIdentifier,
        classification: ItemClassification = ItemClassification.STANDARD,
    ) -> str:
        if classification == ItemClassification.VOLATILE and not identifier.is_catalog:
            source = find_volatile_source(identifier.value, self._volatile_sources)
            if source is not None:
                return source.url
        if identifier.is_catalog:
            return self.item_url(identifier)
        return self.search_url(identifier.value)

    def item_url(self, identifier: ItemIdentifier) -> str:
        return (
            f"{self._config.base_url}/{identifier.store}/"
            f"{identifier.namespace}/{identifier.value}/"
        )

    def search_url(self, name: str) -> str:
        return (
            f"{self._config.base_url}/search/"
            f"?platform={self._config.search_platforms}&title={quote(name, safe='')}"
        )
