"""gg_prices.extract — Turning fetched pages into normalized prices."""

from gg_prices.extract.base import (
    ExtractorRegistry,
    PriceExtractor,
    parse_price_text,
)
from gg_prices.extract.catalog import CatalogExtractor, ListingReducer, NameSearchExtractor
from gg_prices.extract.sources import VOLATILE_SOURCES, VolatileSource, find_volatile_source
from gg_prices.extract.volatile import VolatileExtractor

__all__ = [
    "CatalogExtractor",
    "ExtractorRegistry",
    "ListingReducer",
    "NameSearchExtractor",
    "PriceExtractor",
    "VOLATILE_SOURCES",
    "VolatileExtractor",
    "VolatileSource",
    "find_volatile_source",
    "parse_price_text",
]
