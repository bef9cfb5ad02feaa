"""Extractor for volatile commodity items priced on dedicated pages."""

from __future__ import annotations

import logging

from gg_prices.core.models import Extraction, ItemIdentifier, UnavailableReason, unavailable
from gg_prices.extract.base import element_text, parse_document, text_price
from gg_prices.extract.sources import VOLATILE_SOURCES, VolatileSource, find_volatile_source

logger = logging.getLogger(__name__)


class VolatileExtractor:
    """Reads the price field of a volatile item's one-off source page.

    The primary field is tried first, then the fallback field; when neither
    is present the item is NOT_FOUND.
    """

    def __init__(self, sources: tuple[VolatileSource, ...] = VOLATILE_SOURCES) -> None:
        self._sources = sources

    def extract(self, document: str, identifier: ItemIdentifier) -> Extraction:
        source = find_volatile_source(identifier.value, self._sources)
        if source is None:
            logger.warning("No dedicated source for volatile item %s", identifier)
            return Extraction.failed(UnavailableReason.NOT_FOUND)

        soup = parse_document(document)
        text = element_text(soup, source.primary_selector) or element_text(
            soup, source.fallback_selector
        )
        if text is None:
            return Extraction(
                price=unavailable(UnavailableReason.NOT_FOUND),
                canonical_name=identifier.value,
            )
        return Extraction(price=text_price(text), canonical_name=identifier.value)
