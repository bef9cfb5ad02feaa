"""Extractor protocol, dispatch, and shared price-text helpers."""

from __future__ import annotations

import logging
import re
from typing import Protocol, runtime_checkable

from bs4 import BeautifulSoup, Tag

from gg_prices.core.config import ExtractionConfig
from gg_prices.core.exceptions import ExtractionError
from gg_prices.core.models import (
    CompositePrice,
    Extraction,
    ItemClassification,
    ItemIdentifier,
    ListedPrice,
    UnavailableReason,
)

logger = logging.getLogger(__name__)

# Symbols seen on gg.deals, the Steam market and mannco.store
CURRENCY_SYMBOLS: dict[str, str] = {
    "$": "USD",
    "US$": "USD",
    "€": "EUR",
    "£": "GBP",
    "zł": "PLN",
    "R$": "BRL",
    "CDN$": "CAD",
    "A$": "AUD",
    "₽": "RUB",
    "₴": "UAH",
    "₹": "INR",
    "CHF": "CHF",
}

_AMOUNT_RE = re.compile(r"\d[\d\s.,]*")
_TWO_DECIMALS_RE = re.compile(r"[.,]\d{2}$")
_ISO_CODE_RE = re.compile(r"^[A-Za-z]{3}$")


@runtime_checkable
class PriceExtractor(Protocol):
    """Turns one fetched document into an Extraction.

    Implementations never raise for ordinary page-shape problems; they
    return an Extraction carrying an UnavailablePrice instead.
    """

    def extract(self, document: str, identifier: ItemIdentifier) -> Extraction: ...


def parse_document(document: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(document, "lxml")
    except Exception as e:
        raise ExtractionError(
            f"Failed to parse document: {e}",
            context={"reason": "unparseable"},
        ) from e


def element_text(soup: Tag, selector: str | None) -> str | None:
    """Stripped text of the first match, or None if absent or blank."""
    if selector is None:
        return None
    element = soup.select_one(selector)
    if element is None:
        return None
    text = element.get_text(strip=True)
    return text or None


def listing_minor_units(text: str) -> int | None:
    """Minor units of a listing price.

    gg.deals always renders two fractional digits, so dropping every
    non-digit yields the price in cents.
    """
    digits = re.sub(r"\D", "", text)
    return int(digits) if digits else None


def currency_marker(text: str) -> str:
    """The non-numeric part of a price text, e.g. ``"$"`` or ``"zł"``."""
    return re.sub(r"[\d\s.,~]", "", text)


def parse_price_text(text: str) -> ListedPrice | None:
    """Reduce a free-form price like ``"$0.45"`` or ``"0,45€"`` to a ListedPrice.

    Returns None when the currency cannot be identified.
    """
    match = _AMOUNT_RE.search(text)
    if match is None:
        return None

    before = text[: match.start()].split()
    after = text[match.end() :].split()
    symbol = before[-1] if before else (after[0] if after else "")
    currency = CURRENCY_SYMBOLS.get(symbol)
    if currency is None and _ISO_CODE_RE.match(symbol):
        currency = symbol.upper()
    if currency is None:
        return None

    number = match.group().strip().rstrip(".,")
    digits = re.sub(r"\D", "", number)
    if not digits:
        return None
    amount = int(digits)
    if not _TWO_DECIMALS_RE.search(number):
        amount *= 100
    return ListedPrice(currency=currency, amount_minor=amount)


def text_price(text: str) -> ListedPrice | CompositePrice:
    """Numeric price when the text allows it, otherwise the text itself."""
    listed = parse_price_text(text)
    if listed is not None:
        return listed
    return CompositePrice(primary=text)


class ExtractorRegistry:
    """Dispatches a document to the extractor variant for an item.

    Variants:
        volatile          -> item-specific one-off source
        standard, name    -> gg.deals search results page
        standard, catalog -> gg.deals item page
    """

    def __init__(
        self,
        config: ExtractionConfig | None = None,
        *,
        volatile: PriceExtractor | None = None,
        by_name: PriceExtractor | None = None,
        by_catalog_id: PriceExtractor | None = None,
    ) -> None:
        from gg_prices.extract.catalog import CatalogExtractor, NameSearchExtractor
        from gg_prices.extract.volatile import VolatileExtractor

        config = config or ExtractionConfig()
        self._volatile = volatile or VolatileExtractor()
        self._by_name = by_name or NameSearchExtractor(config)
        self._by_catalog_id = by_catalog_id or CatalogExtractor(config)

    def select(
        self, identifier: ItemIdentifier, classification: ItemClassification
    ) -> PriceExtractor:
        if classification == ItemClassification.VOLATILE:
            return self._volatile
        if identifier.is_catalog:
            return self._by_catalog_id
        return self._by_name

    def extract(
        self,
        document: str,
        identifier: ItemIdentifier,
        classification: ItemClassification,
    ) -> Extraction:
        """Extract a price, mapping any extractor failure to NO_LISTING_DATA."""
        extractor = self.select(identifier, classification)
        try:
            return extractor.extract(document, identifier)
        except ExtractionError as e:
            logger.warning("Extraction failed for %s: %s", identifier, e)
            return Extraction.failed(UnavailableReason.NO_LISTING_DATA)
        except Exception:
            logger.exception("Unexpected extractor failure for %s", identifier)
            return Extraction.failed(UnavailableReason.NO_LISTING_DATA)
