"""Extractors for gg.deals item pages and search results."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from bs4 import BeautifulSoup

from gg_prices.core.config import ExtractionConfig
from gg_prices.core.models import (
    CompositePrice,
    Extraction,
    ItemIdentifier,
    ListedPrice,
    PriceResult,
    UnavailableReason,
    unavailable,
)
from gg_prices.extract.base import (
    currency_marker,
    element_text,
    listing_minor_units,
    parse_document,
)

logger = logging.getLogger(__name__)

# Listing groups on an item page, in display order
OFFICIAL_GROUP = "#official-stores"
KEYSHOP_GROUP = "#keyshops"

_LD_JSON_SELECTOR = 'script[type="application/ld+json"]'
_BREADCRUMB_NAME_SELECTOR = 'a[itemprop="item"].active span[itemprop="name"]'
_SEARCH_RESULT_SELECTOR = '.game-info-title[href*="/steam/"]'
_NUMERIC_PRICE_SELECTOR = ".price-inner.numeric"
_CATALOG_HREF_RE = re.compile(r"/steam/(app|sub)/(\d+)/")


class ListingReducer:
    """Reduces the structured listings of a gg.deals page to one price."""

    def __init__(self, config: ExtractionConfig) -> None:
        self._config = config
        self._deal_selector = (
            f".similar-deals-container:has(svg.svg-icon-drm-{config.drm}) .price-inner"
        )

    def has_listing_data(self, soup: BeautifulSoup) -> bool:
        return soup.select_one(_LD_JSON_SELECTOR) is not None

    def reduce(self, soup: BeautifulSoup) -> PriceResult:
        """Minimum listing price across the official and keyshop groups.

        Returns:
            ListedPrice for the cheapest listing, CompositePrice with one
            cheapest text per group when group reduction is disabled, or
            UnavailablePrice(no_listing_data / empty).
        """
        metadata = self._listing_metadata(soup)
        if metadata is None:
            return unavailable(UnavailableReason.NO_LISTING_DATA)

        groups = {
            group: self._group_listings(soup, group)
            for group in (OFFICIAL_GROUP, KEYSHOP_GROUP)
        }
        listings = [item for items in groups.values() for item in items]
        if not listings:
            return unavailable(UnavailableReason.EMPTY)

        markers = {currency_marker(text) for text, _ in listings} - {""}
        if len(markers) > 1:
            logger.warning("Mixed currencies in listings: %s", sorted(markers))
            return unavailable(UnavailableReason.NO_LISTING_DATA)

        if not self._config.reduce_groups and all(groups.values()):
            official = min(groups[OFFICIAL_GROUP], key=lambda item: item[1])
            keyshop = min(groups[KEYSHOP_GROUP], key=lambda item: item[1])
            return CompositePrice(primary=official[0], secondary=keyshop[0])

        cheapest = min(amount for _, amount in listings)
        currency = _price_currency(metadata) or self._config.default_currency
        return ListedPrice(currency=currency, amount_minor=cheapest)

    def _listing_metadata(self, soup: BeautifulSoup) -> dict[str, Any] | None:
        script = soup.select_one(_LD_JSON_SELECTOR)
        if script is None:
            return None
        try:
            data = json.loads(script.get_text())
        except json.JSONDecodeError:
            logger.warning("Malformed ld+json listing metadata")
            return None
        if isinstance(data, list):
            data = next((d for d in data if isinstance(d, dict)), None)
        return data if isinstance(data, dict) else None

    def _group_listings(
        self, soup: BeautifulSoup, group: str
    ) -> list[tuple[str, int]]:
        listings = []
        for element in soup.select(f"{group} {self._deal_selector}"):
            text = element.get_text(strip=True)
            amount = listing_minor_units(text)
            if amount is not None:
                listings.append((text, amount))
        return listings


def _price_currency(metadata: dict[str, Any]) -> str | None:
    offers = metadata.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    if not isinstance(offers, dict):
        return None
    currency = offers.get("priceCurrency")
    return str(currency) if currency else None


class CatalogExtractor:
    """Prices an item page addressed by catalog id (``/steam/app/620/``)."""

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        self._reducer = ListingReducer(config or ExtractionConfig())

    def extract(self, document: str, identifier: ItemIdentifier) -> Extraction:
        soup = parse_document(document)
        return Extraction(
            price=self._reducer.reduce(soup),
            canonical_name=element_text(soup, _BREADCRUMB_NAME_SELECTOR),
            canonical_id=identifier,
        )


class NameSearchExtractor:
    """Prices a search results page and discovers the item's catalog id.

    The first result linking to a Steam app or package is taken as the
    canonical resolution of the searched name.
    """

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        self._reducer = ListingReducer(config or ExtractionConfig())

    def extract(self, document: str, identifier: ItemIdentifier) -> Extraction:
        soup = parse_document(document)

        candidate = self._first_result(soup)
        if candidate is None:
            return Extraction.failed(UnavailableReason.NOT_FOUND)
        canonical_id, canonical_name = candidate

        if self._reducer.has_listing_data(soup):
            price = self._reducer.reduce(soup)
        else:
            price = self._result_prices(soup)

        return Extraction(
            price=price,
            canonical_name=canonical_name,
            canonical_id=canonical_id,
        )

    def _first_result(
        self, soup: BeautifulSoup
    ) -> tuple[ItemIdentifier, str | None] | None:
        for link in soup.select(_SEARCH_RESULT_SELECTOR):
            match = _CATALOG_HREF_RE.search(link.get("href", ""))
            if match is None:
                continue
            identifier = ItemIdentifier.by_catalog_id(match[1], match[2])
            name = element_text(link, '[itemprop="name"]')
            return identifier, name
        return None

    def _result_prices(self, soup: BeautifulSoup) -> PriceResult:
        # Search results list the official price first, then the keyshop price
        texts = [
            text
            for text in (
                el.get_text(strip=True) for el in soup.select(_NUMERIC_PRICE_SELECTOR)
            )
            if text
        ]
        if not texts:
            return unavailable(UnavailableReason.EMPTY)
        if len(texts) == 1:
            return CompositePrice(primary=texts[0])
        return CompositePrice(primary=texts[0], secondary=texts[1])
