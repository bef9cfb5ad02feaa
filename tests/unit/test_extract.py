"""Tests for gg_prices.extract (reducer, extractors, registry, price text)."""

from __future__ import annotations

import pytest

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
from gg_prices.extract.base import (
    ExtractorRegistry,
    listing_minor_units,
    parse_price_text,
    text_price,
)
from gg_prices.extract.catalog import CatalogExtractor, NameSearchExtractor
from gg_prices.extract.sources import MANNCO_KEY, STEAM_GEMS, find_volatile_source
from gg_prices.extract.volatile import VolatileExtractor


PORTAL = ItemIdentifier.by_catalog_id("app", 620)
GEMS = ItemIdentifier.by_name("Gems")


def _reason(extraction: Extraction) -> UnavailableReason:
    return extraction.price.reason


# --- Price text helpers ---


class TestPriceText:
    @pytest.mark.parametrize(
        "text, currency, amount",
        [
            ("$0.45", "USD", 45),
            ("0,45€", "EUR", 45),
            ("1 234,56 zł", "PLN", 123456),
            ("CDN$ 12.50", "CAD", 1250),
            ("$5", "USD", 500),
            ("45 usd", "USD", 4500),
        ],
    )
    def test_parse_price_text(self, text, currency, amount):
        assert parse_price_text(text) == ListedPrice(currency=currency, amount_minor=amount)

    def test_unknown_currency(self):
        assert parse_price_text("12.34") is None
        assert parse_price_text("Free") is None

    def test_text_price_falls_back_to_composite(self):
        assert text_price("Free") == CompositePrice(primary="Free")

    def test_listing_minor_units(self):
        assert listing_minor_units("$1,234.56") == 123456
        assert listing_minor_units("~$9.99") == 999
        assert listing_minor_units("Free") is None


# --- Item pages ---


class TestCatalogExtractor:
    def test_minimum_across_groups(self, item_page):
        doc = item_page(official=["$9.99", "$12.49"], keyshops=["$7.49", "$8.00"])
        extraction = CatalogExtractor().extract(doc, PORTAL)
        assert extraction.price == ListedPrice(currency="USD", amount_minor=749)
        assert extraction.canonical_name == "Portal 2"
        assert extraction.canonical_id == PORTAL

    def test_ignores_other_drm(self, item_page):
        gog_deal = (
            '<div class="similar-deals-container">'
            '<svg class="svg-icon-drm-gog"></svg>'
            '<span class="price-inner">$1.00</span></div>'
        )
        doc = item_page(official=["$9.99"], keyshops=[], extra_deals=gog_deal)
        extraction = CatalogExtractor().extract(doc, PORTAL)
        assert extraction.price == ListedPrice(currency="USD", amount_minor=999)

    def test_currency_from_listing_metadata(self, item_page):
        doc = item_page(official=["9,99€"], currency="EUR")
        assert CatalogExtractor().extract(doc, PORTAL).price.currency == "EUR"

    def test_missing_currency_uses_default(self, item_page):
        doc = item_page(official=["9,99€"], currency=None)
        extractor = CatalogExtractor(ExtractionConfig(default_currency="eur"))
        assert extractor.extract(doc, PORTAL).price == ListedPrice(
            currency="EUR", amount_minor=999
        )

    def test_no_listing_metadata(self, item_page):
        doc = item_page(official=["$9.99"], ld_json=False)
        extraction = CatalogExtractor().extract(doc, PORTAL)
        assert _reason(extraction) == UnavailableReason.NO_LISTING_DATA
        assert extraction.canonical_name == "Portal 2"

    def test_malformed_listing_metadata(self):
        doc = (
            '<html><head><script type="application/ld+json">{not json</script>'
            '</head><body></body></html>'
        )
        assert _reason(CatalogExtractor().extract(doc, PORTAL)) == (
            UnavailableReason.NO_LISTING_DATA
        )

    def test_no_listings_is_empty(self, item_page):
        doc = item_page(official=[], keyshops=[])
        assert _reason(CatalogExtractor().extract(doc, PORTAL)) == UnavailableReason.EMPTY

    def test_mixed_currencies_are_no_listing_data(self, item_page):
        doc = item_page(official=["$9.99"], keyshops=["8,99€"])
        assert _reason(CatalogExtractor().extract(doc, PORTAL)) == (
            UnavailableReason.NO_LISTING_DATA
        )

    def test_unreduced_groups_give_composite(self, item_page):
        doc = item_page(official=["$12.49", "$9.99"], keyshops=["$7.49"])
        extractor = CatalogExtractor(ExtractionConfig(reduce_groups=False))
        assert extractor.extract(doc, PORTAL).price == CompositePrice(
            primary="$9.99", secondary="$7.49"
        )

    def test_unreduced_with_one_group_still_listed(self, item_page):
        doc = item_page(official=["$9.99"], keyshops=[])
        extractor = CatalogExtractor(ExtractionConfig(reduce_groups=False))
        assert extractor.extract(doc, PORTAL).price == ListedPrice(
            currency="USD", amount_minor=999
        )


# --- Search pages ---


class TestNameSearchExtractor:
    def test_first_result_resolves_identity(self, search_page):
        doc = search_page(
            results=[("/steam/app/620/", "Portal 2"), ("/steam/app/400/", "Portal")],
            prices=["$9.99", "$7.49"],
        )
        extraction = NameSearchExtractor().extract(doc, ItemIdentifier.by_name("portal 2"))
        assert extraction.canonical_id == PORTAL
        assert extraction.canonical_name == "Portal 2"
        assert extraction.price == CompositePrice(primary="$9.99", secondary="$7.49")

    def test_package_results(self, search_page):
        doc = search_page(results=[("/steam/sub/7932/", "Valve Complete Pack")], prices=["$99.99"])
        extraction = NameSearchExtractor().extract(doc, ItemIdentifier.by_name("valve pack"))
        assert extraction.canonical_id == ItemIdentifier.by_catalog_id("sub", 7932)
        assert extraction.price == CompositePrice(primary="$99.99")

    def test_skips_non_catalog_links(self, search_page):
        doc = search_page(
            results=[("/steam/bundle/12/", "A Bundle"), ("/steam/app/620/", "Portal 2")],
            prices=["$9.99"],
        )
        extraction = NameSearchExtractor().extract(doc, ItemIdentifier.by_name("Portal 2"))
        assert extraction.canonical_id == PORTAL

    def test_no_results_is_not_found(self, search_page):
        extraction = NameSearchExtractor().extract(
            search_page(), ItemIdentifier.by_name("nonexistent")
        )
        assert _reason(extraction) == UnavailableReason.NOT_FOUND
        assert extraction.canonical_id is None

    def test_result_without_prices_is_empty(self, search_page):
        doc = search_page(results=[("/steam/app/620/", "Portal 2")])
        extraction = NameSearchExtractor().extract(doc, ItemIdentifier.by_name("Portal 2"))
        assert _reason(extraction) == UnavailableReason.EMPTY
        assert extraction.canonical_id == PORTAL

    def test_listing_metadata_takes_precedence(self, item_page):
        doc = item_page(official=["$9.99"], keyshops=["$7.49"]).replace(
            "<body>",
            '<body><a class="game-info-title" href="/steam/app/620/">'
            '<span itemprop="name">Portal 2</span></a>',
        )
        extraction = NameSearchExtractor().extract(doc, ItemIdentifier.by_name("Portal 2"))
        assert extraction.price == ListedPrice(currency="USD", amount_minor=749)


# --- Volatile sources ---


class TestVolatileExtractor:
    def test_primary_field(self, market_page):
        extraction = VolatileExtractor().extract(
            market_page(promote="$0.45", listing="$0.50"), GEMS
        )
        assert extraction.price == ListedPrice(currency="USD", amount_minor=45)
        assert extraction.canonical_name == "Gems"

    def test_fallback_field(self, market_page):
        extraction = VolatileExtractor().extract(market_page(listing="$0.50"), GEMS)
        assert extraction.price == ListedPrice(currency="USD", amount_minor=50)

    def test_no_field_is_not_found(self, market_page):
        extraction = VolatileExtractor().extract(market_page(), GEMS)
        assert _reason(extraction) == UnavailableReason.NOT_FOUND

    def test_key_price(self):
        doc = '<html><body><span class="ecurrency">$2.10</span></body></html>'
        key = ItemIdentifier.by_name("Mann Co. Supply Crate Key")
        extraction = VolatileExtractor().extract(doc, key)
        assert extraction.price == ListedPrice(currency="USD", amount_minor=210)

    def test_unparseable_text_kept_as_composite(self, market_page):
        extraction = VolatileExtractor().extract(market_page(promote="Sold out"), GEMS)
        assert extraction.price == CompositePrice(primary="Sold out")

    def test_volatile_name_without_source(self):
        extraction = VolatileExtractor().extract("<html></html>", ItemIdentifier.by_name("Refined"))
        assert _reason(extraction) == UnavailableReason.NOT_FOUND

    def test_find_volatile_source(self):
        assert find_volatile_source("sack of gems") is STEAM_GEMS
        assert find_volatile_source("Mann Co. Supply Crate Key") is MANNCO_KEY
        assert find_volatile_source("Portal 2") is None


# --- Registry ---


class _RaisingExtractor:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    def extract(self, document, identifier):
        raise self.exc


class TestExtractorRegistry:
    def test_selects_variant(self):
        registry = ExtractorRegistry()
        assert isinstance(
            registry.select(GEMS, ItemClassification.VOLATILE), VolatileExtractor
        )
        assert isinstance(
            registry.select(PORTAL, ItemClassification.STANDARD), CatalogExtractor
        )
        assert isinstance(
            registry.select(ItemIdentifier.by_name("Portal 2"), ItemClassification.STANDARD),
            NameSearchExtractor,
        )

    @pytest.mark.parametrize(
        "exc", [ExtractionError("bad page"), RuntimeError("boom")]
    )
    def test_failures_become_no_listing_data(self, exc):
        registry = ExtractorRegistry(by_catalog_id=_RaisingExtractor(exc))
        extraction = registry.extract("<html></html>", PORTAL, ItemClassification.STANDARD)
        assert _reason(extraction) == UnavailableReason.NO_LISTING_DATA
