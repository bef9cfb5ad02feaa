"""Shared pytest fixtures for gg-prices."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from gg_prices.core.exceptions import FetchTimeoutError, TransportError
from gg_prices.fetch.client import FetchResponse


# --- Page Builders ---


def _deal(price: str, drm: str = "steam") -> str:
    return (
        '<div class="similar-deals-container">'
        f'<svg class="svg-icon-drm-{drm}"></svg>'
        f'<span class="price-inner">{price}</span>'
        "</div>"
    )


def make_item_page(
    official: list[str] | None = None,
    keyshops: list[str] | None = None,
    *,
    name: str = "Portal 2",
    currency: str | None = "USD",
    ld_json: bool = True,
    extra_deals: str = "",
) -> str:
    """Render a minimal gg.deals item page."""
    offers = {"@type": "AggregateOffer"}
    if currency is not None:
        offers["priceCurrency"] = currency
    ld = (
        '<script type="application/ld+json">'
        + json.dumps({"@type": "Product", "name": name, "offers": offers})
        + "</script>"
        if ld_json
        else ""
    )
    official_html = "".join(_deal(p) for p in official or [])
    keyshop_html = "".join(_deal(p) for p in keyshops or [])
    return (
        "<html><head>"
        f"{ld}"
        "</head><body>"
        '<nav><a itemprop="item" class="active" href="#">'
        f'<span itemprop="name">{name}</span></a></nav>'
        f'<div id="official-stores">{official_html}{extra_deals}</div>'
        f'<div id="keyshops">{keyshop_html}</div>'
        "</body></html>"
    )


def make_search_page(
    results: list[tuple[str, str]] | None = None,
    prices: list[str] | None = None,
) -> str:
    """Render a minimal gg.deals search results page.

    ``results`` holds (href, name) pairs in display order.
    """
    links = "".join(
        f'<a class="game-info-title" href="{href}">'
        f'<span itemprop="name">{name}</span></a>'
        for href, name in results or []
    )
    price_html = "".join(
        f'<span class="price-inner numeric">{p}</span>' for p in prices or []
    )
    return f"<html><body><div class='results'>{links}{price_html}</div></body></html>"


def make_market_page(promote: str | None = None, listing: str | None = None) -> str:
    """Render a minimal Steam market / mannco.store price page."""
    parts = []
    if promote is not None:
        parts.append(f'<span class="market_commodity_orders_header_promote">{promote}</span>')
    if listing is not None:
        parts.append(f'<span class="market_listing_price">{listing}</span>')
    return f"<html><body>{''.join(parts)}</body></html>"


@pytest.fixture
def item_page():
    return make_item_page


@pytest.fixture
def search_page():
    return make_search_page


@pytest.fixture
def market_page():
    return make_market_page


# --- Fakes ---


class FakeFetcher:
    """Scripted PageFetcher recording every request with its start and end time.

    ``routes`` maps a URL to a body string, a FetchResponse, or an
    exception instance to raise. Unknown URLs return ``default``.
    """

    def __init__(
        self,
        routes: dict | None = None,
        default: str | FetchResponse | Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.routes = dict(routes or {})
        self.default = default
        self.delay = delay
        self.calls: list[tuple[str, float]] = []
        self.ends: list[float] = []
        self.active = 0
        self.max_active = 0

    @property
    def urls(self) -> list[str]:
        return [url for url, _ in self.calls]

    @property
    def starts(self) -> list[float]:
        return [start for _, start in self.calls]

    async def fetch(self, url: str) -> FetchResponse:
        self.calls.append((url, asyncio.get_running_loop().time()))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            outcome = self.routes.get(url, self.default)
            if isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, FetchResponse):
                return outcome
            if outcome is None:
                return FetchResponse(url=url, status=404, body="")
            return FetchResponse(url=url, status=200, body=outcome)
        finally:
            self.active -= 1
            self.ends.append(asyncio.get_running_loop().time())


@pytest.fixture
def fake_fetcher():
    """Factory for FakeFetcher instances."""
    return FakeFetcher


@pytest.fixture
def transport_error():
    return TransportError("connection refused", context={"url": "x"})


@pytest.fixture
def timeout_error():
    return FetchTimeoutError("timed out", context={"url": "x"})


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))
