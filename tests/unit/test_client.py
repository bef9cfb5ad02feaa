"""Tests for gg_prices.fetch.client (HttpPageFetcher) and SourceRouter."""

from __future__ import annotations

import asyncio

import httpx
import pytest
import respx
from aiolimiter import AsyncLimiter

from gg_prices.core.config import SourceConfig
from gg_prices.core.exceptions import FetchTimeoutError, TransportError
from gg_prices.core.models import ItemClassification, ItemIdentifier
from gg_prices.fetch.client import FetchResponse, HttpPageFetcher, PageFetcher
from gg_prices.fetch.routes import SourceRouter


ITEM_URL = "https://gg.deals/steam/app/620/"


@pytest.fixture
def source_config() -> SourceConfig:
    return SourceConfig(user_agent="TestAgent/1.0", request_timeout=5)


@pytest.fixture
async def fetcher(source_config: SourceConfig) -> HttpPageFetcher:
    async with HttpPageFetcher(source_config) as f:
        yield f


class TestHttpPageFetcher:
    def test_satisfies_protocol(self, source_config):
        assert isinstance(HttpPageFetcher(source_config), PageFetcher)

    @respx.mock
    async def test_returns_body(self, fetcher: HttpPageFetcher):
        respx.get(ITEM_URL).mock(return_value=httpx.Response(200, text="<html>ok</html>"))
        response = await fetcher.fetch(ITEM_URL)
        assert response == FetchResponse(url=ITEM_URL, status=200, body="<html>ok</html>")
        assert response.ok

    @respx.mock
    async def test_sends_user_agent(self, fetcher: HttpPageFetcher):
        route = respx.get(ITEM_URL).mock(return_value=httpx.Response(200, text=""))
        await fetcher.fetch(ITEM_URL)
        assert route.calls.last.request.headers["User-Agent"] == "TestAgent/1.0"

    @respx.mock
    async def test_error_status_is_returned(self, fetcher: HttpPageFetcher):
        respx.get(ITEM_URL).mock(return_value=httpx.Response(503, text="busy"))
        response = await fetcher.fetch(ITEM_URL)
        assert response.status == 503
        assert not response.ok

    @respx.mock
    async def test_follows_redirects(self, fetcher: HttpPageFetcher):
        respx.get("https://gg.deals/steam/app/1/").mock(
            return_value=httpx.Response(301, headers={"Location": ITEM_URL})
        )
        respx.get(ITEM_URL).mock(return_value=httpx.Response(200, text="moved"))
        response = await fetcher.fetch("https://gg.deals/steam/app/1/")
        assert response.body == "moved"

    @respx.mock
    async def test_timeout_raises(self, fetcher: HttpPageFetcher):
        respx.get(ITEM_URL).mock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(FetchTimeoutError) as exc_info:
            await fetcher.fetch(ITEM_URL)
        assert exc_info.value.context["url"] == ITEM_URL

    @respx.mock
    async def test_connect_error_raises_transport_error(self, fetcher: HttpPageFetcher):
        respx.get(ITEM_URL).mock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(TransportError):
            await fetcher.fetch(ITEM_URL)

    @respx.mock
    async def test_requests_acquire_the_limiter(self, source_config):
        respx.get(ITEM_URL).mock(return_value=httpx.Response(200, text="ok"))
        limiter = AsyncLimiter(max_rate=1, time_period=0.2)
        loop = asyncio.get_running_loop()
        async with HttpPageFetcher(source_config, limiter=limiter) as fetcher:
            started = loop.time()
            await fetcher.fetch(ITEM_URL)
            await fetcher.fetch(ITEM_URL)
            elapsed = loop.time() - started
        assert elapsed >= 0.1

    def test_limiter_follows_config(self):
        fetcher = HttpPageFetcher(SourceConfig(max_requests_per_minute=12))
        assert fetcher._limiter.max_rate == 12
        assert fetcher._limiter.time_period == 60.0


class TestSourceRouter:
    def test_catalog_item_url(self):
        router = SourceRouter()
        assert router.url_for(ItemIdentifier.parse("app/620")) == ITEM_URL
        assert router.url_for(ItemIdentifier.parse("sub/7932")) == (
            "https://gg.deals/steam/sub/7932/"
        )

    def test_name_search_url(self):
        url = SourceRouter().url_for(ItemIdentifier.by_name("Half-Life 2: Episode One"))
        assert url == (
            "https://gg.deals/search/?platform=1,2,4,2048,4096,8192"
            "&title=Half-Life%202%3A%20Episode%20One"
        )

    def test_volatile_url(self):
        url = SourceRouter().url_for(
            ItemIdentifier.by_name("Gems"), ItemClassification.VOLATILE
        )
        assert url.startswith("https://steamcommunity.com/market/listings/753/")

    def test_volatile_without_source_falls_back_to_search(self):
        url = SourceRouter().url_for(
            ItemIdentifier.by_name("Refined Metal"), ItemClassification.VOLATILE
        )
        assert url.startswith("https://gg.deals/search/")

    def test_custom_base_url(self):
        router = SourceRouter(SourceConfig(base_url="http://localhost:8080/"))
        assert router.item_url(ItemIdentifier.parse("app/1")) == (
            "http://localhost:8080/steam/app/1/"
        )
