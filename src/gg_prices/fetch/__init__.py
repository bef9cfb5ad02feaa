"""Outbound price lookups: HTTP fetcher, source routing, and the rate-limited lane."""

from gg_prices.fetch.client import FetchResponse, HttpPageFetcher, PageFetcher
from gg_prices.fetch.coordinator import FetchCoordinator, FetchTask
from gg_prices.fetch.routes import SourceRouter

__all__ = [
    "FetchCoordinator",
    "FetchResponse",
    "FetchTask",
    "HttpPageFetcher",
    "PageFetcher",
    "SourceRouter",
]
