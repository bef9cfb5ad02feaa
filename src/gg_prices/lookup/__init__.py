"""Lookup orchestration: the entry point for collaborators."""

from gg_prices.lookup.orchestrator import Clock, PriceLookup, create_lookup, utc_now

__all__ = [
    "Clock",
    "PriceLookup",
    "create_lookup",
    "utc_now",
]
