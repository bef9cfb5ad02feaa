"""gg-prices: cached, rate-limited gg.deals price lookups."""
