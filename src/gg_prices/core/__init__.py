"""gg_prices.core — Foundation types, config, and exceptions."""

from gg_prices.core.config import (
    CacheConfig,
    ExtractionConfig,
    PricesConfig,
    SourceConfig,
    StorageConfig,
    load_config,
)
from gg_prices.core.exceptions import (
    ConfigError,
    ExtractionError,
    FetchError,
    FetchTimeoutError,
    GGPricesError,
    StorageError,
    TransportError,
)
from gg_prices.core.models import (
    DEFAULT_VOLATILE_ITEMS,
    CacheEntry,
    CatalogNamespace,
    CompositePrice,
    CurrencyCode,
    Extraction,
    IdentifierKind,
    ItemClassification,
    ItemDescriptor,
    ItemIdentifier,
    ItemKey,
    ListedPrice,
    PriceResult,
    StorageBackend,
    UnavailablePrice,
    UnavailableReason,
    classify,
    price_result_adapter,
    unavailable,
)

__all__ = [
    # Type aliases
    "ItemKey",
    "CurrencyCode",
    "PriceResult",
    # Constants
    "DEFAULT_VOLATILE_ITEMS",
    # Enums
    "IdentifierKind",
    "CatalogNamespace",
    "ItemClassification",
    "UnavailableReason",
    "StorageBackend",
    # Identity models
    "ItemIdentifier",
    "ItemDescriptor",
    "classify",
    # Price models
    "ListedPrice",
    "CompositePrice",
    "UnavailablePrice",
    "Extraction",
    "price_result_adapter",
    "unavailable",
    # Cache models
    "CacheEntry",
    # Config
    "PricesConfig",
    "SourceConfig",
    "CacheConfig",
    "StorageConfig",
    "ExtractionConfig",
    "load_config",
    # Exceptions
    "GGPricesError",
    "ConfigError",
    "FetchError",
    "TransportError",
    "FetchTimeoutError",
    "ExtractionError",
    "StorageError",
]
