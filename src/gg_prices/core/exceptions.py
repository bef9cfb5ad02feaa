"""Custom exception hierarchy for gg-prices."""

from typing import Any


class GGPricesError(Exception):
    """Base exception for all gg-prices errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(GGPricesError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str — the config field that failed validation
        value: Any — the invalid value
    """


class FetchError(GGPricesError):
    """A page could not be retrieved from the price source.

    Policy: never escapes FetchCoordinator. Mapped to an UnavailablePrice.

    Context keys:
        url: str — the URL that was being fetched
    """


class TransportError(FetchError):
    """Network or connection failure before an HTTP response arrived.

    Context keys:
        error: str — the underlying transport error
    """


class FetchTimeoutError(FetchError):
    """The fetch deadline elapsed before a response arrived.

    Context keys:
        timeout: float — the deadline in seconds
    """


class ExtractionError(GGPricesError):
    """A fetched document could not be turned into a price.

    Policy: never escapes FetchCoordinator. Mapped to an UnavailablePrice.

    Context keys:
        identifier: str — the item key being extracted
        reason: str — why extraction failed
    """


class StorageError(GGPricesError):
    """Reading or writing the persisted cache snapshot failed.

    Policy: raise immediately. A lost write would desynchronize the
    in-memory cache from durable state.

    Context keys:
        operation: str — "load", "save", etc.
        path: str — the backing file or database
    """
