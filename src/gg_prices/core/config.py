"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from gg_prices.core.exceptions import ConfigError
from gg_prices.core.models import DEFAULT_STORE, DEFAULT_VOLATILE_ITEMS, StorageBackend


class SourceConfig(BaseModel):
    """Remote price source access and outbound request pacing."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://gg.deals"
    search_platforms: str = "1,2,4,2048,4096,8192"
    user_agent: str = "gg-prices/0.1"
    # gg.deals tolerates about 10 requests a minute
    request_interval: float = 6.0
    jitter: float = 0.0
    request_timeout: float = 30.0
    # Ceiling for any caller of the HTTP fetcher, above the paced lane rate
    max_requests_per_minute: int = 30

    @field_validator("base_url")
    @classmethod
    def base_url_is_http(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("request_interval", "request_timeout")
    @classmethod
    def positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be > 0 seconds")
        return v

    @field_validator("max_requests_per_minute")
    @classmethod
    def positive_rate(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_requests_per_minute must be >= 1")
        return v

    @field_validator("jitter")
    @classmethod
    def jitter_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("jitter must be >= 0")
        return v


class CacheConfig(BaseModel):
    """Freshness policy for remembered prices."""

    model_config = ConfigDict(frozen=True)

    standard_ttl_days: int = 7
    volatile_ttl_hours: int = 24
    hard_horizon_days: int = 30
    volatile_items: tuple[str, ...] = DEFAULT_VOLATILE_ITEMS

    @field_validator("standard_ttl_days", "volatile_ttl_hours", "hard_horizon_days")
    @classmethod
    def positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @property
    def standard_ttl(self) -> timedelta:
        return timedelta(days=self.standard_ttl_days)

    @property
    def volatile_ttl(self) -> timedelta:
        return timedelta(hours=self.volatile_ttl_hours)

    @property
    def hard_horizon(self) -> timedelta:
        return timedelta(days=self.hard_horizon_days)


class StorageConfig(BaseModel):
    """Cache persistence backend configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.JSON
    json_path: str = "./data/cached_prices.json"
    sqlite_path: str = "./data/gg_prices.db"


class ExtractionConfig(BaseModel):
    """Knobs for turning fetched pages into prices."""

    model_config = ConfigDict(frozen=True)

    drm: str = DEFAULT_STORE
    reduce_groups: bool = True
    default_currency: str = "USD"

    @field_validator("default_currency")
    @classmethod
    def currency_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("default_currency must not be empty")
        return v


class PricesConfig(BaseModel):
    """Root configuration for the entire gg-prices system."""

    model_config = ConfigDict(frozen=True)

    source: SourceConfig = SourceConfig()
    cache: CacheConfig = CacheConfig()
    storage: StorageConfig = StorageConfig()
    extraction: ExtractionConfig = ExtractionConfig()


ENV_PREFIX = "GG_PRICES_"
CONFIG_ENV_VAR = "GG_PRICES_CONFIG"

_CONFIG_FILENAMES = ("gg-prices.yml", "gg-prices.yaml")

_SECTIONS: dict[str, type[BaseModel]] = {
    "source": SourceConfig,
    "cache": CacheConfig,
    "storage": StorageConfig,
    "extraction": ExtractionConfig,
}

# Fields given as comma-separated lists in the environment
_LIST_FIELDS = {("cache", "volatile_items")}


def load_config(config_path: str | None = None) -> PricesConfig:
    """Build the configuration from defaults, a YAML file and the environment.

    Resolution order (highest priority first):
    1. ``GG_PRICES_<SECTION>__<FIELD>`` environment variables, e.g.
       ``GG_PRICES_SOURCE__JITTER=1.5``
    2. The YAML file: ``config_path``, else ``$GG_PRICES_CONFIG``, else
       ``gg-prices.yml`` (or ``.yaml``) in the working directory, else
       ``config.yml`` in the user config directory
    3. Built-in defaults

    Unknown sections and fields are rejected from either source, so a typo
    never silently falls back to a default. Environment strings are coerced
    by pydantic; ``cache.volatile_items`` takes a comma-separated list.

    Raises:
        ConfigError: Missing file, unreadable YAML, unknown key, or a value
            that fails validation.
    """
    path = _find_config_file(config_path)
    sections = _read_sections(path) if path is not None else {}
    for section, field, value in _env_overrides():
        sections.setdefault(section, {})[field] = value

    try:
        return PricesConfig.model_validate(sections)
    except ValidationError as e:
        first = e.errors()[0]
        raise ConfigError(
            f"Invalid configuration: {e}",
            context={
                "field": ".".join(str(part) for part in first["loc"]),
                "value": first.get("input"),
                "path": str(path) if path is not None else None,
            },
        ) from e


def user_config_dir() -> Path:
    """``$XDG_CONFIG_HOME/gg-prices``, defaulting to ``~/.config/gg-prices``."""
    base = os.environ.get("XDG_CONFIG_HOME")
    return (Path(base) if base else Path.home() / ".config") / "gg-prices"


def _find_config_file(explicit: str | None) -> Path | None:
    candidates = ((explicit, "config_path"), (os.environ.get(CONFIG_ENV_VAR), CONFIG_ENV_VAR))
    for candidate, origin in candidates:
        if candidate:
            path = Path(candidate).expanduser()
            if not path.is_file():
                raise ConfigError(
                    f"Config file not found: {candidate}",
                    context={"field": origin, "value": candidate},
                )
            return path

    for name in _CONFIG_FILENAMES:
        if Path(name).is_file():
            return Path(name)
    user_file = user_config_dir() / "config.yml"
    return user_file if user_file.is_file() else None


def _read_sections(path: Path) -> dict[str, dict]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(
            f"Failed to read config file {path}: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Config file {path} must be a mapping of sections, got {type(data).__name__}",
            context={"field": "config_file", "value": str(path)},
        )

    sections: dict[str, dict] = {}
    for section, values in data.items():
        if values is None:
            values = {}
        if not isinstance(values, dict):
            raise ConfigError(
                f"Section '{section}' in {path} must be a mapping",
                context={"field": str(section), "value": values},
            )
        for field in values:
            _check_key(str(section), str(field), origin=str(path))
        sections[str(section)] = dict(values)
    return sections


def _env_overrides() -> list[tuple[str, str, object]]:
    overrides: list[tuple[str, str, object]] = []
    for name, raw in sorted(os.environ.items()):
        if not name.startswith(ENV_PREFIX) or name == CONFIG_ENV_VAR:
            continue
        section, sep, field = name[len(ENV_PREFIX) :].lower().partition("__")
        if not sep:
            raise ConfigError(
                f"{name} must name a section and a field, e.g. {ENV_PREFIX}SOURCE__JITTER",
                context={"field": name, "value": raw},
            )
        _check_key(section, field, origin=name)
        value: object = raw
        if (section, field) in _LIST_FIELDS:
            value = tuple(item.strip() for item in raw.split(",") if item.strip())
        overrides.append((section, field, value))
    return overrides


def _check_key(section: str, field: str, origin: str) -> None:
    model = _SECTIONS.get(section)
    if model is None:
        raise ConfigError(
            f"Unknown config section '{section}' in {origin}",
            context={"field": section, "value": origin},
        )
    if field not in model.model_fields:
        raise ConfigError(
            f"Unknown config field '{section}.{field}' in {origin}",
            context={"field": f"{section}.{field}", "value": origin},
        )
