"""Click-based CLI for gg-prices.

Thin wrapper around library modules. It plays the display collaborator:
all price and age formatting lives here, never in the core.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from datetime import timedelta
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console(stderr=True)

ITEMS_PER_PAGE = 50

_UNAVAILABLE_LABELS = {
    "not_found": "Not found",
    "no_listing_data": "No LD",
    "empty": "No listings",
    "transport_error": "Error",
    "timeout": "Timeout",
}

# Gem prices are quoted per sack of 1000
_PER_THOUSAND_ITEMS = ("gems", "sack of gems")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from gg_prices.core import load_config

        ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
    return ctx.obj["config"]


async def _open_store(config):
    """Create the cache store from config and load (and prune) it."""
    from gg_prices.cache import CacheStore, create_backend
    from gg_prices.lookup import utc_now

    store = CacheStore(create_backend(config.storage), config.cache)
    await store.load(utc_now())
    return store


def _parse_items(raw_items) -> list:
    """Turn item strings ("app/620", "sub/123", or a name) into descriptors."""
    from gg_prices.core import ItemDescriptor

    descriptors = []
    for raw in raw_items:
        text = raw.strip()
        if not text or text.startswith("#"):
            continue
        descriptors.append(ItemDescriptor.from_key(text))
    return descriptors


def _format_price(price, name: str = "") -> str:
    """Human-readable price; minor units become a decimal amount."""
    from gg_prices.core import CompositePrice, ListedPrice

    if isinstance(price, ListedPrice):
        text = f"{price.currency} {price.amount_minor / 100:.2f}"
        if name.strip().lower() in _PER_THOUSAND_ITEMS:
            text += "/1000"
        return text
    if isinstance(price, CompositePrice):
        if price.secondary:
            return f"{price.primary} | {price.secondary}"
        return price.primary
    return _UNAVAILABLE_LABELS.get(str(price.reason), str(price.reason))


def _format_age(age: timedelta) -> str:
    hours = age.total_seconds() / 3600
    if hours < 1:
        return f"{hours * 60:.2f} minutes"
    if hours < 24:
        return f"{hours:.2f} hours"
    return f"{hours / 24:.2f} days"


def _page(entries: list, page: int) -> tuple[list, int]:
    """Slice one 1-based page of entries; returns (items, total_pages)."""
    total_pages = max(1, math.ceil(len(entries) / ITEMS_PER_PAGE))
    page = min(max(page, 1), total_pages)
    start = (page - 1) * ITEMS_PER_PAGE
    return entries[start : start + ITEMS_PER_PAGE], total_pages


def _output_prices_table(lookup, results: dict, title: str) -> None:
    """Render lookup results as a Rich table."""
    from gg_prices.core import ItemIdentifier

    table = Table(title=title)
    table.add_column("Item", style="bold")
    table.add_column("Price", justify="right")
    table.add_column("Link")

    for key, price in results.items():
        identifier = ItemIdentifier.parse(key)
        entry = lookup.store.find(identifier)
        name = entry.canonical_name if entry else key
        link = lookup.source_url(entry) if entry else ""
        table.add_row(name, _format_price(price, name), link)

    console.print(table)


async def _run_lookups(config, descriptors, hard: bool) -> None:
    from gg_prices.fetch import HttpPageFetcher
    from gg_prices.lookup import create_lookup

    async with HttpPageFetcher(config.source) as fetcher:
        lookup = await create_lookup(config, fetcher)
        async with lookup:
            for descriptor in descriptors:
                lookup.track(descriptor)
            pending = sum(1 for d in descriptors if hard or lookup.needs_refresh(d))
            if pending:
                eta = (pending - 1) * config.source.request_interval
                console.print(
                    f"Looking up {pending} items (at least {eta:.0f}s at the request rate)..."
                )
            if hard:
                results = await lookup.hard_refresh()
            else:
                results = await lookup.soft_refresh()
            cached = {
                d.identifier.key: lookup.cached(d).price
                for d in descriptors
                if d.identifier.key not in results and lookup.cached(d) is not None
            }
            _output_prices_table(lookup, {**cached, **results}, "GG.Deals Prices")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="GG_PRICES_CONFIG",
    default=None,
    help="Path to gg-prices.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output.",
)
@click.version_option(package_name="gg-prices")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """GG Prices: cached, rate-limited game and commodity price lookups."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _configure_logging(verbose)


# ---------------------------------------------------------------------------
# lookup / refresh
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("items", nargs=-1, required=True)
@click.option(
    "--hard",
    is_flag=True,
    default=False,
    help="Refetch even when a fresh cached price exists.",
)
@click.pass_context
def lookup(ctx: click.Context, items: tuple[str, ...], hard: bool) -> None:
    """Price ITEMS: catalog ids like app/620 or sub/1234, or game names."""
    config = _load_config(ctx)
    descriptors = _parse_items(items)
    _run_async(_run_lookups(config, descriptors, hard))


@cli.command()
@click.argument("items_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--hard",
    is_flag=True,
    default=False,
    help="Refresh every item instead of only missing, stale, or failed ones.",
)
@click.pass_context
def refresh(ctx: click.Context, items_file: str, hard: bool) -> None:
    """Refresh prices for every item listed in ITEMS_FILE (one per line)."""
    config = _load_config(ctx)
    lines = Path(items_file).read_text(encoding="utf-8").splitlines()
    descriptors = _parse_items(lines)
    if not descriptors:
        console.print("[yellow]No items found in file.[/yellow]")
        raise SystemExit(1)
    _run_async(_run_lookups(config, descriptors, hard))


# ---------------------------------------------------------------------------
# cache
# ---------------------------------------------------------------------------


@cli.group()
def cache() -> None:
    """Inspect and manage cached prices."""


@cache.command("show")
@click.option("--search", "-s", type=str, default=None, help="Filter by name or app id.")
@click.option("--page", "-p", type=int, default=1, help="Page number (50 per page).")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def cache_show(
    ctx: click.Context, search: str | None, page: int, output_format: str
) -> None:
    """List cached prices, sorted by name."""
    config = _load_config(ctx)

    async def _run():
        from gg_prices.fetch import SourceRouter
        from gg_prices.lookup import utc_now

        store = await _open_store(config)
        entries = store.search(search) if search else store.snapshot()

        if output_format == "json":
            from gg_prices.cache import encode_snapshot

            click.echo(
                json.dumps(encode_snapshot({e.key: e for e in entries}), indent=2)
            )
            return

        router = SourceRouter(config.source)
        now = utc_now()
        items, total_pages = _page(entries, page)
        table = Table(
            title=f"Cached Prices ({len(entries)} cached items, page "
            f"{min(max(page, 1), total_pages)}/{total_pages})"
        )
        table.add_column("Name", style="bold")
        table.add_column("App ID")
        table.add_column("Price", justify="right")
        table.add_column("Age", justify="right")
        table.add_column("Link")
        for entry in items:
            link = (
                router.item_url(entry.canonical_id)
                if entry.canonical_id
                else router.url_for(entry.key, store.classification(entry))
            )
            table.add_row(
                entry.canonical_name,
                entry.canonical_id.key if entry.canonical_id else "",
                _format_price(entry.price, entry.canonical_name),
                _format_age(entry.age(now)),
                link,
            )
        if not items:
            console.print("No results.")
            return
        console.print(table)

    _run_async(_run())


@cache.command("clear")
@click.option("--yes", "-y", is_flag=True, default=False, help="Do not ask for confirmation.")
@click.pass_context
def cache_clear(ctx: click.Context, yes: bool) -> None:
    """Drop every cached price."""
    config = _load_config(ctx)
    if not yes and not click.confirm("Are you sure you want to clear all cached prices?"):
        console.print("Aborted.")
        return

    async def _run():
        store = await _open_store(config)
        removed = await store.clear()
        console.print(f"[green]✓[/green] Cleared {removed} cached prices")

    _run_async(_run())


@cache.command("prune")
@click.pass_context
def cache_prune(ctx: click.Context) -> None:
    """Delete entries older than the hard horizon."""
    config = _load_config(ctx)

    async def _run():
        from gg_prices.cache import CacheStore, create_backend
        from gg_prices.lookup import utc_now

        store = CacheStore(create_backend(config.storage), config.cache)
        # Loading prunes on its own
        pruned = await store.load(utc_now())
        console.print(
            f"[green]✓[/green] Pruned {pruned} cached prices older than "
            f"{config.cache.hard_horizon_days} days, {len(store)} remain"
        )

    _run_async(_run())


@cache.command("import-legacy")
@click.argument("cache_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def cache_import_legacy(ctx: click.Context, cache_file: str) -> None:
    """Import a cachedPrices JSON export from the browser userscripts."""
    config = _load_config(ctx)

    async def _run():
        from gg_prices.cache import decode_snapshot
        from gg_prices.lookup import utc_now

        try:
            raw = json.loads(Path(cache_file).read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            console.print(f"[red]Not a JSON file: {e}[/red]")
            raise SystemExit(1)
        if not isinstance(raw, dict):
            console.print("[red]Expected a JSON object of cached prices.[/red]")
            raise SystemExit(1)

        store = await _open_store(config)
        imported = await store.merge(decode_snapshot(raw))
        pruned = await store.prune_expired(utc_now())
        console.print(
            f"[green]✓[/green] Imported {imported} cached prices"
            + (f" ({pruned} expired)" if pruned else "")
        )

    _run_async(_run())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
