"""CLI entry point for the sales intelligence tool."""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from sales_intel.cache.store import SqliteStore
from sales_intel.config import load_config
from sales_intel.models import CacheType, IntelligenceResult
from sales_intel.pipeline import IntelligencePipeline
from sales_intel.search.strategy import SALES_CONTEXTS
from sales_intel.tracker import AsyncRequestTracker

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, show_time=False)],
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
def main(verbose: bool) -> None:
    """Cited sales intelligence for a target company domain."""
    _setup_logging(verbose)


@main.command()
@click.argument("domain")
@click.option("--context", "-c", default="discovery", show_default=True,
              help=f"Sales context ({', '.join(SALES_CONTEXTS)}, or any label)")
@click.option("--seller", "-s", default=None, help="Seller company, for relationship-aware queries")
@click.option("--intent", default=None, help="Free-text request; picks queries by classified intent")
@click.option("--force-refresh", is_flag=True, help="Ignore the cached result")
@click.option("--json", "as_json", is_flag=True, help="Print the raw result as JSON")
def research(
    domain: str,
    context: str,
    seller: str | None,
    intent: str | None,
    force_refresh: bool,
    as_json: bool,
) -> None:
    """Generate context-specific intelligence for DOMAIN.

    Example: sales-intel research shopify.com --context discovery
    """
    config = load_config()
    pipeline = IntelligencePipeline.from_config(config)

    async def run() -> IntelligenceResult:
        try:
            return await pipeline.generate_intelligence(
                domain,
                context,
                seller_company=seller,
                intent_text=intent,
                force_refresh=force_refresh,
                on_stage=lambda state: console.print(f"[dim]{state}[/dim]"),
            )
        finally:
            await pipeline.close()

    try:
        result = asyncio.run(run())
    except ValueError as e:
        console.print(f"[red]Input error: {e}[/red]")
        sys.exit(1)
    _print_result(result, as_json)


@main.command()
@click.argument("domain")
@click.option("--force-refresh", is_flag=True, help="Ignore the cached overview")
@click.option("--json", "as_json", is_flag=True, help="Print the raw result as JSON")
def overview(domain: str, force_refresh: bool, as_json: bool) -> None:
    """Cheap snippet-first company overview for DOMAIN."""
    config = load_config()
    pipeline = IntelligencePipeline.from_config(config)

    async def run() -> IntelligenceResult:
        try:
            return await pipeline.generate_overview(domain, force_refresh=force_refresh)
        finally:
            await pipeline.close()

    try:
        result = asyncio.run(run())
    except ValueError as e:
        console.print(f"[red]Input error: {e}[/red]")
        sys.exit(1)
    _print_result(result, as_json)


@main.command()
@click.argument("request_id")
def status(request_id: str) -> None:
    """Show the state of an async request."""
    config = load_config()
    store = SqliteStore.from_config(config)
    try:
        request = AsyncRequestTracker(store, config).get_request(request_id)
    finally:
        store.close()

    if request is None:
        console.print(f"[red]Request not found or expired: {request_id}[/red]")
        sys.exit(1)

    colour = {"completed": "green", "failed": "red"}.get(request.status, "yellow")
    console.print(f"[bold]{request.request_id}[/bold]  [{colour}]{request.status}[/{colour}]")
    console.print(f"  Domain:  {request.company_domain} ({request.request_type})")
    console.print(f"  Created: {request.created_at.isoformat()}")
    if request.processing_time is not None:
        console.print(f"  Took:    {request.processing_time:.1f}s")
    if request.error:
        console.print(f"  [red]Error: {request.error}[/red]")


@main.group()
def cache() -> None:
    """Inspect or clear the local cache."""


@cache.command("stats")
def cache_stats() -> None:
    config = load_config()
    store = SqliteStore.from_config(config)
    try:
        stats = store.stats()
    finally:
        store.close()

    table = Table(title=f"Cache ({config.cache_db_path})")
    table.add_column("Type")
    table.add_column("Entries", justify="right")
    for type_name, count in sorted(stats.get("by_type", {}).items()):
        table.add_row(type_name, str(count))
    console.print(table)
    console.print(f"[dim]Total: {stats.get('total', 0)}, compressed: {stats.get('compressed', 0)}[/dim]")


@cache.command("list")
@click.option("--pattern", "-p", default=None, help="Glob pattern (substring if no wildcards)")
@click.option("--type", "type_", type=click.Choice([t.value for t in CacheType]), default=None)
@click.option("--limit", default=50, show_default=True)
def cache_list(pattern: str | None, type_: str | None, limit: int) -> None:
    config = load_config()
    store = SqliteStore.from_config(config)
    try:
        keys = store.list_keys(pattern, limit=limit, type=CacheType(type_) if type_ else None)
    finally:
        store.close()
    for key in keys:
        console.print(key)
    console.print(f"[dim]{len(keys)} keys[/dim]")


@cache.command("clear")
@click.option("--type", "type_", type=click.Choice([t.value for t in CacheType]), default=None)
@click.confirmation_option(prompt="Delete cached entries?")
def cache_clear(type_: str | None) -> None:
    config = load_config()
    store = SqliteStore.from_config(config)
    try:
        removed = store.clear(CacheType(type_) if type_ else None)
    finally:
        store.close()
    console.print(f"[green]Removed {removed} entries[/green]")


def _print_result(result: IntelligenceResult, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
        return

    insights = result.insights
    cached = " [dim](cached)[/dim]" if result.from_cache else ""
    console.print(
        f"\n[bold green]{result.company_name}[/bold green] ({result.domain}) "
        f"- {result.sales_context}{cached}"
    )
    console.print(
        f"Confidence: {result.confidence_score:.2f}   "
        f"Deal probability: {insights.deal_probability}%   "
        f"Sources: {result.total_sources}"
    )
    if result.degraded_reasons:
        console.print(f"[yellow]Degraded: {'; '.join(result.degraded_reasons)}[/yellow]")

    for title, items in (
        ("Key insights", insights.key_insights),
        ("Pain points", insights.pain_points),
        ("Opportunities", insights.opportunities),
        ("Talking points", insights.talking_points),
        ("Recommended actions", insights.recommended_actions),
    ):
        if not items:
            continue
        console.print(f"\n[bold]{title}[/bold]")
        for item in items:
            refs = "".join(f"[{i}]" for i in item.citations)
            console.print(f"  - {item.text} [cyan]{refs}[/cyan]", highlight=False)

    if result.sources:
        table = Table(title="Sources")
        table.add_column("#", justify="right")
        table.add_column("Type")
        table.add_column("Cred.", justify="right")
        table.add_column("Title / URL")
        for s in result.sources:
            table.add_row(str(s.id), s.source_type, f"{s.credibility_score:.2f}", f"{s.title}\n{s.url}")
        console.print(table)


if __name__ == "__main__":
    main()
