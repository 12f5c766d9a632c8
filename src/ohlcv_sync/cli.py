"""Click-based CLI for ohlcv-sync.

Thin wrapper around library modules. Zero business logic — every operation
delegates to the sync job, the orchestrator, or the store.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import date

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=verbose)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.INFO if verbose else logging.WARNING)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from ohlcv_sync.core import load_config

        ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
    return ctx.obj["config"]


async def _create_store_async(config):
    """Create and initialize storage from config."""
    from ohlcv_sync.store import create_store

    return await create_store(config.storage)


def _resolve_symbols(symbols: str) -> list[str]:
    """Split a comma-separated symbol list."""
    from ohlcv_sync.sync import normalize_symbols

    resolved = normalize_symbols(symbols.split(","))
    if not resolved:
        raise click.UsageError("--symbols must name at least one symbol")
    return resolved


async def _run_job(config, action, total: int | None = None):
    """Build store + orchestrator + job, run ``action(job)``, clean up."""
    from ohlcv_sync.sync import IncrementalSyncJob, create_orchestrator

    store = await _create_store_async(config)
    orchestrator = create_orchestrator(config)
    try:
        job = IncrementalSyncJob(store, orchestrator, config.sync)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task(
                f"Syncing {total} symbol(s)..." if total else "Syncing stored symbols...",
                total=total,
            )
            return await action(job)
    finally:
        await orchestrator.aclose()
        await store.close()


def _output_summary(summary, output_format: str) -> None:
    if output_format == "json":
        click.echo(json.dumps(summary.model_dump(mode="json"), indent=2, default=str))
        return

    table = Table(title="Sync Results")
    table.add_column("Symbol", style="bold")
    table.add_column("Status")
    table.add_column("Written", justify="right")
    table.add_column("Range")
    table.add_column("Provider / Error")

    for r in summary.results:
        if r.success:
            span = f"{r.range_start} → {r.range_end}" if r.range_start else "up to date"
            table.add_row(r.symbol, "[green]ok[/green]", str(r.records_written), span, r.provider or "")
        else:
            table.add_row(
                r.symbol, f"[red]{r.error_kind.value}[/red]", "0", "", r.message or ""
            )
    for symbol in summary.not_started:
        table.add_row(symbol, "[yellow]not started[/yellow]", "", "", "")

    console.print(table)
    console.print(
        f"[green]✓[/green] {summary.success_count} succeeded, "
        f"{summary.failure_count} failed, {summary.total_records} records written"
        + (" [yellow](cancelled)[/yellow]" if summary.cancelled else "")
    )


_FORMAT_OPTION = click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="OHLCV_SYNC_CONFIG",
    default=None,
    help="Path to ohlcv-sync.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="ohlcv-sync")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """ohlcv-sync: daily price history sync with provider fallback."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _configure_logging(verbose)


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--symbols",
    "-s",
    type=str,
    required=True,
    help="Comma-separated symbols (e.g. AAPL,MSFT,SPY).",
)
@click.option(
    "--force",
    is_flag=True,
    default=False,
    help="Re-fetch full history instead of resuming after the last stored date.",
)
@click.option(
    "--end",
    "-e",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Last date to fetch (default: today).",
)
@_FORMAT_OPTION
@click.pass_context
def sync(
    ctx: click.Context,
    symbols: str,
    force: bool,
    end,
    output_format: str,
) -> None:
    """Fetch missing history for the given symbols."""
    config = _load_config(ctx)
    symbol_list = _resolve_symbols(symbols)
    end_date: date | None = end.date() if end else None

    summary = _run_async(
        _run_job(
            config,
            lambda job: job.sync_symbols(symbol_list, force_full_resync=force, end=end_date),
            total=len(symbol_list),
        )
    )
    _output_summary(summary, output_format)
    if summary.failure_count:
        ctx.exit(1)


# ---------------------------------------------------------------------------
# sync-all
# ---------------------------------------------------------------------------


@cli.command("sync-all")
@click.option(
    "--years-back",
    "-y",
    type=click.IntRange(min=1),
    default=None,
    help="Full re-sync limited to this many years (default: incremental).",
)
@_FORMAT_OPTION
@click.pass_context
def sync_all(ctx: click.Context, years_back: int | None, output_format: str) -> None:
    """Bring every stored symbol up to date."""
    config = _load_config(ctx)
    summary = _run_async(_run_job(config, lambda job: job.sync_all(years_back=years_back)))
    if not summary.results and not summary.not_started:
        console.print("[yellow]No stored symbols. Use 'ohlcv-sync sync --symbols ...' first.[/yellow]")
        return
    _output_summary(summary, output_format)
    if summary.failure_count:
        ctx.exit(1)


# ---------------------------------------------------------------------------
# health
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Probe every enabled provider."""
    config = _load_config(ctx)

    async def _run():
        from ohlcv_sync.sync import create_orchestrator

        orchestrator = create_orchestrator(config)
        try:
            return orchestrator, await orchestrator.health()
        finally:
            await orchestrator.aclose()

    orchestrator, results = _run_async(_run())

    table = Table(title="Provider Health")
    table.add_column("Provider", style="bold")
    table.add_column("Priority", justify="right")
    table.add_column("Configured")
    table.add_column("Healthy")
    for provider in orchestrator.providers:
        healthy = results.get(provider.name, False)
        table.add_row(
            provider.name,
            str(provider.identity.priority),
            "yes" if provider.is_configured else "[yellow]no[/yellow]",
            "[green]up[/green]" if healthy else "[red]down[/red]",
        )
    console.print(table)
    if not any(results.values()):
        ctx.exit(1)


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default: from config).")
@click.option("--port", "-p", type=int, default=None, help="Port number (default: from config).")
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the admin API server."""
    import uvicorn

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port

    console.print(f"Starting ohlcv-sync API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "ohlcv_sync.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show stored symbols and their coverage."""
    async def _run():
        config = _load_config(ctx)
        store = await _create_store_async(config)
        try:
            metadata = await store.list_metadata()
            counts = {m.symbol: await store.count_prices(m.symbol) for m in metadata}

            table = Table(title="ohlcv-sync Status")
            table.add_column("Symbol", style="bold")
            table.add_column("Type")
            table.add_column("Rows", justify="right")
            table.add_column("Earliest")
            table.add_column("Last sync")

            for m in metadata:
                table.add_row(
                    m.symbol,
                    m.asset_type.value,
                    str(counts[m.symbol]),
                    str(m.earliest_date or "N/A"),
                    str(m.last_sync_date or "N/A"),
                )
            table.add_section()
            table.add_row("Total", "", str(sum(counts.values())), "", "")

            console.print(f"Database: {config.storage.sqlite_path}")
            console.print(table)
        finally:
            await store.close()

    _run_async(_run())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
