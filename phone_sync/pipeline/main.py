"""CLI entry point for the phone data sync pipeline.

Each command maps onto one facade operation. Any raised error is printed
and the process exits with status 1.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional

import click
import uvicorn
from rich.console import Console
from rich.table import Table

from phone_sync.api.app import create_app
from phone_sync.models.config import ConfigManager, ExternalDataConfig
from phone_sync.models.data_models import SyncJob, SyncSource, SyncStatus
from phone_sync.pipeline.integration import ExternalDataIntegrationService
from phone_sync.pipeline.output import JSONOutputFormatter

console = Console()

_STATUS_STYLE = {"healthy": "green", "warning": "yellow", "critical": "red"}


def _load_config(config_path: Path, catalog: Optional[Path], log_level: Optional[str]) -> ExternalDataConfig:
    overrides = {
        "catalog_file": str(catalog) if catalog else None,
        "log_level": log_level.upper() if log_level else None,
    }
    return ConfigManager(config_path).load_config(overrides)


def _build_service(config_path: Path, catalog: Optional[Path], log_level: Optional[str]) -> ExternalDataIntegrationService:
    return ExternalDataIntegrationService(_load_config(config_path, catalog, log_level))


def _run(ctx: click.Context, action: Callable[[ExternalDataIntegrationService], Awaitable[Any]]) -> Any:
    """Build the service, run ``action`` on it, always clean up, exit 1 on error."""
    async def runner() -> Any:
        service = _build_service(ctx.obj["config"], ctx.obj["catalog"], ctx.obj["log_level"])
        try:
            return await action(service)
        finally:
            await service.cleanup()

    try:
        return asyncio.run(runner())
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[red]Error:[/red] {e}", style="bold red")
        sys.exit(1)


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    default="config/config.yaml",
    help="Path to configuration YAML file (optional)",
)
@click.option(
    "--catalog",
    type=click.Path(exists=True, path_type=Path),
    help="YAML catalog seed (overrides config)",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (overrides config)",
)
@click.version_option(version="1.0.0", prog_name="phone-sync")
@click.pass_context
def cli(ctx: click.Context, config: Path, catalog: Optional[Path], log_level: Optional[str]) -> None:
    """
    Phone data sync - keep the catalog in step with external spec and price sources.

    Examples:

        # Full sync from every enabled source
        $ phone-sync full

        # Show what a full sync would touch
        $ phone-sync --catalog catalog.yaml full --dry-run

        # Health, metrics and recent events
        $ phone-sync status --detailed
    """
    ctx.ensure_object(dict)
    ctx.obj.update(config=config, catalog=catalog, log_level=log_level)


@cli.command()
@click.option("--dry-run", is_flag=True, help="Show what would be synced without syncing")
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Write the resulting jobs as JSON",
)
@click.pass_context
def full(ctx: click.Context, dry_run: bool, output: Optional[Path]) -> None:
    """Full synchronization from all enabled sources."""
    if dry_run:
        plan = _run(ctx, lambda service: service.plan_full_sync())
        console.print("[bold cyan]Dry run[/bold cyan]: no changes will be made")
        console.print(f"  Brands: {plan['brands']}")
        console.print(f"  Phones: {plan['phones']}")
        console.print(f"  Price batches: {plan['price_batches']}")
        console.print(f"  Sources: {', '.join(plan['sources'])}")
        return

    async def action(service: ExternalDataIntegrationService):
        await service.initialize(start_scheduler=False)
        jobs = await service.perform_full_sync()
        return jobs, service.get_metrics()

    jobs, metrics = _run(ctx, action)
    _display_jobs(jobs)
    console.print(
        f"API requests: {metrics.api_requests_count}  "
        f"API errors: {metrics.api_errors_count}  "
        f"Fallback activations: {metrics.fallback_activations}"
    )
    if output:
        JSONOutputFormatter().save(JSONOutputFormatter().format_jobs(jobs), str(output))
        console.print(f"[bold]Jobs saved to:[/bold] {output}")


@cli.command()
@click.argument("source", type=click.Choice([s.value for s in SyncSource]))
@click.pass_context
def source(ctx: click.Context, source: str) -> None:
    """Sync a single source (gsmarena or priceTracking)."""
    async def action(service: ExternalDataIntegrationService):
        await service.initialize(start_scheduler=False)
        return await service.sync_source(SyncSource(source))

    job = _run(ctx, action)
    _display_jobs([job])
    if job.status is SyncStatus.FAILED:
        sys.exit(1)


@cli.command()
@click.argument("phone_id")
@click.pass_context
def phone(ctx: click.Context, phone_id: str) -> None:
    """Resync one catalog phone."""
    async def action(service: ExternalDataIntegrationService):
        await service.initialize(start_scheduler=False)
        return await service.sync_phone_data(phone_id)

    if _run(ctx, action):
        console.print(f"[green]✓[/green] Phone {phone_id} synchronized")
    else:
        console.print(f"[red]✗[/red] Failed to sync phone {phone_id}")
        sys.exit(1)


@cli.command()
@click.option("--detailed", is_flag=True, help="Include recent events")
@click.pass_context
def status(ctx: click.Context, detailed: bool) -> None:
    """Show health, metrics, issues and recommendations."""
    async def action(service: ExternalDataIntegrationService):
        events = service.get_recent_events(24) if detailed else []
        return service.get_health_status(), events

    health, events = _run(ctx, action)
    style = _STATUS_STYLE.get(health["status"], "white")
    console.print(f"\n[bold {style}]Overall status: {health['status'].upper()}[/bold {style}]")
    console.print(health["summary"])

    metrics = health["metrics"]
    table = Table(title="Sync Metrics", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    total = metrics["total_syncs"]
    success_rate = round(metrics["successful_syncs"] / total * 100) if total else 0
    requests = metrics["api_requests_count"]
    error_rate = round(metrics["api_errors_count"] / requests * 100) if requests else 0
    table.add_row("Total syncs", str(total))
    table.add_row("Successful", str(metrics["successful_syncs"]))
    table.add_row("Failed", str(metrics["failed_syncs"]))
    table.add_row("Success rate", f"{success_rate}%")
    table.add_row("Average duration", f"{round(metrics['average_duration'])}ms")
    table.add_row("Last sync", metrics["last_sync_time"] or "Never")
    table.add_row("API requests", str(requests))
    table.add_row("API errors", str(metrics["api_errors_count"]))
    table.add_row("API error rate", f"{error_rate}%")
    table.add_row("Rate limit hits", str(metrics["rate_limit_hits"]))
    table.add_row("Fallback activations", str(metrics["fallback_activations"]))
    console.print(table)

    for title, items in (("Issues", health["issues"]), ("Recommendations", health["recommendations"])):
        if items:
            console.print(f"\n[bold]{title}:[/bold]")
            for item in items:
                console.print(f"  - {item}")

    if detailed:
        console.print("\n[bold]Recent events (last 24 hours):[/bold]")
        if not events:
            console.print("  No recent events")
        for event in events[:10]:
            marker = "[red]✗[/red]" if event.type.is_error else "[green]✓[/green]"
            console.print(f"  {marker} [{event.timestamp:%H:%M:%S}] {event.source}: {event.type.value}")
            if event.error:
                console.print(f"      Error: {event.error}")


@cli.command("clear-cache")
@click.pass_context
def clear_cache(ctx: click.Context) -> None:
    """Clear cached fallback data."""
    removed = _run(ctx, lambda service: service.clear_cache())
    console.print(f"[green]✓[/green] Cache cleared ({removed} entries)")


@cli.command("test-connections")
@click.pass_context
def test_connections(ctx: click.Context) -> None:
    """Probe every enabled source."""
    results = _run(ctx, lambda service: service.test_connections())
    for name, ok in results.items():
        marker = "[green]✓[/green]" if ok else "[red]✗[/red]"
        console.print(f"  {marker} {name}")
    if not all(results.values()):
        sys.exit(1)


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Serve the sync status and trigger routes over HTTP."""
    config = _load_config(ctx.obj["config"], ctx.obj["catalog"], ctx.obj["log_level"])
    uvicorn.run(create_app(config=config), host=host, port=port, log_level="warning")


def _display_jobs(jobs: List[SyncJob]) -> None:
    table = Table(title="Sync Jobs")
    table.add_column("Job", style="cyan")
    table.add_column("Status")
    table.add_column("Processed", justify="right")
    table.add_column("Created", justify="right", style="green")
    table.add_column("Updated", justify="right", style="green")
    table.add_column("Errors", justify="right", style="yellow")
    for job in jobs:
        style = "green" if job.status is SyncStatus.COMPLETED else "red"
        table.add_row(
            job.id,
            f"[{style}]{job.status.value}[/{style}]",
            str(job.records_processed),
            str(job.records_created),
            str(job.records_updated),
            str(len(job.errors)),
        )
    console.print(table)


if __name__ == "__main__":
    cli()
