"""Identity synchronization CLI commands."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import typer
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from src.identity_sync.core.errors import SyncError
from src.identity_sync.core.models.sync import BatchProgress, BatchSummary
from src.identity_sync.core.services import (
    DbSessionService,
    IdentitySyncService,
    build_provider_client,
)
from src.identity_sync.runtime.context import get_config

console = Console()

sync_app = typer.Typer(help="Synchronize identity records with the provider")


@asynccontextmanager
async def open_sync_service() -> AsyncIterator[IdentitySyncService]:
    """Sync service over a fresh engine and provider client for one command."""
    config = get_config()
    database_service = DbSessionService(config)
    database_service.create_all()
    provider = build_provider_client(config.provider)
    try:
        with database_service.session_scope() as session:
            yield IdentitySyncService.from_session(session, provider, config)
    finally:
        if provider is not None:
            await provider.close()
        database_service.dispose()


def _fail(action: str, error: Exception) -> typer.Exit:
    console.print(f"[red]❌ {action} failed: {error}[/red]")
    if isinstance(error, SyncError):
        console.print(f"[dim]error code: {error.code}[/dim]")
    return typer.Exit(code=1)


@sync_app.command("status")
def status() -> None:
    """Show sync counts per status and provider health."""

    async def run():
        async with open_sync_service() as service:
            return await service.status()

    try:
        report = asyncio.run(run())
    except Exception as e:
        raise _fail("Status", e) from e

    table = Table(title="Identity sync status")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Total records", str(report.total_records))
    table.add_row("Synced", str(report.synced))
    table.add_row("Pending", str(report.pending))
    table.add_row("Error", str(report.error))
    table.add_row("Manual", str(report.manual))
    table.add_row("Linked to provider", str(report.with_external_id))
    table.add_row("Sync percentage", f"{report.sync_percentage}%")
    table.add_row("Provider configured", "✅" if report.provider_configured else "❌")
    table.add_row("Provider healthy", "✅" if report.provider_healthy else "❌")
    console.print(table)


@sync_app.command("pending")
def pending() -> None:
    """List records that are pending, failed, or not linked."""

    async def run():
        async with open_sync_service() as service:
            return service.pending()

    try:
        records = asyncio.run(run())
    except Exception as e:
        raise _fail("Listing pending records", e) from e

    if not records:
        console.print("[green]Every record is in sync[/green]")
        return

    table = Table(title="Records needing sync")
    table.add_column("ID", style="cyan")
    table.add_column("Email", style="blue")
    table.add_column("External ID", style="magenta")
    table.add_column("Status", style="yellow")
    table.add_column("Error", style="red")
    for record in records:
        table.add_row(
            record.id,
            record.email,
            record.external_id or "-",
            record.sync_status,
            record.sync_error or "",
        )
    console.print(table)
    console.print(f"\n[yellow]{len(records)} records need attention[/yellow]")


def _run_batch(direction: str, batch_size: int | None) -> BatchSummary:
    with Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TextColumn("[red]{task.fields[errors]} errors"),
        TextColumn("eta {task.fields[eta]}s"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task(direction, total=None, errors=0, eta="-")

        def on_progress(snapshot: BatchProgress) -> None:
            progress.update(
                task_id,
                completed=snapshot.processed,
                total=snapshot.total,
                errors=snapshot.errors,
                eta=f"{snapshot.eta_seconds:.1f}",
            )

        async def run() -> BatchSummary:
            async with open_sync_service() as service:
                if direction == "push-all":
                    return await service.push_all(batch_size, on_progress)
                return await service.pull_all(batch_size, on_progress)

        return asyncio.run(run())


def _print_summary(summary: BatchSummary, show_errors: bool) -> None:
    colour = "green" if summary.errors == 0 else "yellow"
    console.print(
        f"[{colour}]Processed {summary.processed}/{summary.total}: "
        f"{summary.synced} synced, {summary.errors} errors "
        f"in {summary.duration_seconds:.1f}s[/{colour}]"
    )
    if show_errors:
        for detail in summary.details:
            if not detail.result.success:
                console.print(f"  [red]{detail.email}[/red]: {detail.result.message}")


@sync_app.command("push-all")
def push_all(
    batch_size: int = typer.Option(None, "--batch-size", "-b", min=1, max=100, help="Concurrent pushes per chunk"),
    show_errors: bool = typer.Option(True, "--show-errors/--hide-errors", help="List failed records"),
) -> None:
    """Push every local record to the provider."""
    try:
        summary = _run_batch("push-all", batch_size)
    except Exception as e:
        raise _fail("Push-all", e) from e
    _print_summary(summary, show_errors)


@sync_app.command("pull-all")
def pull_all(
    batch_size: int = typer.Option(None, "--batch-size", "-b", min=1, max=100, help="Concurrent pulls per chunk"),
    show_errors: bool = typer.Option(True, "--show-errors/--hide-errors", help="List failed identities"),
) -> None:
    """Pull every provider identity into the local store."""
    try:
        summary = _run_batch("pull-all", batch_size)
    except Exception as e:
        raise _fail("Pull-all", e) from e
    _print_summary(summary, show_errors)


@sync_app.command("reconcile")
def reconcile() -> None:
    """Run a single reconciliation pass and report what changed."""

    async def run():
        async with open_sync_service() as service:
            return await service.build_daemon().run_once()

    try:
        report = asyncio.run(run())
    except Exception as e:
        raise _fail("Reconciliation", e) from e

    console.print(
        f"[green]✅ Reconciliation finished: {report.created} created, "
        f"{report.updated} updated, {report.unlinked} unlinked, "
        f"{report.errors} errors[/green]"
    )
