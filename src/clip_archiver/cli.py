"""Command-line interface using Typer."""

from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from clip_archiver import __version__
from clip_archiver.logging import setup_logging

# Setup logging
setup_logging()

app = typer.Typer(
    name="clip-archiver",
    help="Clip Archiver - resumable clip-archive ingestion CLI",
    add_completion=False,
)

# Subcommand groups
archive_app = typer.Typer(help="Archive job commands")
app.add_typer(archive_app, name="archive")

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Clip Archiver v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Clip Archiver - archive a channel's full clip history and keep it fresh."""
    pass


@app.command()
def health() -> None:
    """Check the health of all services."""
    import httpx

    from clip_archiver.config import settings

    url = f"http://{settings.api_host}:{settings.api_port}/health/ready"

    try:
        response = httpx.get(url, timeout=10)
        data = response.json()

        table = Table(title="Service Health")
        table.add_column("Component", style="cyan")
        table.add_column("Status")

        table.add_row("Database", "✓" if data.get("database") else "✗")
        table.add_row("Redis", "✓" if data.get("redis") else "✗")

        for component, healthy in data.get("components", {}).items():
            table.add_row(component, "✓" if healthy else "✗")

        console.print(table)

        if data.get("ready"):
            console.print("[bold green]All services healthy![/bold green]")
        else:
            console.print("[bold yellow]Some services unhealthy[/bold yellow]")
            raise typer.Exit(code=1)

    except httpx.RequestError as e:
        console.print(f"[bold red]Cannot connect to API: {e}[/bold red]")
        console.print("[dim]Is the API server running?[/dim]")
        raise typer.Exit(code=1)


@app.command()
def worker(
    beat: bool = typer.Option(False, "--beat", "-B", help="Also run the beat scheduler"),
) -> None:
    """Start a Celery worker (for development)."""
    console.print("[bold blue]Starting Celery worker...[/bold blue]")

    import subprocess
    import sys

    command = [
        sys.executable,
        "-m",
        "celery",
        "-A",
        "clip_archiver.worker",
        "worker",
        "--loglevel=info",
        "-Q",
        "archive,refresh",
    ]
    if beat:
        command.append("--beat")

    subprocess.run(command, check=True)


# =============================================================================
# ARCHIVE COMMANDS
# =============================================================================


async def _start(channel: str, started_by: str | None):
    from clip_archiver.adapters.clips import get_clips_adapter
    from clip_archiver.db.session import get_session_context
    from clip_archiver.services.archiver import ArchiveController

    adapter = get_clips_adapter()
    try:
        with get_session_context() as session:
            return await ArchiveController(session, adapter).start(channel, started_by=started_by)
    finally:
        await adapter.close()


async def _run_until_done(channel: str, budget: float | None):
    """Run budget-sized slices back to back until the job stops continuing."""
    from clip_archiver.adapters.clips import get_clips_adapter
    from clip_archiver.db.session import get_session_context
    from clip_archiver.domain.enums import RunOutcome
    from clip_archiver.services.archiver import ArchiveController

    adapter = get_clips_adapter()
    try:
        while True:
            with get_session_context() as session:
                result = await ArchiveController(session, adapter).run_to_budget(channel, budget)
            console.print(
                f"[dim]Windows {result.current_window}/{result.total_windows} "
                f"(+{result.windows_processed} this slice, "
                f"{result.counts.inserted} new clips)[/dim]"
            )
            if result.outcome != RunOutcome.CONTINUE_LATER:
                return result
    finally:
        await adapter.close()


def _job_is_live(channel: str) -> bool:
    from datetime import UTC, datetime, timedelta

    from clip_archiver.config import settings
    from clip_archiver.db.session import get_session_context
    from clip_archiver.services import ledger

    with get_session_context() as session:
        job = ledger.get_job(session, ledger.normalize_channel(channel))
        liveness = timedelta(seconds=settings.archive_liveness_seconds)
        return job is not None and ledger.is_live(job, datetime.now(UTC), liveness)


def _print_run_result(result) -> None:
    from clip_archiver.domain.enums import RunOutcome

    if result.outcome == RunOutcome.COMPLETE:
        console.print("[bold green]✓ Archive complete![/bold green]")
    elif result.outcome == RunOutcome.NOT_FOUND:
        console.print(f"[bold red]✗ {result.error}[/bold red]")
        raise typer.Exit(code=1)
    elif result.outcome == RunOutcome.SUPERSEDED:
        console.print("[bold yellow]Another worker is processing this archive[/bold yellow]")
    else:
        console.print(f"[bold red]✗ Archive failed: {result.error}[/bold red]")
        console.print("[dim]Run 'clip-archiver archive start' again to resume[/dim]")
        raise typer.Exit(code=1)


@archive_app.command("start")
def archive_start(
    channel: str = typer.Argument(..., help="Channel handle"),
    started_by: Optional[str] = typer.Option(None, "--by", help="Who requested the archive"),
    wait: bool = typer.Option(
        False, "--wait", "-w", help="Process in this process instead of enqueueing"
    ),
) -> None:
    """Plan a channel's full-history archive and start processing it."""
    from clip_archiver.adapters.clips import ClipsAPIError
    from clip_archiver.domain.enums import StartOutcome
    from clip_archiver.utils import run_async

    try:
        result = run_async(_start(channel, started_by))
    except (ValueError, ClipsAPIError) as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1)

    style = "green" if result.status == StartOutcome.STARTED else "yellow"
    console.print(f"[bold {style}]{result.status}[/bold {style}]: {result.message}")

    if result.status in (StartOutcome.RATE_LIMITED, StartOutcome.NOT_FOUND):
        raise typer.Exit(code=1)
    if result.status != StartOutcome.STARTED:
        return

    if wait:
        _print_run_result(run_async(_run_until_done(result.job["channel"], None)))
        return

    from clip_archiver.jobs.archive_tasks import process_channel_task

    task = process_channel_task.delay(result.job["channel"])
    console.print(f"[green]Processing enqueued: {task.id}[/green]")


@archive_app.command("status")
def archive_status(channel: str = typer.Argument(..., help="Channel handle")) -> None:
    """Show a channel's archive job status."""
    from clip_archiver.adapters.clips import get_clips_adapter
    from clip_archiver.db.session import get_session_context
    from clip_archiver.services.archiver import ArchiveController

    with get_session_context() as session:
        result = ArchiveController(session, get_clips_adapter()).status(channel)

    if result.job is None:
        if result.total_clips:
            console.print(f"Archived with {result.total_clips} clips (no job record)")
            return
        console.print(f"[bold red]No archive job for '{channel}'[/bold red]")
        raise typer.Exit(code=1)

    job = result.job
    console.print(Panel.fit(
        f"[cyan]Status:[/cyan] {result.status}\n"
        f"[cyan]Progress:[/cyan] {result.progress_percent}% "
        f"({job['current_window']}/{job['total_windows']} windows)\n"
        f"[cyan]Clips:[/cyan] {job['clips_found']} found, {job['clips_inserted']} new, "
        f"{job['clips_skipped']} skipped\n"
        f"[cyan]Range:[/cyan] {job['archive_start']} -> {job['archive_end']}\n"
        f"[cyan]Updated:[/cyan] {job['updated_at'] or 'N/A'}"
        + (f"\n[red]Error:[/red] {job['error_message']}" if job["error_message"] else "")
        + (f"\n[cyan]Total clips:[/cyan] {result.total_clips}" if result.total_clips else ""),
        title=f"Archive: {job['channel']}",
        border_style="blue",
    ))


@archive_app.command("process")
def archive_process(
    channel: str = typer.Argument(..., help="Channel handle"),
    wait: bool = typer.Option(
        False, "--wait", "-w", help="Run to completion in this process"
    ),
    budget: Optional[float] = typer.Option(
        None, "--budget", "-b", help="Seconds per slice (defaults to settings)"
    ),
) -> None:
    """Process a channel's archive job from its checkpoint."""
    from clip_archiver.utils import run_async

    if _job_is_live(channel):
        console.print("[bold yellow]in_progress[/bold yellow]: Archive is already in progress")
        return

    if wait:
        _print_run_result(run_async(_run_until_done(channel, budget)))
        return

    from clip_archiver.jobs.archive_tasks import process_channel_task

    task = process_channel_task.delay(channel, budget=budget)
    console.print(f"[green]Processing enqueued: {task.id}[/green]")


@archive_app.command("refresh")
def archive_refresh(
    channel: str = typer.Argument(..., help="Channel handle"),
) -> None:
    """Fetch a channel's clips created since its last refresh."""
    from clip_archiver.adapters.clips import get_clips_adapter
    from clip_archiver.db.session import get_session_context
    from clip_archiver.services.archiver import ArchiveController
    from clip_archiver.utils import run_async

    async def _refresh():
        adapter = get_clips_adapter()
        try:
            with get_session_context() as session:
                return await ArchiveController(session, adapter).refresh(channel)
        finally:
            await adapter.close()

    result = run_async(_refresh())

    if result.skipped:
        console.print(f"[yellow]Skipped: {result.skipped}[/yellow]")
        return

    console.print(
        f"{result.new_clips} new clips from {result.windows_processed}/{result.windows} windows, "
        f"{result.games_resolved} categories resolved"
    )
    if not result.success:
        console.print(f"[bold red]✗ Refresh stopped early: {result.error}[/bold red]")
        raise typer.Exit(code=1)


@archive_app.command("sweep")
def archive_sweep(
    budget: Optional[float] = typer.Option(
        None, "--budget", "-b", help="Wall-clock budget in seconds (defaults to settings)"
    ),
) -> None:
    """Run one scheduler sweep across every archived channel."""
    from clip_archiver.adapters.clips import get_clips_adapter
    from clip_archiver.db.session import get_session_context
    from clip_archiver.services.scheduler import RefreshScheduler
    from clip_archiver.utils import run_async

    async def _sweep():
        adapter = get_clips_adapter()
        try:
            with get_session_context() as session:
                return await RefreshScheduler(session, adapter).sweep(budget)
        finally:
            await adapter.close()

    report = run_async(_sweep())

    if report.deferred:
        console.print("[yellow]Sweep deferred: archive jobs are using every slot[/yellow]")
        return

    table = Table(title="Refresh Sweep")
    table.add_column("Channel", style="cyan")
    table.add_column("New Clips", justify="right")
    table.add_column("Windows", justify="right")
    table.add_column("Error")

    for result in report.results:
        table.add_row(
            result.channel,
            str(result.new_clips),
            f"{result.windows_processed}/{result.windows}",
            result.error or "",
        )

    console.print(table)
    console.print(
        f"[dim]{report.channels_checked} checked, {report.channels_refreshed} refreshed, "
        f"{len(report.skipped)} skipped, {len(report.unreached)} unreached "
        f"in {report.runtime_seconds}s[/dim]"
    )


if __name__ == "__main__":
    app()
