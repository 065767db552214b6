"""
Agentwatch CLI - Typer Commands

Host entry point: run the pipeline in the foreground, or query the
history database it keeps.
"""

import logging
import signal
import threading
import types
from datetime import datetime

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from agentwatch import __version__
from agentwatch.config import WatchConfig
from agentwatch.exceptions import AgentWatchError
from agentwatch.logging import configure_console_logging
from agentwatch.persistence.models import StoredTask
from agentwatch.persistence.store import EventStore
from agentwatch.pipeline import Pipeline
from agentwatch.router.broadcast import Closed, Lagged, Received, Receiver
from agentwatch.router.events import (
    AppEvent,
    DownloadProgressUpdated,
    SessionStopped,
    TaskCanceled,
    TaskCompleted,
    TaskError,
    TaskStarted,
    TodosUpdated,
)
from agentwatch.router.plugins import ActiveTasksPlugin, RouteAuditPlugin
from agentwatch.router.router import EventRouter
from agentwatch.watcher.tailer import clear_event_log

logger = logging.getLogger(__name__)
console = Console()

app = typer.Typer(
    name="agentwatch",
    help="Watch an agent's task log, keep searchable history, stream live events",
    add_completion=False,
)

STATUS_STYLES = {
    "active": "yellow",
    "completed": "green",
    "error": "red",
    "canceled": "dim",
}


def _load_config() -> WatchConfig:
    try:
        return WatchConfig.from_env()
    except AgentWatchError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _open_router(config: WatchConfig) -> EventRouter:
    try:
        store = EventStore(config.database_file, lock_timeout=config.lock_timeout_s)
    except AgentWatchError as e:
        console.print(f"[bold red]History unavailable:[/bold red] {e}")
        raise typer.Exit(1)
    return EventRouter(store, config)


def _format_ms(value: int | None) -> str:
    if value is None:
        return "-"
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _format_duration(value: int | float | None) -> str:
    if value is None:
        return "-"
    if value < 1000:
        return f"{value:.0f}ms"
    return f"{value / 1000:.1f}s"


def _task_table(tasks: list[StoredTask], title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Started", style="dim")
    table.add_column("Task", style="cyan")
    table.add_column("Tool", style="green")
    table.add_column("Description")
    table.add_column("Status")
    table.add_column("Duration", justify="right")

    for task in tasks:
        style = STATUS_STYLES.get(task.status.value, "white")
        table.add_row(
            _format_ms(task.started_at),
            task.id[:12],
            task.tool,
            escape((task.description or "")[:60]),
            f"[{style}]{task.status.value}[/{style}]",
            _format_duration(task.duration_ms),
        )
    return table


def format_event(event: AppEvent) -> str:
    """One console line for a domain event."""
    if isinstance(event, TaskStarted):
        bg = " [dim](background)[/dim]" if event.background else ""
        desc = f": {escape(event.description)}" if event.description else ""
        return f"[yellow]started[/yellow]   {event.task_id} [green]{event.tool}[/green]{desc}{bg}"
    if isinstance(event, TaskCompleted):
        return f"[green]completed[/green] {event.task_id}"
    if isinstance(event, TaskError):
        return f"[red]error[/red]     {event.task_id}"
    if isinstance(event, TaskCanceled):
        return f"[dim]canceled[/dim]  {event.task_id}"
    if isinstance(event, SessionStopped):
        return f"[magenta]session stopped[/magenta] {event.session_id or '-'}"
    if isinstance(event, TodosUpdated):
        return f"[blue]todos[/blue]     {len(event.items)} open"
    if isinstance(event, DownloadProgressUpdated):
        p = event.progress
        extra = " ".join(x for x in (p.speed, p.eta) if x)
        return f"[cyan]progress[/cyan]  {p.task_id} {p.percent:.0f}% {extra}".rstrip()
    return event.kind


def stream_events(
    pipeline: Pipeline, feed: Receiver[AppEvent], stop_requested: threading.Event
) -> None:
    """Print live events until asked to stop or the pipeline is no longer running."""
    while not stop_requested.is_set() and pipeline.is_running:
        result = feed.recv(timeout=0.5)
        if result is None:
            continue
        if isinstance(result, Received):
            console.print(format_event(result.event))
        elif isinstance(result, Lagged):
            console.print(f"[yellow]... missed {result.count} events[/yellow]")
        elif isinstance(result, Closed):
            break


@app.command()
def run(
    polling: bool = typer.Option(False, "--polling", help="Poll files instead of OS notifications"),
    audit: bool = typer.Option(False, "--audit", help="Write routed events to routes.jsonl"),
    log_level: str = typer.Option("WARNING", "--log-level", "-l", help="Console log level"),
) -> None:
    """Run the pipeline and print live events until interrupted."""
    configure_console_logging(log_level)
    config = _load_config()
    if polling:
        config.use_polling = True

    active = ActiveTasksPlugin(config.stale_task_threshold_ms)
    plugins = [active, RouteAuditPlugin()] if audit else [active]
    pipeline = Pipeline(config, plugins=plugins)

    stop_requested = threading.Event()

    def handle_shutdown(signum: int, frame: types.FrameType | None) -> None:
        stop_requested.set()

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    try:
        pipeline.start()
    except AgentWatchError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    feed = pipeline.subscribe()
    console.print(f"[bold]agentwatch {__version__}[/bold] watching [cyan]{config.events_file}[/cyan]")
    if not pipeline.status.history_available:
        console.print("[yellow]History unavailable, events are not being stored[/yellow]")

    try:
        stream_events(pipeline, feed, stop_requested)
    finally:
        pipeline.stop()
        if pipeline.status.last_error:
            console.print(f"[red]Stopped after error:[/red] {pipeline.status.last_error}")
        console.print(f"[dim]{len(active)} tasks still in flight[/dim]")


@app.command()
def recent(
    limit: int = typer.Option(10, "--limit", "-n", help="Number of tasks to show"),
) -> None:
    """Show the most recently started tasks."""
    router = _open_router(_load_config())
    try:
        tasks = router.get_recent_tasks(limit)
    except AgentWatchError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    finally:
        router.store.close()

    if not tasks:
        console.print("[dim]No tasks recorded yet.[/dim]")
        return
    console.print(_task_table(tasks, f"Recent tasks ({len(tasks)})"))


@app.command()
def search(
    query: str = typer.Argument(..., help="Words to look for in description or tool"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum results"),
) -> None:
    """Full-text search over task history."""
    router = _open_router(_load_config())
    try:
        tasks = router.search_tasks(query, limit)
    except AgentWatchError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    finally:
        router.store.close()

    if not tasks:
        console.print(f"[dim]No tasks match {escape(repr(query))}.[/dim]")
        return
    console.print(_task_table(tasks, f"Matches for {escape(repr(query))}"))


@app.command()
def stats() -> None:
    """Show task counts and mean duration."""
    router = _open_router(_load_config())
    try:
        result = router.get_stats()
    except AgentWatchError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    finally:
        router.store.close()

    table = Table(title="Task statistics", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Total", str(result.total_tasks))
    table.add_row("Active", f"[yellow]{result.active_tasks}[/yellow]")
    table.add_row("Completed", f"[green]{result.completed_tasks}[/green]")
    table.add_row("Errors", f"[red]{result.error_tasks}[/red]")
    table.add_row("Canceled", str(result.canceled_tasks))
    table.add_row("Avg duration", _format_duration(result.avg_duration_ms))
    console.print(table)


@app.command()
def cleanup(
    days: int = typer.Option(None, "--days", "-d", help="Keep this many days (default: config)"),
) -> None:
    """Delete finished tasks older than the retention window."""
    config = _load_config()
    router = _open_router(config)
    try:
        deleted = router.cleanup_old_tasks(days)
    except AgentWatchError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    finally:
        router.store.close()
    console.print(f"[green]Removed {deleted} tasks[/green]")


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Truncate the event log (history in the database is kept)."""
    config = _load_config()
    if not yes and not typer.confirm(f"Clear {config.events_file}?"):
        raise typer.Exit(0)
    try:
        clear_event_log(config.events_file)
    except AgentWatchError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]Cleared {config.events_file}[/green]")


def main() -> None:
    """Entry point for the agentwatch command."""
    app()
