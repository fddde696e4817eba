"""Command-line interface for jira worklog synchronizer."""

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from pathlib import Path
from typing import Optional, TypeVar

import typer
from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from jira_worklog_sync import __version__
from jira_worklog_sync import runtime as runtime_module
from jira_worklog_sync.config import Config
from jira_worklog_sync.errors import PartialFailure, RemoteError, WorklogSyncError
from jira_worklog_sync.ledger import WorklogEntry, WorklogFilter
from jira_worklog_sync.runtime import Runtime
from jira_worklog_sync.sync import ImportSummary, PushSummary, search_issues
from jira_worklog_sync.timer import Idle, Paused, elapsed_seconds
from jira_worklog_sync.utils import get_logger, setup_logging
from jira_worklog_sync.utils.timefmt import (
    day_bounds,
    format_duration,
    now_local,
    parse_duration,
)

app = typer.Typer(help="Track time locally and synchronize it with Jira worklogs")
timer_app = typer.Typer(help="Start, pause, resume and stop the timer")
worklogs_app = typer.Typer(help="Manage local worklog entries")
push_app = typer.Typer(help="Upload local entries to Jira")
remote_app = typer.Typer(help="Change synced worklogs in Jira")
app.add_typer(timer_app, name="timer")
app.add_typer(worklogs_app, name="worklogs")
app.add_typer(push_app, name="push")
app.add_typer(remote_app, name="remote")

console = Console()
logger = get_logger(__name__)

T = TypeVar("T")


@app.callback()
def main_callback(
    ctx: typer.Context,
    config_dir: Optional[Path] = typer.Option(
        None,
        "--config-dir",
        help="Configuration directory. Defaults to ~/.jira-worklog-sync/",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging.",
    ),
    confirm: bool = typer.Option(
        False,
        "--confirm",
        help="Print each API call and prompt for confirmation before sending.",
    ),
) -> None:
    """Track time locally and synchronize it with Jira worklogs."""
    setup_logging(
        log_level=logging.DEBUG if verbose else logging.INFO,
        config_dir=config_dir,
    )
    ctx.obj = {"config_dir": config_dir, "confirm": confirm}


def _run(ctx: typer.Context, action: Callable[[Runtime], Awaitable[T]]) -> T:
    """Run an async command body inside a runtime, mapping errors to exit codes."""

    async def runner() -> T:
        async with Runtime(ctx.obj["config_dir"], confirm=ctx.obj["confirm"]) as runtime:
            return await action(runtime)

    try:
        return asyncio.run(runner())
    except PartialFailure as e:
        logger.error(str(e))
        console.print(f"\n[red]{e}[/red]")
        for failure in e.failures:
            console.print(f"  - {failure}")
        raise typer.Exit(code=1)
    except RemoteError as e:
        if "cancelled by user" in str(e).lower():
            console.print("[yellow]Cancelled by user[/yellow]")
            raise typer.Exit(code=0)
        logger.error(f"Jira request failed: {e}")
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)
    except (WorklogSyncError, ValueError) as e:
        logger.error(str(e))
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)


def _parse_day(value: Optional[str], runtime: Runtime) -> date:
    """Parse YYYY-MM-DD, defaulting to today in the configured timezone."""
    if value is None:
        return datetime.now(runtime.config.timezone).date()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"Invalid date '{value}'. Use YYYY-MM-DD") from None


def _worklog_table(entries: list[WorklogEntry], title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Issue", style="cyan")
    table.add_column("Summary")
    table.add_column("Started")
    table.add_column("Duration", style="magenta")
    table.add_column("Status")
    table.add_column("Description")

    status_styles = {"pending": "yellow", "synced": "green", "error": "red"}
    for entry in entries:
        status = entry.sync_status.value
        table.add_row(
            str(entry.id),
            entry.issue_key,
            entry.issue_summary or "-",
            entry.started_at,
            format_duration(entry.duration_seconds),
            f"[{status_styles[status]}]{status}[/{status_styles[status]}]",
            entry.description or "-",
        )
    return table


def _print_entry(entry: WorklogEntry, action: str) -> None:
    console.print(
        f"[green]✓ {action} worklog {entry.id}: {entry.issue_key}, "
        f"{format_duration(entry.duration_seconds)} from {entry.started_at}[/green]"
    )


# Configuration


@app.command()
def configure(ctx: typer.Context) -> None:
    """Configure Jira credentials, test them and save them."""
    config = Config(ctx.obj["config_dir"])
    current = config.get_jira_config()

    console.print("[bold cyan]Jira Worklog Sync Configuration[/bold cyan]")
    console.print()

    base_url = Prompt.ask(
        "Enter your Jira site URL (e.g., 'https://mycompany.atlassian.net')",
        default=current.base_url if current else None,
    )
    email = Prompt.ask("Enter your Atlassian account email", default=current.email if current else None)
    api_token = Prompt.ask("Enter your Jira API token", password=True)

    console.print("[cyan]Testing connection...[/cyan]")
    try:
        user = asyncio.run(
            runtime_module.test_connection(base_url, email, api_token, confirm=ctx.obj["confirm"])
        )
    except WorklogSyncError as e:
        logger.error(f"Connection test failed: {e}")
        console.print(f"[red]✗ Failed to connect to Jira: {e}[/red]")
        raise typer.Exit(code=1)

    config.save_jira_config(base_url, email, api_token)
    console.print(f"[green]✓ Connected to Jira as {user.display_name}[/green]")
    console.print("\n[green]Configuration complete![/green]")


@app.command("test-connection")
def test_connection_command(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Jira site URL."),
    email: str = typer.Argument(..., help="Account email."),
    token: str = typer.Argument(..., help="API token."),
) -> None:
    """Check credentials without saving them."""
    try:
        user = asyncio.run(
            runtime_module.test_connection(url, email, token, confirm=ctx.obj["confirm"])
        )
    except WorklogSyncError as e:
        logger.error(f"Connection test failed: {e}")
        console.print(f"[red]✗ Failed to connect to Jira: {e}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Connected as {user.display_name} ({user.account_id})[/green]")


@app.command()
def settings(
    ctx: typer.Context,
    key: Optional[str] = typer.Argument(None, help="Setting to change."),
    value: Optional[str] = typer.Argument(None, help="New value."),
) -> None:
    """Show settings, or change one with KEY VALUE."""
    config = Config(ctx.obj["config_dir"])

    if key is not None:
        if value is None:
            console.print("[red]Error: a value is required when a key is given[/red]")
            raise typer.Exit(code=1)
        try:
            config.update(key, value)
        except ValueError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        console.print(f"[green]✓ {key} saved[/green]")
        return

    values = config.masked()
    if not values:
        console.print("[yellow]No settings configured yet.[/yellow]")
        return

    table = Table(title="Settings")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="magenta")
    for name, setting in values.items():
        table.add_row(name, str(setting))
    console.print(table)


@app.command()
def search(
    ctx: typer.Context,
    jql: str = typer.Argument(..., help="JQL query."),
    max_results: int = typer.Option(50, "--max", help="Maximum number of issues."),
) -> None:
    """Search Jira issues."""

    async def action(runtime: Runtime) -> None:
        issues = await search_issues(runtime.client(), runtime.store, jql, max_results)
        if not issues:
            console.print("[yellow]No issues found.[/yellow]")
            return

        table = Table(title=f"Issues ({len(issues)})")
        table.add_column("Key", style="cyan")
        table.add_column("Summary")
        table.add_column("Status", style="magenta")
        table.add_column("Type")
        for issue in issues:
            table.add_row(issue.issue_key, issue.summary, issue.status or "-", issue.issue_type or "-")
        console.print(table)

    _run(ctx, action)


# Timer


@timer_app.command("start")
def timer_start(
    ctx: typer.Context,
    issue_key: str = typer.Argument(..., help="Issue to track (e.g., OPS-12)."),
) -> None:
    """Start the timer; a timer already in progress is recorded first."""

    async def action(runtime: Runtime) -> None:
        timer = runtime.timer()
        previous = await timer.get_state()
        await timer.start(issue_key)
        if not isinstance(previous, Idle):
            console.print(f"[yellow]Recorded previous timer on {previous.issue_key}[/yellow]")
        console.print(f"[green]✓ Timer started on {issue_key}[/green]")

    _run(ctx, action)


@timer_app.command("pause")
def timer_pause(ctx: typer.Context) -> None:
    """Pause the running timer."""

    async def action(runtime: Runtime) -> None:
        state = await runtime.timer().pause()
        console.print(
            f"[green]✓ Timer paused on {state.issue_key} "
            f"({format_duration(state.accumulated_secs)} so far)[/green]"
        )

    _run(ctx, action)


@timer_app.command("resume")
def timer_resume(ctx: typer.Context) -> None:
    """Resume the paused timer."""

    async def action(runtime: Runtime) -> None:
        state = await runtime.timer().resume()
        console.print(f"[green]✓ Timer resumed on {state.issue_key}[/green]")

    _run(ctx, action)


@timer_app.command("stop")
def timer_stop(ctx: typer.Context) -> None:
    """Stop the timer and record a pending worklog."""

    async def action(runtime: Runtime) -> None:
        stopped = await runtime.timer().stop()
        console.print(
            f"[green]✓ Recorded worklog {stopped.id}: {stopped.issue_key}, "
            f"{format_duration(stopped.duration_seconds)}[/green]"
        )

    _run(ctx, action)


@timer_app.command("status")
def timer_status(ctx: typer.Context) -> None:
    """Show the timer."""

    async def action(runtime: Runtime) -> None:
        state = await runtime.timer().get_state()
        if isinstance(state, Idle):
            console.print("[yellow]No active timer.[/yellow]")
            return

        label = "[yellow]paused[/yellow]" if isinstance(state, Paused) else "[green]running[/green]"
        elapsed = elapsed_seconds(state, now_local())
        issue = await runtime.store.get_cached_issue(state.issue_key)
        name = f"{state.issue_key} ({issue.summary})" if issue else state.issue_key
        console.print(f"{name}: {label}, {format_duration(elapsed)}")
        if state.description:
            console.print(f"  {state.description}")

    _run(ctx, action)


@timer_app.command("describe")
def timer_describe(
    ctx: typer.Context,
    text: str = typer.Argument(..., help="Description for the worklog."),
) -> None:
    """Set the description of the active timer."""

    async def action(runtime: Runtime) -> None:
        await runtime.timer().update_description(text)
        console.print("[green]✓ Description updated[/green]")

    _run(ctx, action)


# Local worklogs


@worklogs_app.command("list")
def worklogs_list(
    ctx: typer.Context,
    issue_key: Optional[str] = typer.Option(None, "--issue", help="Only this issue."),
    status: str = typer.Option("all", "--status", help="pending, synced, error or all."),
    from_date: Optional[str] = typer.Option(None, "--from", help="First day (YYYY-MM-DD)."),
    to_date: Optional[str] = typer.Option(None, "--to", help="Day after the last (YYYY-MM-DD)."),
) -> None:
    """List local worklog entries, newest first."""

    async def action(runtime: Runtime) -> None:
        worklog_filter = WorklogFilter(
            issue_key=issue_key,
            sync_status=status,
            date_from=day_bounds(_parse_day(from_date, runtime))[0] if from_date else None,
            date_to=day_bounds(_parse_day(to_date, runtime))[0] if to_date else None,
        )
        entries = await runtime.store.list_worklogs(worklog_filter)
        if not entries:
            console.print("[yellow]No worklogs found.[/yellow]")
            return
        console.print(_worklog_table(entries, f"Worklogs ({len(entries)})"))

    _run(ctx, action)


@worklogs_app.command("add")
def worklogs_add(
    ctx: typer.Context,
    issue_key: str = typer.Argument(..., help="Issue key."),
    started: str = typer.Argument(..., help="Start with offset, e.g. 2024-03-01T09:00:00-05:00."),
    duration: str = typer.Argument(..., help="Duration, e.g. 1h 30m, 45m or 3600."),
    description: str = typer.Option("", "--description", "-d", help="Worklog comment."),
) -> None:
    """Record a pending worklog entry by hand."""

    async def action(runtime: Runtime) -> WorklogEntry:
        return await runtime.store.create_worklog(
            issue_key,
            started,
            parse_duration(duration),
            description,
        )

    _print_entry(_run(ctx, action), "Added")


@worklogs_app.command("edit")
def worklogs_edit(
    ctx: typer.Context,
    worklog_id: int = typer.Argument(..., help="Local worklog id."),
    issue_key: Optional[str] = typer.Option(None, "--issue", help="New issue key."),
    duration: Optional[str] = typer.Option(None, "--duration", help="New duration."),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="New comment."),
    started: Optional[str] = typer.Option(None, "--started", help="New start with offset."),
) -> None:
    """Edit a local entry that has not been synced."""

    async def action(runtime: Runtime) -> WorklogEntry:
        return await runtime.store.update_worklog(
            worklog_id,
            issue_key=issue_key,
            duration_seconds=parse_duration(duration) if duration is not None else None,
            description=description,
            started_at=started,
        )

    _print_entry(_run(ctx, action), "Updated")


@worklogs_app.command("rm")
def worklogs_rm(
    ctx: typer.Context,
    worklog_id: int = typer.Argument(..., help="Local worklog id."),
) -> None:
    """Delete a local entry that has not been synced."""

    async def action(runtime: Runtime) -> None:
        await runtime.store.delete_worklog(worklog_id)

    _run(ctx, action)
    console.print(f"[green]✓ Deleted worklog {worklog_id}[/green]")


# Push


@push_app.command("entry")
def push_entry(
    ctx: typer.Context,
    worklog_id: int = typer.Argument(..., help="Local worklog id."),
) -> None:
    """Push one entry to Jira."""

    async def action(runtime: Runtime) -> str:
        return await runtime.push_engine().push_one(worklog_id)

    jira_id = _run(ctx, action)
    console.print(f"[green]✓ Pushed worklog {worklog_id} as Jira worklog {jira_id}[/green]")


def _print_push_summary(summary: PushSummary) -> None:
    table = Table(title="Push Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="magenta")
    table.add_row("Total", str(summary.total))
    table.add_row("Pushed", str(summary.success))
    table.add_row("Failed", str(summary.failed))
    console.print(table)


@push_app.command("day")
def push_day(
    ctx: typer.Context,
    day: Optional[str] = typer.Argument(None, help="Day to push (YYYY-MM-DD). Defaults to today."),
) -> None:
    """Push every pending entry of a day."""

    async def action(runtime: Runtime) -> None:
        summary = await runtime.push_engine().push_all_pending(_parse_day(day, runtime))
        _print_push_summary(summary)
        summary.raise_for_failures()

    _run(ctx, action)


# Remote


@remote_app.command("update")
def remote_update(
    ctx: typer.Context,
    worklog_id: int = typer.Argument(..., help="Local worklog id."),
    duration: Optional[str] = typer.Option(None, "--duration", help="New duration."),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="New comment."),
    started: Optional[str] = typer.Option(None, "--started", help="New start with offset."),
) -> None:
    """Update a synced worklog in Jira, then locally."""

    async def action(runtime: Runtime) -> WorklogEntry:
        return await runtime.push_engine().update_remote(
            worklog_id,
            duration_seconds=parse_duration(duration) if duration is not None else None,
            description=description,
            started_at=started,
        )

    _print_entry(_run(ctx, action), "Updated remote")


@remote_app.command("delete")
def remote_delete(
    ctx: typer.Context,
    worklog_id: int = typer.Argument(..., help="Local worklog id."),
) -> None:
    """Delete a synced worklog from Jira, then locally."""

    async def action(runtime: Runtime) -> None:
        await runtime.push_engine().delete_remote(worklog_id)

    _run(ctx, action)
    console.print(f"[green]✓ Deleted worklog {worklog_id} from Jira[/green]")


# Import


def _print_import_summary(summary: ImportSummary) -> None:
    table = Table(title="Import Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="magenta")
    table.add_row("Issues checked", str(summary.issues_checked))
    table.add_row("Imported", str(summary.imported))
    table.add_row("Updated", str(summary.updated))
    table.add_row("Deleted", str(summary.deleted))
    table.add_row("Skipped", str(summary.skipped))
    console.print(table)


@app.command("import")
def import_day(
    ctx: typer.Context,
    day: Optional[str] = typer.Argument(None, help="Day to import (YYYY-MM-DD). Defaults to today."),
) -> None:
    """Mirror a day's Jira worklogs into the local ledger."""

    async def action(runtime: Runtime) -> None:
        summary = await runtime.import_engine().import_day(_parse_day(day, runtime))
        _print_import_summary(summary)
        summary.raise_for_warnings()

    _run(ctx, action)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"Jira Worklog Sync v{__version__}")


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        console.print(f"[red]Unexpected error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
