"""prwatch CLI - pull request watcher."""

import asyncio
import logging
from typing import Annotated

import typer
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import settings
from .utils.console import console
from .utils.logging import set_log_level, setup_logging

logger = logging.getLogger(__name__)


def _print_panel(message: str, style: str = "blue") -> None:
    """Print a styled panel message."""
    console.print(Panel(f"[bold]{message}[/bold]", style=style))


def _require_github() -> None:
    if not settings.has_github:
        console.print("[red]No GitHub token configured. Set PRWATCH_GITHUB_TOKEN.[/red]")
        raise typer.Exit(code=1)


def _validate_views() -> None:
    try:
        views = settings.view_queries_map
    except ValueError as e:
        console.print(f"[red]Validation error: {e}[/red]")
        raise typer.Exit(code=1)
    if not views:
        console.print("[red]No views configured. Set PRWATCH_VIEW_QUERIES.[/red]")
        raise typer.Exit(code=1)


app = typer.Typer(
    name="prwatch",
    help="Pull request watcher - keep your review queue fresh and get notified of changes",
    no_args_is_help=True,
)

seen_app = typer.Typer(help="Manage which pull requests are marked as seen")
follow_app = typer.Typer(help="Follow pull requests for new commits, comments and reviews")
inbox_app = typer.Typer(help="Read notifications about followed pull requests")
config_app = typer.Typer(help="Inspect configuration")

app.add_typer(seen_app, name="seen")
app.add_typer(follow_app, name="follow")
app.add_typer(inbox_app, name="inbox")
app.add_typer(config_app, name="config")


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]prwatch[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Log debug output to the console"),
    ] = False,
) -> None:
    """prwatch - know when your pull requests need you."""
    settings.ensure_directories()
    setup_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        console_level="DEBUG" if verbose else "WARNING",
    )
    if verbose:
        set_log_level("DEBUG")


# ============================================================================
# WATCH COMMANDS
# ============================================================================


@app.command("watch")
def watch() -> None:
    """Watch configured views and send notifications until interrupted.

    Send SIGUSR1 to toggle the watcher between visible and hidden.
    """
    from .daemon.server import get_watch_status, run_watch

    _require_github()
    _validate_views()

    status = get_watch_status(settings)
    if status.running:
        console.print(f"[yellow]Watcher already running (PID {status.pid})[/yellow]")
        return

    _print_panel(f"Watching '{settings.active_view}' every {settings.polling_interval_seconds}s")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")
    try:
        run_watch(settings)
    except KeyboardInterrupt:
        console.print("\n[dim]Watcher stopped.[/dim]")


@app.command("status")
def status() -> None:
    """Show whether a watcher is running."""
    from .daemon.server import get_watch_status

    info = get_watch_status(settings)
    if info.running:
        console.print(f"Status: [green]Running[/green] (PID {info.pid})")
    else:
        console.print("Status: [yellow]Stopped[/yellow]")


@app.command("refresh")
def refresh(
    view: Annotated[
        str | None,
        typer.Option("--view", help="View to refresh (defaults to the active view)"),
    ] = None,
) -> None:
    """Refresh a view once and print it.

    Printed items are marked as seen, so the next refresh only flags what
    is new since this one.
    """
    from .config import VIEW_NOTIFICATIONS_ID, is_virtual_view
    from .daemon.server import WatchServer, render_inbox

    _require_github()
    _validate_views()

    if view is not None:
        if view not in settings.view_queries_map and not is_virtual_view(view):
            console.print(f"[red]Unknown view: {escape(view)}[/red]")
            raise typer.Exit(code=1)
        run_settings = settings.model_copy(update={"active_view": view})
    else:
        run_settings = settings

    async def _run() -> None:
        # The server prints the refreshed view itself as it is committed
        server = WatchServer(run_settings, console=console)
        try:
            state = await server.refresh_once()
            if state is not None:
                return
            if run_settings.active_view == VIEW_NOTIFICATIONS_ID:
                console.print(render_inbox(server.inbox))
            else:
                console.print("[dim]Active view is virtual; nothing to fetch.[/dim]")
        finally:
            await server.close()

    asyncio.run(_run())


# ============================================================================
# SEEN COMMANDS
# ============================================================================


def _open_seen_store():
    from .store import SeenStateStore, SqliteKeyValueStore

    return SeenStateStore(SqliteKeyValueStore(settings.db_path))


@seen_app.command("stats")
def seen_stats() -> None:
    """Show how many pull requests are tracked as seen."""
    seen = _open_seen_store()
    console.print(f"Tracked as seen: [bold]{seen.count}[/bold]")
    console.print(f"Last pruned: {seen.last_pruned_at.strftime('%Y-%m-%d %H:%M')}")


@seen_app.command("clear")
def seen_clear(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Forget every seen pull request."""
    if not yes:
        typer.confirm("Clear all seen state?", abort=True)
    seen = _open_seen_store()
    seen.clear()
    seen.close()
    console.print("[green]Seen state cleared.[/green]")


@seen_app.command("mark")
def seen_mark(
    item_ids: Annotated[list[str], typer.Argument(help="Pull request node ids to mark")],
    unseen: Annotated[bool, typer.Option("--unseen", help="Mark as unseen instead")] = False,
) -> None:
    """Mark pull requests as seen (or unseen)."""
    seen = _open_seen_store()
    for item_id in item_ids:
        if unseen:
            seen.mark_unseen(item_id)
        else:
            seen.mark_seen(item_id)
    seen.close()
    state = "unseen" if unseen else "seen"
    console.print(f"[green]Marked {len(item_ids)} pull request(s) as {state}.[/green]")


# ============================================================================
# FOLLOW COMMANDS
# ============================================================================


def _open_follow_store():
    from .sources import FollowUpStore
    from .store import SqliteKeyValueStore

    return FollowUpStore(SqliteKeyValueStore(settings.db_path))


@follow_app.command("add")
def follow_add(
    repository: Annotated[str, typer.Argument(help="Repository as owner/name")],
    number: Annotated[int, typer.Argument(help="Pull request number")],
) -> None:
    """Follow a pull request."""
    from .sources import GitHubDataSource

    _require_github()
    if repository.count("/") != 1:
        console.print("[red]Repository must be given as owner/name[/red]")
        raise typer.Exit(code=1)

    async def _fetch():
        source = GitHubDataSource(settings.github_token, base_url=settings.github_api_url)
        try:
            return await source.fetch_item(repository, number)
        finally:
            await source.close()

    try:
        pr = asyncio.run(_fetch())
    except Exception as e:
        console.print(f"[red]Could not fetch {repository}#{number}: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    if _open_follow_store().follow(pr):
        console.print(f"[green]Following {repository}#{number}: {escape(pr.title)}[/green]")
    else:
        console.print("[red]Follow limit reached.[/red]")
        raise typer.Exit(code=1)


@follow_app.command("remove")
def follow_remove(
    item_id: Annotated[str, typer.Argument(help="Pull request node id (see 'follow list')")],
) -> None:
    """Stop following a pull request."""
    store = _open_follow_store()
    if not store.is_following(item_id):
        console.print(f"[yellow]Not following {escape(item_id)}[/yellow]")
        return
    store.unfollow(item_id)
    console.print(f"[green]Unfollowed {escape(item_id)}[/green]")


@follow_app.command("list")
def follow_list() -> None:
    """List followed pull requests."""
    items = _open_follow_store().items()
    if not items:
        console.print("[dim]Not following any pull requests.[/dim]")
        return

    table = Table(title=f"Followed ({len(items)})")
    table.add_column("ID", style="dim")
    table.add_column("PR", style="cyan")
    table.add_column("Title")
    table.add_column("Commits", justify="right")
    table.add_column("Comments", justify="right")
    table.add_column("Reviews", justify="right")
    for item in items:
        table.add_row(
            item.item_id,
            f"{item.repository}#{item.number}",
            escape(item.title),
            str(item.commit_count),
            str(item.comment_count),
            str(item.review_count),
        )
    console.print(table)


# ============================================================================
# INBOX COMMANDS
# ============================================================================


def _open_inbox():
    from .store import NotificationInboxStore, SqliteKeyValueStore

    return NotificationInboxStore(SqliteKeyValueStore(settings.db_path))


@inbox_app.command("list")
def inbox_list(
    unread: Annotated[bool, typer.Option("--unread", help="Only show unread entries")] = False,
) -> None:
    """List follow-up notifications, newest first."""
    inbox = _open_inbox()
    entries = inbox.unread() if unread else inbox.entries()
    if not entries:
        console.print("[dim]No notifications.[/dim]")
        return

    table = Table(title=f"Notifications ({inbox.unread_count} unread)")
    table.add_column("ID", style="dim")
    table.add_column("PR", style="cyan")
    table.add_column("Title")
    table.add_column("Update", style="magenta")
    for entry in entries:
        table.add_row(
            entry.id if entry.read else f"[bold]{entry.id}[/bold]",
            f"{entry.repository}#{entry.number}",
            escape(entry.title),
            entry.text,
        )
    console.print(table)


@inbox_app.command("read")
def inbox_read(
    entry_id: Annotated[
        str | None, typer.Argument(help="Entry id to mark read (omit with --all)")
    ] = None,
    all_: Annotated[bool, typer.Option("--all", help="Mark every entry read")] = False,
) -> None:
    """Mark inbox entries as read."""
    inbox = _open_inbox()
    if all_:
        count = inbox.mark_all_read()
        inbox.close()
        console.print(f"[green]Marked {count} notification(s) read.[/green]")
        return
    if entry_id is None:
        console.print("[red]Give an entry id or --all[/red]")
        raise typer.Exit(code=1)
    if not inbox.mark_read(entry_id):
        console.print(f"[yellow]No notification {escape(entry_id)}[/yellow]")
        raise typer.Exit(code=1)
    inbox.close()
    console.print(f"[green]Marked {escape(entry_id)} read.[/green]")


@inbox_app.command("clear")
def inbox_clear(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete every inbox entry."""
    if not yes:
        typer.confirm("Clear the notification inbox?", abort=True)
    inbox = _open_inbox()
    inbox.clear()
    inbox.close()
    console.print("[green]Notification inbox cleared.[/green]")


# ============================================================================
# CONFIG COMMANDS
# ============================================================================


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration (secrets masked)."""
    table = Table(title="prwatch configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for name, value in settings.model_dump().items():
        if name == "github_token":
            value = "********" if value else "(not set)"
        table.add_row(name, str(value))
    console.print(table)


if __name__ == "__main__":
    app()
