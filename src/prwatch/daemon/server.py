"""Foreground watch server.

Wires the polling core to its real collaborators and runs until a
shutdown signal arrives:
- SIGTERM/SIGINT stop the watcher gracefully
- SIGUSR1 toggles the "hidden" host signal (pause/resume when background
  polling is disabled)

Usage:
    prwatch watch    # Run the watcher in the foreground
    prwatch status   # Show whether a watcher is running
"""

import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from datetime import datetime

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from prwatch.config import VIEW_NOTIFICATIONS_ID, Settings, is_virtual_view
from prwatch.models import Notification, ViewSelector
from prwatch.notifications import (
    ConsoleNotificationSink,
    DesktopNotificationSink,
    NotificationConfig,
    NotificationManager,
)
from prwatch.polling import HostSignals, ViewPollingCoordinator, ViewSnapshot, ViewStateRegistry
from prwatch.sources import DataSource, FollowUpService, FollowUpStore, GitHubDataSource
from prwatch.store import NotificationInboxStore, SeenStateStore, SqliteKeyValueStore
from prwatch.utils.observable import Observable

logger = logging.getLogger(__name__)


@dataclass
class WatchInfo:
    """Information about a running watcher."""

    running: bool
    pid: int | None


def render_view(view_id: str, state: ViewSnapshot, seen: SeenStateStore | None = None) -> Table:
    """Render a view snapshot as a rich table."""
    title = f"{view_id} ({len(state.items)})"
    if state.last_fetched_at:
        title += f" - updated {state.last_fetched_at.strftime('%H:%M:%S')}"
    table = Table(title=title, show_lines=False)
    table.add_column("", width=1)
    table.add_column("PR", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Author", style="magenta")
    table.add_column("Comments", justify="right")

    for item in state.items:
        marker = "" if seen is None or seen.is_seen(item.id) else "[bold green]●[/bold green]"
        table.add_row(
            marker,
            f"{item.repository}#{item.number}",
            escape(item.title),
            escape(item.author_login),
            str(item.total_comment_count),
        )

    if state.error:
        table.caption = f"[red]{escape(state.error)}[/red]"
    return table


def render_inbox(inbox: NotificationInboxStore) -> Table:
    """Render the notification inbox as a rich table, newest first."""
    entries = inbox.entries()
    table = Table(title=f"{VIEW_NOTIFICATIONS_ID} ({inbox.unread_count} unread)", show_lines=False)
    table.add_column("", width=1)
    table.add_column("When", style="dim", no_wrap=True)
    table.add_column("PR", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Update", style="magenta")

    for entry in entries:
        table.add_row(
            "" if entry.read else "[bold green]●[/bold green]",
            entry.created_at.astimezone().strftime("%m-%d %H:%M"),
            f"{entry.repository}#{entry.number}",
            escape(entry.title),
            entry.text,
        )

    if not entries:
        table.caption = "No notifications"
    return table


class WatchServer:
    """Builds the polling stack from settings and runs it."""

    def __init__(
        self,
        settings: Settings,
        data_source: DataSource | None = None,
        console: Console | None = None,
    ) -> None:
        self.settings = settings
        self.console = console or Console()
        self.pid_file = settings.data_dir / "watch.pid"
        self.started_at: datetime | None = None
        self._shutdown_event = asyncio.Event()

        settings.ensure_directories()
        self.kv_store = SqliteKeyValueStore(settings.db_path)
        self.seen = SeenStateStore(self.kv_store)
        self.follow_store = FollowUpStore(self.kv_store)
        self.inbox = NotificationInboxStore(self.kv_store)
        self.data_source = data_source or GitHubDataSource(
            settings.github_token, base_url=settings.github_api_url
        )

        self.notifications = NotificationManager(
            sink=DesktopNotificationSink(),
            config=NotificationConfig(
                enabled=settings.notifications_enabled,
                notify_on_new_item=settings.notify_on_new_item,
                notify_on_new_activity=settings.notify_on_new_activity,
            ),
        )
        self.notifications.on_fallback(ConsoleNotificationSink(self.console).render)

        self.follow_up = FollowUpService(
            self.data_source,
            self.follow_store,
            notifier=self._on_follow_up_notification,
            inbox=self.inbox,
        )

        self.host = HostSignals()
        self.registry = ViewStateRegistry()
        views = {
            view_id: ViewSelector(view_id=view_id, query=query)
            for view_id, query in settings.view_queries_map.items()
        }
        self.coordinator = ViewPollingCoordinator(
            self.data_source,
            views,
            self.registry,
            self.notifications,
            active_view_id=Observable(settings.active_view),
            followed_source=self.follow_up,
            followed_count=self.follow_store.count,
            follow_up_enabled=Observable(settings.follow_up_enabled),
            polling_enabled=Observable(settings.polling_enabled),
            interval=float(settings.polling_interval_seconds),
            background_allowed=settings.background_polling_enabled,
            host=self.host,
            timeout=settings.poll_timeout_seconds,
        )
        self.registry.subscribe(self._on_view_updated)

    # ------------------------------------------------------------------
    # PID file
    # ------------------------------------------------------------------

    def _write_pid(self) -> None:
        self.pid_file.write_text(str(os.getpid()))
        logger.info(f"PID file written: {self.pid_file}")

    def _remove_pid(self) -> None:
        if self.pid_file.exists():
            self.pid_file.unlink()
            logger.info("PID file removed")

    def _read_pid(self) -> int | None:
        if not self.pid_file.exists():
            return None
        try:
            return int(self.pid_file.read_text().strip())
        except (ValueError, OSError):
            return None

    @staticmethod
    def _is_process_running(pid: int) -> bool:
        try:
            os.kill(pid, 0)  # Signal 0 = check if process exists
            return True
        except OSError:
            return False

    def get_status(self) -> WatchInfo:
        pid = self._read_pid()
        if pid is None:
            return WatchInfo(running=False, pid=None)
        if not self._is_process_running(pid):
            # Stale PID file
            self._remove_pid()
            return WatchInfo(running=False, pid=None)
        return WatchInfo(running=True, pid=pid)

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    def _on_view_updated(self, view_id: str, state: ViewSnapshot) -> None:
        if view_id != self.coordinator.active_view_id.value:
            return
        self.console.print(render_view(view_id, state, self.seen))
        # The marker flags items that are new since the last render
        if state.items:
            self.seen.mark_all_seen(state.items, view_id)

    async def _on_follow_up_notification(self, notification: Notification) -> None:
        await self.notifications.notify(notification)
        if self.coordinator.active_view_id.value == VIEW_NOTIFICATIONS_ID:
            self.console.print(render_inbox(self.inbox))

    def _handle_signal(self) -> None:
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    def _handle_visibility_toggle(self) -> None:
        self.host.toggle_hidden()
        state = "hidden" if self.host.is_hidden() else "visible"
        self.console.print(f"[dim]Watcher is now {state}[/dim]")

    async def refresh_once(self) -> ViewSnapshot | None:
        """Run one manual refresh and return the active view's state."""
        await self.coordinator.refresh()
        view_id = self.coordinator.active_view_id.value
        if is_virtual_view(view_id):
            return None
        return self.registry.get(view_id)

    async def start(self) -> None:
        """Run the watcher until a shutdown signal arrives."""
        existing_pid = self._read_pid()
        if existing_pid and self._is_process_running(existing_pid):
            logger.error(f"Watcher already running with PID {existing_pid}")
            return

        logger.info("prwatch watcher starting...")
        self._write_pid()
        self.started_at = datetime.now()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_signal)
        if hasattr(signal, "SIGUSR1"):
            loop.add_signal_handler(signal.SIGUSR1, self._handle_visibility_toggle)

        try:
            await self.coordinator.refresh()
            self.coordinator.start()
            logger.info("Watcher running. Waiting for shutdown signal...")
            await self._shutdown_event.wait()
        except Exception as e:
            logger.exception(f"Watcher error: {e}")
        finally:
            await self._cleanup()

    async def close(self) -> None:
        """Release timers, flush pending writes and close the HTTP client."""
        self.coordinator.close()
        self.seen.close()
        self.inbox.close()
        if isinstance(self.data_source, GitHubDataSource):
            await self.data_source.close()

    async def _cleanup(self) -> None:
        logger.info("Cleaning up...")
        await self.close()
        self._remove_pid()
        logger.info("Watcher stopped")


def run_watch(settings: Settings) -> None:
    server = WatchServer(settings)
    asyncio.run(server.start())


def get_watch_status(settings: Settings) -> WatchInfo:
    pid_file = settings.data_dir / "watch.pid"
    if not pid_file.exists():
        return WatchInfo(running=False, pid=None)
    try:
        pid = int(pid_file.read_text().strip())
    except (ValueError, OSError):
        return WatchInfo(running=False, pid=None)
    return WatchInfo(running=WatchServer._is_process_running(pid), pid=pid)
