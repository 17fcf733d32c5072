"""Tests for the watch server wiring."""

import asyncio
import io
import os
from pathlib import Path

from conftest import FakeDataSource, make_pr
from rich.console import Console

from prwatch.config import Settings
from prwatch.daemon import WatchServer, get_watch_status, render_inbox, render_view
from prwatch.polling import ViewSnapshot
from prwatch.store import MemoryKeyValueStore, SeenStateStore


def make_server(data_dir: Path, data_source: FakeDataSource, **overrides) -> WatchServer:
    settings = Settings(
        **(
            {
                "github_token": "token",
                "data_dir": data_dir,
                "view_queries": "inbox=is:pr",
                "notifications_enabled": False,
            }
            | overrides
        )
    )
    console = Console(file=io.StringIO(), width=120, color_system=None)
    return WatchServer(settings, data_source=data_source, console=console)


class TestWatchServer:
    """Test WatchServer."""

    def test_refresh_once_returns_active_view(self, data_dir: Path, data_source: FakeDataSource) -> None:
        """Test a one-off refresh fills the active view."""
        data_source.batches["inbox"] = [make_pr("PR_1"), make_pr("PR_2")]

        async def scenario() -> ViewSnapshot | None:
            server = make_server(data_dir, data_source, active_view="inbox")
            try:
                return await server.refresh_once()
            finally:
                await server.close()

        state = asyncio.run(scenario())
        assert [item.id for item in state.items] == ["PR_1", "PR_2"]

    def test_refresh_once_virtual_view(self, data_dir: Path, data_source: FakeDataSource) -> None:
        """Test the notifications view has nothing to fetch."""

        async def scenario() -> ViewSnapshot | None:
            server = make_server(data_dir, data_source, active_view="notifications")
            try:
                return await server.refresh_once()
            finally:
                await server.close()

        assert asyncio.run(scenario()) is None
        assert data_source.calls == []

    def test_bracketed_title_does_not_break_refresh(
        self, data_dir: Path, data_source: FakeDataSource
    ) -> None:
        """Test titles that look like markup are printed as-is and the refresh completes."""
        data_source.batches["inbox"] = [
            make_pr("PR_1", title="Fix [/docs] links", author_login="[bot]")
        ]

        async def scenario() -> tuple[bool, WatchServer]:
            server = make_server(data_dir, data_source, active_view="inbox")
            try:
                return await server.coordinator.refresh(), server
            finally:
                await server.close()

        committed, server = asyncio.run(scenario())
        text = server.console.file.getvalue()
        assert committed is True
        assert "Fix [/docs] links" in text
        assert "[bot]" in text

    def test_rendered_items_are_marked_seen(
        self, data_dir: Path, data_source: FakeDataSource
    ) -> None:
        """Test items shown once are not flagged as new on the next render."""
        data_source.batches["inbox"] = [make_pr("PR_1")]

        async def scenario() -> WatchServer:
            server = make_server(data_dir, data_source, active_view="inbox")
            try:
                await server.refresh_once()
                data_source.batches["inbox"] = [make_pr("PR_1"), make_pr("PR_2")]
                await server.refresh_once()
                return server
            finally:
                await server.close()

        server = asyncio.run(scenario())
        first, second = server.console.file.getvalue().split("inbox (2)")
        assert first.count("●") == 1
        assert second.count("●") == 1
        assert server.seen.is_seen("PR_1")
        assert server.seen.is_seen("PR_2")

    def test_notifications_view_reads_inbox(
        self, data_dir: Path, data_source: FakeDataSource
    ) -> None:
        """Test follow-up changes land in the inbox that backs the notifications view."""
        followed = make_pr("PR_7", comments=1)
        data_source.items[("octo/repo", 7)] = make_pr("PR_7", comments=3)

        async def scenario() -> WatchServer:
            server = make_server(data_dir, data_source, active_view="notifications")
            server.follow_store.follow(followed)
            try:
                assert await server.refresh_once() is None
                return server
            finally:
                await server.close()

        server = asyncio.run(scenario())
        entries = server.inbox.entries()
        assert [(entry.item_id, entry.kind, entry.count) for entry in entries] == [
            ("PR_7", "new_comments", 2)
        ]

        output = io.StringIO()
        Console(file=output, width=120, color_system=None).print(render_inbox(server.inbox))
        text = output.getvalue()
        assert "notifications (1 unread)" in text
        assert "2 new comments" in text

    def test_status_without_pid_file(self, data_dir: Path) -> None:
        """Test status reports stopped when there is no PID file."""
        settings = Settings(data_dir=data_dir)
        assert get_watch_status(settings).running is False

    def test_status_with_live_pid(self, data_dir: Path) -> None:
        """Test status reports running for a live PID."""
        (data_dir / "watch.pid").write_text(str(os.getpid()))
        info = get_watch_status(Settings(data_dir=data_dir))
        assert info.running is True
        assert info.pid == os.getpid()


class TestRenderView:
    """Test view rendering."""

    def test_marks_unseen_items(self) -> None:
        """Test unseen items get a marker and errors a caption."""
        seen = SeenStateStore(MemoryKeyValueStore())
        seen.mark_seen("PR_1")
        state = ViewSnapshot(items=[make_pr("PR_1"), make_pr("PR_2")], error="rate limited")

        output = io.StringIO()
        Console(file=output, width=120, color_system=None).print(render_view("inbox", state, seen))
        text = output.getvalue()

        assert "inbox (2)" in text
        assert "octo/repo#2" in text
        assert text.count("●") == 1
        assert "rate limited" in text
