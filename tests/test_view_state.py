"""Tests for the per-view state registry."""

import logging

import pytest
from conftest import make_pr

from prwatch.models import PageInfo
from prwatch.polling import ViewSnapshot, ViewStateRegistry


class TestViewStateRegistry:
    """Test ViewStateRegistry."""

    def test_same_snapshot_for_same_view(self) -> None:
        """Test every reader of a view shares one snapshot."""
        registry = ViewStateRegistry()
        assert registry.peek("inbox") is None
        assert registry.get("inbox") is registry.get("inbox")
        assert "inbox" in registry
        assert len(registry) == 1

    def test_commit_clears_error_and_loading(self) -> None:
        """Test committing replaces items and clears status flags."""
        registry = ViewStateRegistry()
        registry.set_loading("inbox", True)
        registry.set_error("inbox", "boom")

        state = registry.commit("inbox", [make_pr("PR_1")], PageInfo(has_next_page=True, end_cursor="2"))

        assert state.error == ""
        assert state.loading is False
        assert state.page_info.end_cursor == "2"
        assert registry.item_count("inbox") == 1

    def test_unique_item_count_across_views(self) -> None:
        """Test items in several views are counted once."""
        registry = ViewStateRegistry()
        registry.commit("inbox", [make_pr("PR_1"), make_pr("PR_2")], PageInfo())
        registry.commit("mine", [make_pr("PR_2"), make_pr("PR_3")], PageInfo())
        assert registry.unique_item_count() == 3
        assert registry.item_count("missing") == 0

    def test_reset_and_clear(self) -> None:
        """Test reset keeps the view, clear drops it."""
        registry = ViewStateRegistry()
        registry.commit("inbox", [make_pr("PR_1")], PageInfo())
        registry.commit("mine", [make_pr("PR_2")], PageInfo())

        registry.reset("inbox")
        assert registry.peek("inbox").items == []
        assert registry.peek("inbox").last_fetched_at is None

        registry.clear("inbox")
        assert "inbox" not in registry
        registry.clear()
        assert len(registry) == 0

    def test_subscribe(self) -> None:
        """Test listeners hear about commits and errors until unsubscribed."""
        registry = ViewStateRegistry()
        events: list[tuple[str, ViewSnapshot]] = []
        unsubscribe = registry.subscribe(lambda view_id, state: events.append((view_id, state)))

        registry.commit("inbox", [], PageInfo())
        registry.set_error("inbox", "boom")
        unsubscribe()
        registry.commit("inbox", [], PageInfo())

        assert [view_id for view_id, _ in events] == ["inbox", "inbox"]

    def test_failing_listener_does_not_break_commit(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test a listener that raises is logged and later listeners still run."""
        registry = ViewStateRegistry()
        heard: list[str] = []

        def broken(view_id: str, state: ViewSnapshot) -> None:
            raise ValueError("closing tag '[/docs]' doesn't match any open tag")

        registry.subscribe(broken)
        registry.subscribe(lambda view_id, state: heard.append(view_id))

        with caplog.at_level(logging.ERROR, logger="prwatch"):
            items = [make_pr("PR_1", title="Fix [/docs] links")]
            state = registry.commit("inbox", items, PageInfo())

        assert state.items[0].title == "Fix [/docs] links"
        assert heard == ["inbox"]
        assert "View listener failed for inbox" in caplog.text
