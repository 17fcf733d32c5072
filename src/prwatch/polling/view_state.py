"""Per-view state shared between the coordinator and its readers.

Each view id gets exactly one :class:`ViewSnapshot`, created lazily on
first access and kept until explicitly cleared. The registry is built once
and passed to whoever needs it; there is no module-level state.
"""

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime

from prwatch.models import PageInfo, PullRequest

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[str, "ViewSnapshot"], None]


@dataclass
class ViewSnapshot:
    """Items and fetch status for a single view."""

    items: list[PullRequest] = field(default_factory=list)
    page_info: PageInfo = field(default_factory=PageInfo)
    loading: bool = False
    error: str = ""
    last_fetched_at: datetime | None = None

    def reset(self) -> None:
        self.items = []
        self.page_info = PageInfo()
        self.loading = False
        self.error = ""
        self.last_fetched_at = None


class ViewStateRegistry:
    """Registry of :class:`ViewSnapshot` objects keyed by view id.

    All consumers asking for the same view id receive the same snapshot
    object, so a commit by the coordinator is visible to every reader.
    """

    def __init__(self) -> None:
        self._states: dict[str, ViewSnapshot] = {}
        self._listeners: list[SnapshotListener] = []

    def get(self, view_id: str) -> ViewSnapshot:
        """Get or lazily create the snapshot for ``view_id``."""
        state = self._states.get(view_id)
        if state is None:
            state = ViewSnapshot()
            self._states[view_id] = state
        return state

    def peek(self, view_id: str) -> ViewSnapshot | None:
        """Get the snapshot without creating it."""
        return self._states.get(view_id)

    def __contains__(self, view_id: object) -> bool:
        return view_id in self._states

    def __iter__(self) -> Iterator[str]:
        return iter(self._states)

    def __len__(self) -> int:
        return len(self._states)

    def commit(
        self,
        view_id: str,
        items: list[PullRequest],
        page_info: PageInfo,
        fetched_at: datetime | None = None,
    ) -> ViewSnapshot:
        """Replace a view's items and clear its error."""
        state = self.get(view_id)
        state.items = list(items)
        state.page_info = page_info
        state.last_fetched_at = fetched_at or datetime.now()
        state.error = ""
        state.loading = False
        self._notify(view_id, state)
        return state

    def set_error(self, view_id: str, message: str) -> ViewSnapshot:
        state = self.get(view_id)
        state.error = message
        state.loading = False
        self._notify(view_id, state)
        return state

    def set_loading(self, view_id: str, loading: bool) -> None:
        self.get(view_id).loading = loading

    def reset(self, view_id: str) -> None:
        """Reset a view's state without dropping it from the registry."""
        state = self._states.get(view_id)
        if state is not None:
            state.reset()
            self._notify(view_id, state)

    def clear(self, view_id: str | None = None) -> None:
        """Drop one view's state, or every view's when ``view_id`` is None."""
        if view_id is None:
            self._states.clear()
        else:
            self._states.pop(view_id, None)

    def item_count(self, view_id: str) -> int:
        state = self._states.get(view_id)
        return len(state.items) if state else 0

    def unique_item_count(self) -> int:
        """Count distinct items across every view."""
        return len({item.id for state in self._states.values() for item in state.items})

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Be told whenever a view is committed, errored or reset."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, view_id: str, state: ViewSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(view_id, state)
            except Exception:
                logger.exception(f"View listener failed for {view_id}")
