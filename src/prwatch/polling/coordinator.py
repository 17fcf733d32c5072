"""View-aware polling on top of :class:`PollScheduler`.

Decides what gets refreshed and when a result may land in shared view
state:
- Automatic ticks only poll followed items, and the scheduler only runs
  while there is at least one followed item.
- A manual refresh polls followed items first, then fetches the active
  view (unless it is a virtual view such as the notification inbox).
- Every full-view refresh takes a new generation number; its result is
  committed only if no newer refresh started meanwhile.
- Switching views is debounced; the new view is refreshed once the user
  stops switching.
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine, Mapping
from typing import Any

from prwatch.config import is_virtual_view
from prwatch.models import ViewSelector
from prwatch.notifications.manager import NotificationManager
from prwatch.sources.base import DataSource, FollowedItemsSource, FollowUpPollResult
from prwatch.utils.observable import Observable

from .host import HostSignals
from .scheduler import DEFAULT_POLL_TIMEOUT_SECONDS, PollScheduler
from .view_state import ViewStateRegistry

logger = logging.getLogger(__name__)

# Prevents rapid polling when the user quickly navigates through views
VIEW_SWITCH_DEBOUNCE_SECONDS = 0.3

GENERIC_POLL_ERROR = "Polling failed"


class ViewPollingCoordinator:
    """Owns the poll scheduler and the per-view refresh logic."""

    def __init__(
        self,
        data_source: DataSource,
        views: Mapping[str, ViewSelector],
        registry: ViewStateRegistry,
        notifications: NotificationManager,
        *,
        active_view_id: Observable[str],
        followed_source: FollowedItemsSource | None = None,
        followed_count: Observable[int] | None = None,
        follow_up_enabled: Observable[bool] | None = None,
        polling_enabled: Observable[bool] | None = None,
        interval: Observable[float] | float = 60.0,
        background_allowed: Observable[bool] | bool = True,
        host: HostSignals | None = None,
        timeout: float = DEFAULT_POLL_TIMEOUT_SECONDS,
        view_switch_debounce: float = VIEW_SWITCH_DEBOUNCE_SECONDS,
    ) -> None:
        self._data_source = data_source
        self._views = dict(views)
        self.registry = registry
        self.notifications = notifications
        self.active_view_id = active_view_id
        self._followed_source = followed_source
        self._followed_count = followed_count or Observable(0)
        self._follow_up_enabled = follow_up_enabled or Observable(True)
        self._polling_enabled = polling_enabled or Observable(True)
        self.view_switch_debounce = view_switch_debounce

        self._generation = 0
        self._generation_view: str | None = None
        self._view_switch_timer: asyncio.TimerHandle | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._closed = False

        # Derived flag: automatic polling only makes sense with followed items
        self._auto_enabled = Observable(self._should_auto_poll())

        self.scheduler = PollScheduler(
            self._tick,
            interval=interval,
            enabled=self._auto_enabled,
            background_allowed=background_allowed,
            host=host,
            immediate=False,
            timeout=timeout,
            name="view-polling",
        )

        self._unsubscribers: list[Callable[[], None]] = [
            self._followed_count.subscribe(self._on_follow_inputs_change),
            self._follow_up_enabled.subscribe(self._on_follow_inputs_change),
            self._polling_enabled.subscribe(self._on_follow_inputs_change),
            self.active_view_id.subscribe(self._on_active_view_change),
        ]

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def views(self) -> dict[str, ViewSelector]:
        return dict(self._views)

    def _should_auto_poll(self) -> bool:
        return (
            self._polling_enabled.value
            and self._follow_up_enabled.value
            and self._followed_source is not None
            and self._followed_count.value > 0
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start automatic polling (no-op while there is nothing to follow)."""
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()

    def close(self) -> None:
        """Cancel pending timers and drop every subscription. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._cancel_view_switch()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.scheduler.close()

    async def wait_idle(self) -> None:
        """Wait for background refreshes and scheduler cycles to settle."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.scheduler.wait_idle()

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def _tick(self) -> None:
        if not self._should_auto_poll():
            logger.debug("No followed items to poll, skipping tick")
            return
        await self.poll_followed_items()

    async def poll_followed_items(self) -> FollowUpPollResult | None:
        """Poll followed items. Errors are logged and never propagate."""
        if not self._follow_up_enabled.value or self._followed_source is None:
            return None

        try:
            result = await self._followed_source.poll_followed_items()
        except Exception:
            logger.exception("Follow-up polling error")
            return None

        if result.changes_detected > 0:
            logger.debug(
                "Follow-up polling: %d changes detected, %d notifications created",
                result.changes_detected,
                len(result.notifications_created),
            )
        for error in result.errors:
            logger.warning("Follow-up polling: %s", error)
        return result

    async def refresh(self) -> bool:
        """Manual refresh: followed items first, then the active view.

        Returns:
            True if the active view's data was committed
        """
        await self.poll_followed_items()

        view_id = self.active_view_id.value
        if is_virtual_view(view_id):
            logger.debug("View %s manages its own data, skipping fetch", view_id)
            return False
        return await self.refresh_view(view_id)

    async def refresh_view(self, view_id: str) -> bool:
        """Fetch a view's full data set and commit it if still current.

        Returns:
            True if the result was committed, False if it failed or was
            superseded by a newer refresh
        """
        selector = self._views.get(view_id)
        if selector is None:
            logger.warning("Unknown view: %s", view_id)
            return False

        self._generation += 1
        generation = self._generation
        self._generation_view = view_id
        self.registry.set_loading(view_id, True)
        logger.debug("Refreshing view %s (generation %d)", view_id, generation)

        try:
            batch = await self._data_source.fetch_items(selector)
        except Exception as e:
            if generation != self._generation:
                logger.debug("Discarding stale error for %s (generation %d)", view_id, generation)
                self._release_loading(view_id)
                return False
            logger.error("Error polling view %s: %s", view_id, e)
            self.registry.set_error(view_id, str(e) or GENERIC_POLL_ERROR)
            return False

        if generation != self._generation:
            logger.debug(
                "Refresh superseded, discarding results for %s (generation %d, current %d)",
                view_id,
                generation,
                self._generation,
            )
            self._release_loading(view_id)
            return False

        self.registry.commit(view_id, batch.items, batch.page_info)
        logger.debug("Refreshed view %s: %d items", view_id, len(batch.items))

        await self.notifications.process_update(batch.items)
        return True

    def _release_loading(self, view_id: str) -> None:
        # A newer refresh for the same view still owns the loading flag
        if self._generation_view != view_id:
            self.registry.set_loading(view_id, False)

    # ------------------------------------------------------------------
    # Watchers
    # ------------------------------------------------------------------

    def _on_follow_inputs_change(self, _new: object, _old: object) -> None:
        self._auto_enabled.set(self._should_auto_poll())

    def _on_active_view_change(self, new_view_id: str, old_view_id: str) -> None:
        logger.debug("View changed from %s to %s", old_view_id, new_view_id)
        self._cancel_view_switch()
        loop = asyncio.get_running_loop()
        self._view_switch_timer = loop.call_later(
            self.view_switch_debounce, self._on_view_switch_settled, new_view_id
        )

    def _on_view_switch_settled(self, view_id: str) -> None:
        self._view_switch_timer = None
        if not self.scheduler.running:
            return
        if is_virtual_view(view_id):
            return
        logger.debug("Triggering poll for new view: %s", view_id)
        self._spawn(self.refresh_view(view_id))

    def _cancel_view_switch(self) -> None:
        if self._view_switch_timer is not None:
            self._view_switch_timer.cancel()
            self._view_switch_timer = None

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
