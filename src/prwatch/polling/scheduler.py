"""Single-flight interval scheduler for async poll tasks.

Runs a caller-supplied coroutine function on an interval:
- The next cycle is scheduled only after the previous one settles
  (success, error or timeout), so cycles never overlap.
- A tick that arrives while a task is in flight is skipped, not queued.
- Each task is raced against a timeout. A timed-out task is not cancelled;
  its eventual result is ignored.
- Hidden/focused host signals pause and resume polling when background
  polling is disallowed.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

from prwatch.exceptions import PollTimeoutError
from prwatch.utils.observable import Observable

from .host import HostSignals

logger = logging.getLogger(__name__)

DEFAULT_POLL_TIMEOUT_SECONDS = 30.0

PollTask = Callable[[], Awaitable[object]]

T = TypeVar("T")


def _as_observable(value: "Observable[T] | T") -> "Observable[T]":
    if isinstance(value, Observable):
        return value
    return Observable(value)


class PollScheduler:
    """Runs ``task`` every ``interval`` seconds with a reentrancy guard.

    ``enabled``, ``interval`` and ``background_allowed`` may be plain values
    or observables; when observable, the scheduler reacts to changes
    (enable -> start, disable -> stop, interval change -> restart).

    Must be used from within a running event loop. Call :meth:`close` once
    when done to drop every subscription.
    """

    def __init__(
        self,
        task: PollTask,
        *,
        interval: Observable[float] | float,
        enabled: Observable[bool] | bool = True,
        background_allowed: Observable[bool] | bool = True,
        host: HostSignals | None = None,
        immediate: bool = False,
        timeout: float = DEFAULT_POLL_TIMEOUT_SECONDS,
        name: str = "poll",
    ) -> None:
        self._task = task
        self._interval = _as_observable(interval)
        self._enabled = _as_observable(enabled)
        self._background_allowed = _as_observable(background_allowed)
        self._host = host
        self.immediate = immediate
        self.timeout = timeout
        self.name = name

        self._running = False
        self._in_flight = False
        self._timer: asyncio.TimerHandle | None = None
        self._cycles: set[asyncio.Task[None]] = set()
        self._last_run_at: datetime | None = None
        self._last_run_monotonic: float | None = None
        self._closed = False

        self._unsubscribers: list[Callable[[], None]] = [
            self._enabled.subscribe(self._on_enabled_change),
            self._interval.subscribe(self._on_interval_change),
        ]
        if host is not None:
            self._unsubscribers.append(host.hidden.subscribe(self._on_hidden_change))
            self._unsubscribers.append(host.focused.subscribe(self._on_focused_change))

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def enabled(self) -> bool:
        return self._enabled.value

    @property
    def interval(self) -> float:
        return self._interval.value

    @property
    def task_in_flight(self) -> bool:
        return self._in_flight

    @property
    def last_run_at(self) -> datetime | None:
        return self._last_run_at

    @property
    def time_until_next_run(self) -> float:
        """Seconds until the next scheduled cycle (0 when stopped)."""
        if not self._running:
            return 0.0
        if self._last_run_monotonic is None:
            return float(self.interval)
        elapsed = time.monotonic() - self._last_run_monotonic
        return max(0.0, self.interval - elapsed)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start polling. No-op if disabled, already running or closed."""
        if self._closed or not self.enabled or self._running:
            return

        self._clear_timer()
        self._running = True
        logger.debug("[%s] Starting polling with interval %ss", self.name, self.interval)

        if self.immediate:
            self._spawn_cycle()
        else:
            self._mark_ran()
            self._schedule_next()

    def stop(self) -> None:
        """Stop polling and clear outstanding timers. Idempotent.

        A task that is already executing is left to settle on its own (it is
        bounded by the timeout) but will not schedule another cycle.
        """
        self._clear_timer()
        if self._running:
            logger.debug("[%s] Polling stopped", self.name)
        self._running = False

    def restart(self) -> None:
        self.stop()
        if self.enabled:
            self.start()

    async def poll_now(self) -> None:
        """Run one cycle immediately and reschedule the next one after it.

        Goes through the same reentrancy guard as timer ticks, so it never
        overlaps a cycle that is already in flight.
        """
        if self._closed or not self.enabled:
            return
        self._clear_timer()
        await self._run_cycle()

    def close(self) -> None:
        """Stop polling and unsubscribe from every watched signal."""
        if self._closed:
            return
        self.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._closed = True

    async def wait_idle(self) -> None:
        """Wait until no cycle task is pending. Mostly useful for shutdown."""
        while self._cycles:
            await asyncio.gather(*list(self._cycles), return_exceptions=True)

    # ------------------------------------------------------------------
    # Cycle execution
    # ------------------------------------------------------------------

    def _mark_ran(self) -> None:
        self._last_run_at = datetime.now()
        self._last_run_monotonic = time.monotonic()

    def _clear_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_next(self) -> None:
        self._clear_timer()
        loop = asyncio.get_running_loop()
        logger.debug("[%s] Scheduling next poll in %ss", self.name, self.interval)
        self._timer = loop.call_later(self.interval, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        logger.debug("[%s] Poll timer fired", self.name)
        self._spawn_cycle()

    def _spawn_cycle(self) -> None:
        cycle = asyncio.ensure_future(self._run_cycle())
        self._cycles.add(cycle)
        cycle.add_done_callback(self._cycles.discard)

    async def _run_cycle(self) -> None:
        if self._in_flight:
            logger.debug("[%s] Poll already in progress, skipping", self.name)
            return

        self._in_flight = True
        try:
            work = asyncio.ensure_future(self._task())
            try:
                await asyncio.wait_for(asyncio.shield(work), self.timeout)
            except asyncio.TimeoutError:
                work.add_done_callback(self._discard_late_result)
                logger.warning("[%s] %s", self.name, PollTimeoutError(self.timeout))
            except Exception:
                logger.exception("[%s] Polling error", self.name)
            self._mark_ran()
        finally:
            self._in_flight = False
            if self._running and self.enabled and self._timer is None:
                self._schedule_next()

    def _discard_late_result(self, work: "asyncio.Future[object]") -> None:
        if work.cancelled():
            return
        exc = work.exception()
        if exc is not None:
            logger.debug("[%s] Timed-out poll later failed: %s", self.name, exc)
        else:
            logger.debug("[%s] Timed-out poll completed late, result ignored", self.name)

    # ------------------------------------------------------------------
    # Watchers
    # ------------------------------------------------------------------

    def _on_enabled_change(self, enabled: bool, _old: bool) -> None:
        if enabled:
            self.start()
        else:
            self.stop()

    def _on_interval_change(self, interval: float, _old: float) -> None:
        if self.enabled and self._running:
            logger.debug("[%s] Interval changed to %ss, restarting", self.name, interval)
            self.restart()

    def _on_hidden_change(self, hidden: bool, _old: bool) -> None:
        logger.debug(
            "[%s] Visibility changed: hidden=%s background=%s running=%s",
            self.name,
            hidden,
            self._background_allowed.value,
            self._running,
        )
        if self._background_allowed.value:
            if not hidden and self.enabled:
                logger.debug("[%s] Host visible with background polling, polling now", self.name)
                cycle = asyncio.ensure_future(self.poll_now())
                self._cycles.add(cycle)
                cycle.add_done_callback(self._cycles.discard)
            return

        if hidden:
            self.stop()
        elif self.enabled:
            self._last_run_at = None
            self._last_run_monotonic = None
            self.start()

    def _on_focused_change(self, focused: bool, _old: bool) -> None:
        if self._background_allowed.value:
            return
        if focused and self.enabled and not self._running:
            logger.debug("[%s] Host focused, resuming polling", self.name)
            self.start()
