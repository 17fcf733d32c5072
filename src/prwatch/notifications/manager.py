"""Snapshot-diffing notification manager.

Keeps the ids and comment counts of the previous batch and, on each new
batch, reports items that are new and items whose comment count grew.
The very first batch only establishes the baseline, so starting up (or
switching accounts) never produces a storm of "new item" notifications.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from prwatch.exceptions import NotificationDeliveryError
from prwatch.models import Notification, PullRequest

from .sinks import NotificationSink

logger = logging.getLogger(__name__)

FallbackListener = Callable[[Notification], None]


class DetectorState(Enum):
    """Whether a baseline snapshot exists."""

    COLD = "cold"
    WARM = "warm"


@dataclass(frozen=True)
class ActivitySnapshot:
    """Ids and secondary (comment) counts captured from one batch."""

    ids: frozenset[str]
    secondary_counts: dict[str, int]

    @property
    def total_items(self) -> int:
        return len(self.ids)

    @classmethod
    def from_items(cls, items: Sequence[PullRequest]) -> "ActivitySnapshot":
        return cls(
            ids=frozenset(item.id for item in items),
            secondary_counts={item.id: item.total_comment_count for item in items},
        )


@dataclass
class ItemActivity:
    item: PullRequest
    delta: int


@dataclass
class NotificationChanges:
    """Result of diffing one batch against the retained snapshot."""

    new_items: list[PullRequest] = field(default_factory=list)
    items_with_activity: list[ItemActivity] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.new_items or self.items_with_activity)


@dataclass
class NotificationConfig:
    enabled: bool = True
    notify_on_new_item: bool = True
    notify_on_new_activity: bool = True


def _plural(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"


class NotificationManager:
    """Diffs successive batches and emits new-item / new-activity notifications.

    Delivery goes through ``sink``. When there is no sink or it raises, the
    notification is handed to every registered fallback listener instead so
    the caller can show it in-app.
    """

    def __init__(
        self,
        sink: NotificationSink | None = None,
        config: NotificationConfig | None = None,
    ) -> None:
        self._sink = sink
        self.config = config or NotificationConfig()
        self._previous: ActivitySnapshot | None = None
        self._fallback_listeners: list[FallbackListener] = []

        if sink is None:
            logger.warning("No notification sink available, notifications will use fallback")

    @property
    def state(self) -> DetectorState:
        return DetectorState.COLD if self._previous is None else DetectorState.WARM

    @property
    def snapshot(self) -> ActivitySnapshot | None:
        return self._previous

    def update_config(self, **flags: bool) -> None:
        """Update gating flags (``enabled``, ``notify_on_new_item``, ``notify_on_new_activity``)."""
        for name, value in flags.items():
            if not hasattr(self.config, name):
                raise ValueError(f"Unknown notification flag: {name}")
            setattr(self.config, name, value)

    def on_fallback(self, listener: FallbackListener) -> Callable[[], None]:
        """Register a listener for notifications the platform could not deliver."""
        self._fallback_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._fallback_listeners:
                self._fallback_listeners.remove(listener)

        return unsubscribe

    def reset(self) -> None:
        """Forget the baseline; the next batch is treated as a cold start."""
        self._previous = None

    async def process_update(self, items: Sequence[PullRequest]) -> NotificationChanges:
        """Diff ``items`` against the retained snapshot and notify.

        Returns:
            The detected changes (always empty on a cold start)
        """
        current = ActivitySnapshot.from_items(items)

        if self._previous is None:
            self._previous = current
            logger.debug("Captured baseline snapshot of %d items", current.total_items)
            return NotificationChanges()

        changes = self.detect_changes(items, self._previous, current)
        # Replace before delivery so a delivery problem can't cause a re-count
        self._previous = current

        logger.debug(
            "Changes detected: %d new items, %d items with new activity",
            len(changes.new_items),
            len(changes.items_with_activity),
        )

        if self.config.enabled and changes.has_changes:
            await self._show_notifications(changes)

        return changes

    @staticmethod
    def detect_changes(
        items: Sequence[PullRequest],
        previous: ActivitySnapshot,
        current: ActivitySnapshot,
    ) -> NotificationChanges:
        changes = NotificationChanges()
        for item in items:
            if item.id not in previous.ids:
                changes.new_items.append(item)
                continue

            before = previous.secondary_counts.get(item.id, 0)
            now = current.secondary_counts.get(item.id, 0)
            if now > before:
                changes.items_with_activity.append(ItemActivity(item=item, delta=now - before))
        return changes

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    async def _show_notifications(self, changes: NotificationChanges) -> None:
        if self.config.notify_on_new_item and changes.new_items:
            await self._deliver(self.format_new_items(changes.new_items))

        if self.config.notify_on_new_activity and changes.items_with_activity:
            await self._deliver(self.format_new_activity(changes.items_with_activity))

    @staticmethod
    def format_new_items(items: Sequence[PullRequest]) -> Notification:
        if len(items) == 1:
            item = items[0]
            return Notification(
                title="New Pull Request",
                body=f"{item.author_login}: {item.title}",
                subtitle=item.repository,
                url=item.url,
            )

        repositories = list(dict.fromkeys(item.repository for item in items))
        return Notification(
            title="New Pull Requests",
            body=f"You have {len(items)} new PRs to review",
            subtitle=", ".join(repositories),
        )

    @staticmethod
    def format_new_activity(activity: Sequence[ItemActivity]) -> Notification:
        if len(activity) == 1:
            entry = activity[0]
            return Notification(
                title=f"{entry.delta} new {_plural(entry.delta, 'comment')}",
                body=entry.item.title,
                subtitle=f"{entry.item.repository} #{entry.item.number}",
                url=entry.item.url,
            )

        total = sum(entry.delta for entry in activity)
        return Notification(
            title=f"{total} new {_plural(total, 'comment')}",
            body=f"In {len(activity)} pull requests",
            subtitle=", ".join(f"#{entry.item.number}" for entry in activity),
        )

    async def notify(self, notification: Notification) -> None:
        """Deliver an arbitrary notification, respecting the global flag."""
        if self.config.enabled:
            await self._deliver(notification)

    async def _deliver(self, notification: Notification) -> None:
        if self._sink is None:
            self._fallback(notification)
            return

        try:
            logger.debug("Sending notification: %s", notification.title)
            await self._sink.send(notification)
        except NotificationDeliveryError as e:
            logger.warning("Notification delivery failed: %s", e)
            self._fallback(notification)
        except Exception:
            logger.exception("Notification sink raised unexpectedly")
            self._fallback(notification)

    def _fallback(self, notification: Notification) -> None:
        if not self._fallback_listeners:
            logger.info("Undelivered notification: %s - %s", notification.title, notification.body)
            return
        for listener in list(self._fallback_listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification fallback listener failed")
