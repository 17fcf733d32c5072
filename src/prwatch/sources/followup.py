"""Follow-up tracking for items the user explicitly follows.

The store keeps each followed item's last known activity counts; the
service re-fetches followed items, compares against those counts and
notifies about new commits, comments and reviews.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from prwatch.models import Notification, PullRequest
from prwatch.store.inbox import (
    KIND_CLOSED,
    KIND_NEW_COMMENTS,
    KIND_NEW_COMMITS,
    KIND_NEW_REVIEWS,
    NotificationInboxStore,
)
from prwatch.store.persistence import PersistenceStore
from prwatch.utils.observable import Observable

from .base import DataSource, FollowUpChange, FollowUpPollResult

logger = logging.getLogger(__name__)

STORAGE_KEY = "prwatch-follow-up"
MAX_FOLLOWED_ITEMS = 50
PRUNE_AGE = timedelta(days=30)
CONCURRENCY_LIMIT = 5

Notifier = Callable[[Notification], Awaitable[None]]


@dataclass
class FollowUpPrefs:
    notify_on_commits: bool = True
    notify_on_comments: bool = True
    notify_on_reviews: bool = True


@dataclass
class FollowedItem:
    item_id: str
    number: int
    repository: str
    title: str
    url: str
    followed_at: datetime
    commit_count: int = 0
    comment_count: int = 0
    review_count: int = 0
    prefs: FollowUpPrefs = field(default_factory=FollowUpPrefs)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["followed_at"] = self.followed_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FollowedItem":
        data = dict(data)
        data["followed_at"] = datetime.fromisoformat(data["followed_at"])
        data["prefs"] = FollowUpPrefs(**data.get("prefs", {}))
        return cls(**data)

    @classmethod
    def from_pull_request(cls, pr: PullRequest, prefs: FollowUpPrefs | None = None) -> "FollowedItem":
        return cls(
            item_id=pr.id,
            number=pr.number,
            repository=pr.repository,
            title=pr.title,
            url=pr.url,
            followed_at=datetime.now(timezone.utc),
            commit_count=pr.commit_count,
            comment_count=pr.total_comment_count,
            review_count=pr.review_count,
            prefs=prefs or FollowUpPrefs(),
        )


class FollowUpStore:
    """Persisted set of followed items.

    ``count`` is observable so the polling coordinator can start and stop
    automatic polling as the first item is followed or the last unfollowed.
    """

    def __init__(self, store: PersistenceStore, max_items: int = MAX_FOLLOWED_ITEMS) -> None:
        self._store = store
        self.max_items = max_items
        self._items: dict[str, FollowedItem] = {}
        self._load()
        self.count: Observable[int] = Observable(len(self._items))

    def _load(self) -> None:
        raw = self._store.get(STORAGE_KEY)
        if not raw:
            return
        try:
            data = json.loads(raw)
            self._items = {
                item_id: FollowedItem.from_dict(entry)
                for item_id, entry in data.get("followed", {}).items()
            }
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Error loading follow-up state, starting empty: {e}")
            self._items = {}

        cutoff = datetime.now(timezone.utc) - PRUNE_AGE
        stale = [i for i, item in self._items.items() if item.followed_at < cutoff]
        for item_id in stale:
            del self._items[item_id]
        if stale:
            logger.info(f"Pruned {len(stale)} old followed items")
            self._save()

    def _save(self) -> None:
        payload = json.dumps({"followed": {i: item.to_dict() for i, item in self._items.items()}})
        if not self._store.set(STORAGE_KEY, payload):
            logger.warning("Follow-up state was not persisted")

    def _changed(self) -> None:
        self._save()
        self.count.set(len(self._items))

    def items(self) -> list[FollowedItem]:
        return list(self._items.values())

    def get(self, item_id: str) -> FollowedItem | None:
        return self._items.get(item_id)

    def is_following(self, item_id: str) -> bool:
        return item_id in self._items

    def follow(self, pr: PullRequest, prefs: FollowUpPrefs | None = None) -> bool:
        """Start following ``pr``. Returns False when the limit is reached."""
        if pr.id not in self._items and len(self._items) >= self.max_items:
            logger.warning(f"Cannot follow more than {self.max_items} items")
            return False
        self._items[pr.id] = FollowedItem.from_pull_request(pr, prefs)
        self._changed()
        return True

    def unfollow(self, item_id: str) -> None:
        if self._items.pop(item_id, None) is not None:
            self._changed()

    def update_state(self, pr: PullRequest) -> None:
        item = self._items.get(pr.id)
        if item is None:
            return
        item.title = pr.title
        item.url = pr.url or item.url
        item.commit_count = pr.commit_count
        item.comment_count = pr.total_comment_count
        item.review_count = pr.review_count
        self._save()


def detect_follow_up_change(item: FollowedItem, current: PullRequest) -> FollowUpChange:
    """Compare a followed item's last known counts with its current state."""
    return FollowUpChange(
        item_id=item.item_id,
        number=item.number,
        repository=item.repository,
        title=current.title,
        url=current.url or item.url,
        new_commits=max(0, current.commit_count - item.commit_count),
        new_comments=max(0, current.total_comment_count - item.comment_count),
        new_reviews=max(0, current.review_count - item.review_count),
        closed=not current.is_open,
    )


def _count_text(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def format_change_text(change: FollowUpChange) -> str:
    parts = []
    if change.new_commits:
        parts.append(_count_text(change.new_commits, "commit"))
    if change.new_comments:
        parts.append(_count_text(change.new_comments, "comment"))
    if change.new_reviews:
        parts.append(_count_text(change.new_reviews, "review"))
    if change.closed:
        parts.append("closed")
    return ", ".join(parts) or "Updates"


class FollowUpService:
    """Polls followed items for new activity.

    Implements the ``FollowedItemsSource`` protocol. A call that overlaps a
    poll already in progress joins it and receives the same result, so
    notifications are never duplicated and every caller sees them sent.
    """

    def __init__(
        self,
        data_source: DataSource,
        store: FollowUpStore,
        notifier: Notifier | None = None,
        concurrency: int = CONCURRENCY_LIMIT,
        inbox: NotificationInboxStore | None = None,
    ) -> None:
        self._data_source = data_source
        self._store = store
        self._notifier = notifier
        self._inbox = inbox
        self._semaphore = asyncio.Semaphore(concurrency)
        self._in_flight: asyncio.Future[FollowUpPollResult] | None = None

    @property
    def polling(self) -> bool:
        return self._in_flight is not None

    async def poll_followed_items(self) -> FollowUpPollResult:
        if self._in_flight is None:
            self._in_flight = asyncio.ensure_future(self._poll())
        else:
            logger.debug("Follow-up polling already in progress, joining it")
        # A cancelled caller must not cancel the poll other callers share
        return await asyncio.shield(self._in_flight)

    async def _poll(self) -> FollowUpPollResult:
        result = FollowUpPollResult()
        try:
            followed = self._store.items()
            if not followed:
                return result

            logger.debug(f"Polling {len(followed)} followed items")
            await asyncio.gather(*(self._poll_one(item, result) for item in followed))

            if result.notifications_created and self._notifier is not None:
                await self._notifier(self.format_notification(result.notifications_created))
        finally:
            self._in_flight = None

        return result

    async def _poll_one(self, item: FollowedItem, result: FollowUpPollResult) -> None:
        try:
            async with self._semaphore:
                current = await self._data_source.fetch_item(item.repository, item.number)
        except Exception as e:
            logger.error(f"Error polling {item.repository}#{item.number}: {e}")
            result.errors.append(f"Failed to poll {item.repository}#{item.number}: {e}")
            return

        result.checked += 1
        change = detect_follow_up_change(item, current)

        if change.closed:
            self._store.unfollow(item.item_id)
            result.changes_detected += 1
            result.notifications_created.append(change)
            self._record(change)
            return

        if not (change.new_commits or change.new_comments or change.new_reviews):
            return

        result.changes_detected += 1
        # Only report the kinds of activity the user asked for
        change.new_commits = change.new_commits if item.prefs.notify_on_commits else 0
        change.new_comments = change.new_comments if item.prefs.notify_on_comments else 0
        change.new_reviews = change.new_reviews if item.prefs.notify_on_reviews else 0
        if change.new_commits or change.new_comments or change.new_reviews:
            result.notifications_created.append(change)
            self._record(change)

        self._store.update_state(current)

    def _record(self, change: FollowUpChange) -> None:
        """Add one inbox entry per kind of activity in ``change``."""
        if self._inbox is None:
            return
        details = {
            "item_id": change.item_id,
            "number": change.number,
            "repository": change.repository,
            "title": change.title,
            "url": change.url,
        }
        if change.closed:
            self._inbox.add(kind=KIND_CLOSED, **details)
            return
        for kind, count in (
            (KIND_NEW_COMMITS, change.new_commits),
            (KIND_NEW_COMMENTS, change.new_comments),
            (KIND_NEW_REVIEWS, change.new_reviews),
        ):
            if count:
                self._inbox.add(kind=kind, count=count, **details)

    @staticmethod
    def format_notification(changes: list[FollowUpChange]) -> Notification:
        if len(changes) == 1:
            change = changes[0]
            return Notification(
                title="PR Update",
                body=change.title,
                subtitle=f"{change.repository} • {format_change_text(change)}",
                url=change.url,
            )
        return Notification(
            title="PR Updates",
            body=f"{len(changes)} followed PRs have updates",
            subtitle=", ".join(f"#{change.number}" for change in changes),
        )
