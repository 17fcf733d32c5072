"""Persisted inbox of follow-up notifications.

Backs the ``notifications`` view: every change detected on a followed
item is recorded here as an entry the user can read later. Newest entries
come first. The inbox keeps at most 100 entries and drops entries older
than seven days, pruning at most once a day. Writes are debounced like
the seen store's.
"""

import asyncio
import json
import logging
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from .persistence import PersistenceStore

logger = logging.getLogger(__name__)

STORAGE_KEY = "prwatch-notification-inbox"
MAX_INBOX_ENTRIES = 100
PRUNE_AGE = timedelta(days=7)
PRUNE_INTERVAL = timedelta(hours=24)
SAVE_DEBOUNCE_SECONDS = 0.5

KIND_NEW_COMMITS = "new_commits"
KIND_NEW_COMMENTS = "new_comments"
KIND_NEW_REVIEWS = "new_reviews"
KIND_CLOSED = "closed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class InboxEntry:
    id: str
    item_id: str
    number: int
    repository: str
    title: str
    url: str
    kind: str
    count: int
    created_at: datetime
    read: bool = False

    @property
    def text(self) -> str:
        if self.kind == KIND_CLOSED:
            return "Closed"
        noun = self.kind.removeprefix("new_").rstrip("s")
        return f"{self.count} new {noun}{'' if self.count == 1 else 's'}"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InboxEntry":
        data = dict(data)
        data["created_at"] = datetime.fromisoformat(data["created_at"])
        return cls(**data)


class NotificationInboxStore:
    """Newest-first list of :class:`InboxEntry` with read tracking."""

    def __init__(
        self,
        store: PersistenceStore,
        *,
        max_entries: int = MAX_INBOX_ENTRIES,
        save_debounce: float = SAVE_DEBOUNCE_SECONDS,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self.max_entries = max_entries
        self.save_debounce = save_debounce
        self._now = now
        self._save_timer: asyncio.TimerHandle | None = None
        self._entries: list[InboxEntry] = []
        self.last_pruned_at: datetime = now()

        self._load()
        if self._now() - self.last_pruned_at > PRUNE_INTERVAL:
            self.prune()
            self._save()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def entries(self) -> list[InboxEntry]:
        return list(self._entries)

    def unread(self) -> list[InboxEntry]:
        return [entry for entry in self._entries if not entry.read]

    @property
    def unread_count(self) -> int:
        return len(self.unread())

    def for_item(self, item_id: str) -> list[InboxEntry]:
        return [entry for entry in self._entries if entry.item_id == item_id]

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(
        self,
        *,
        item_id: str,
        number: int,
        repository: str,
        title: str,
        url: str,
        kind: str,
        count: int = 0,
    ) -> InboxEntry:
        """Record a new unread entry at the top of the inbox."""
        entry = InboxEntry(
            id=f"notif_{uuid.uuid4().hex[:12]}",
            item_id=item_id,
            number=number,
            repository=repository,
            title=title,
            url=url,
            kind=kind,
            count=count,
            created_at=self._now(),
        )
        self._entries.insert(0, entry)
        del self._entries[self.max_entries :]
        logger.debug(f"Inbox entry added: {entry.id} ({kind})")
        self._schedule_save()
        return entry

    def mark_read(self, entry_id: str) -> bool:
        for entry in self._entries:
            if entry.id == entry_id:
                entry.read = True
                self._schedule_save()
                return True
        return False

    def mark_all_read(self, item_id: str | None = None) -> int:
        """Mark every entry (or every entry for ``item_id``) as read."""
        marked = 0
        for entry in self._entries:
            if not entry.read and (item_id is None or entry.item_id == item_id):
                entry.read = True
                marked += 1
        if marked:
            self._schedule_save()
        return marked

    def delete(self, entry_id: str) -> bool:
        before = len(self._entries)
        self._entries = [entry for entry in self._entries if entry.id != entry_id]
        if len(self._entries) == before:
            return False
        self._schedule_save()
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._schedule_save()

    def flush(self) -> None:
        """Write pending changes now."""
        self._cancel_save()
        self._save()

    def close(self) -> None:
        if self._save_timer is not None:
            self.flush()

    def prune(self) -> int:
        """Drop entries older than seven days and any beyond the cap."""
        now = self._now()
        cutoff = now - PRUNE_AGE
        before = len(self._entries)
        kept = [entry for entry in self._entries if entry.created_at >= cutoff]
        kept.sort(key=lambda entry: entry.created_at, reverse=True)
        self._entries = kept[: self.max_entries]
        pruned = before - len(self._entries)
        if pruned:
            logger.info(f"Pruned {pruned} old inbox entries")
        self.last_pruned_at = now
        return pruned

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> None:
        raw = self._store.get(STORAGE_KEY)
        if not raw:
            return
        try:
            data = json.loads(raw)
            self._entries = [InboxEntry.from_dict(entry) for entry in data.get("notifications", [])]
            if data.get("last_pruned"):
                self.last_pruned_at = datetime.fromisoformat(data["last_pruned"])
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Error loading notification inbox, starting empty: {e}")
            self._entries = []

    def _save(self) -> None:
        payload = json.dumps(
            {
                "notifications": [entry.to_dict() for entry in self._entries],
                "last_pruned": self.last_pruned_at.isoformat(),
            }
        )
        try:
            if not self._store.set(STORAGE_KEY, payload):
                logger.warning("Notification inbox was not persisted")
        except Exception as e:
            logger.error(f"Error saving notification inbox: {e}")

    def _schedule_save(self) -> None:
        self._cancel_save()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return
        self._save_timer = loop.call_later(self.save_debounce, self.flush)

    def _cancel_save(self) -> None:
        if self._save_timer is not None:
            self._save_timer.cancel()
            self._save_timer = None
