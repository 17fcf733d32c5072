"""Tracks which items the user has already seen.

Backed by a single JSON document in a :class:`PersistenceStore`, loaded
once at construction. Mutations are coalesced and written after a quiet
period. Old entries are pruned at most once a day.
"""

import asyncio
import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from prwatch.models import PullRequest

from .persistence import PersistenceStore

logger = logging.getLogger(__name__)

STORAGE_KEY = "prwatch-seen-items"
MAX_ENTRIES = 1000
PRUNE_AGE = timedelta(days=30)
PRUNE_INTERVAL = timedelta(hours=24)
SAVE_DEBOUNCE_SECONDS = 1.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SeenEntry:
    item_id: str
    seen_at: datetime
    view_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "seen_at": self.seen_at.isoformat(),
            "view_id": self.view_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SeenEntry":
        return cls(
            item_id=data["item_id"],
            seen_at=datetime.fromisoformat(data["seen_at"]),
            view_id=data.get("view_id"),
        )


class SeenStateStore:
    """Persisted item id -> :class:`SeenEntry` map with pruning."""

    def __init__(
        self,
        store: PersistenceStore,
        *,
        max_entries: int = MAX_ENTRIES,
        save_debounce: float = SAVE_DEBOUNCE_SECONDS,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self.max_entries = max_entries
        self.save_debounce = save_debounce
        self._now = now
        self._save_timer: asyncio.TimerHandle | None = None
        self._entries: dict[str, SeenEntry] = {}
        self.last_pruned_at: datetime = now()

        self._load()
        self._maybe_prune()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def count(self) -> int:
        return len(self._entries)

    def mark_seen(self, item_id: str, view_id: str | None = None) -> None:
        self._entries[item_id] = SeenEntry(item_id=item_id, seen_at=self._now(), view_id=view_id)
        self._schedule_save()

    def mark_unseen(self, item_id: str) -> None:
        if self._entries.pop(item_id, None) is not None:
            self._schedule_save()

    def is_seen(self, item_id: str) -> bool:
        return item_id in self._entries

    def seen_info(self, item_id: str) -> SeenEntry | None:
        return self._entries.get(item_id)

    def mark_all_seen(self, items: Iterable[PullRequest], view_id: str | None = None) -> None:
        now = self._now()
        for item in items:
            self._entries[item.id] = SeenEntry(item_id=item.id, seen_at=now, view_id=view_id)
        self._schedule_save()

    def unseen_items(self, items: Iterable[PullRequest]) -> list[PullRequest]:
        return [item for item in items if item.id not in self._entries]

    def unseen_count(self, items: Iterable[PullRequest]) -> int:
        return len(self.unseen_items(items))

    def clear(self) -> None:
        """Forget everything (logout or reset)."""
        self._entries.clear()
        self.last_pruned_at = self._now()
        self._schedule_save()

    def flush(self) -> None:
        """Write pending changes now."""
        self._cancel_save()
        self._maybe_prune()
        self._save()

    def close(self) -> None:
        """Flush if a write is still pending."""
        if self._save_timer is not None:
            self.flush()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> None:
        raw = self._store.get(STORAGE_KEY)
        if not raw:
            return
        try:
            data = json.loads(raw)
            self._entries = {
                item_id: SeenEntry.from_dict(entry)
                for item_id, entry in data.get("seen", {}).items()
            }
            if data.get("last_pruned"):
                self.last_pruned_at = datetime.fromisoformat(data["last_pruned"])
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Error loading seen state, starting empty: {e}")
            self._entries = {}

    def _serialize(self) -> str:
        return json.dumps(
            {
                "seen": {item_id: entry.to_dict() for item_id, entry in self._entries.items()},
                "last_pruned": self.last_pruned_at.isoformat(),
            }
        )

    def _save(self) -> None:
        try:
            if not self._store.set(STORAGE_KEY, self._serialize()):
                logger.warning("Seen state was not persisted")
        except Exception as e:
            logger.error(f"Error saving seen state: {e}")

    def _schedule_save(self) -> None:
        self._cancel_save()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop to debounce on; write through
            self.flush()
            return
        self._save_timer = loop.call_later(self.save_debounce, self.flush)

    def _cancel_save(self) -> None:
        if self._save_timer is not None:
            self._save_timer.cancel()
            self._save_timer = None

    # ------------------------------------------------------------------
    # Pruning
    # ------------------------------------------------------------------

    def _maybe_prune(self) -> None:
        if self._now() - self.last_pruned_at > PRUNE_INTERVAL:
            self.prune()
            self._save()

    def prune(self) -> int:
        """Drop entries older than 30 days, then the oldest beyond the cap.

        Returns:
            Number of entries removed
        """
        now = self._now()
        cutoff = now - PRUNE_AGE
        pruned = 0

        for item_id in [i for i, entry in self._entries.items() if entry.seen_at < cutoff]:
            del self._entries[item_id]
            pruned += 1

        overflow = len(self._entries) - self.max_entries
        if overflow > 0:
            oldest = sorted(self._entries.values(), key=lambda entry: entry.seen_at)[:overflow]
            for entry in oldest:
                del self._entries[entry.item_id]
            pruned += len(oldest)

        if pruned:
            logger.info(f"Pruned {pruned} old seen entries")

        self.last_pruned_at = now
        return pruned
