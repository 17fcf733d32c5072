"""Persistence, seen-state tracking and the notification inbox."""

from .inbox import InboxEntry, NotificationInboxStore
from .persistence import MemoryKeyValueStore, PersistenceStore, SqliteKeyValueStore
from .seen import MAX_ENTRIES, SeenEntry, SeenStateStore

__all__ = [
    "PersistenceStore",
    "SqliteKeyValueStore",
    "MemoryKeyValueStore",
    "SeenStateStore",
    "SeenEntry",
    "MAX_ENTRIES",
    "NotificationInboxStore",
    "InboxEntry",
]
