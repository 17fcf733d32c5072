"""prwatch watcher process.

This module provides:
- A foreground watch server that keeps views fresh and sends notifications
- PID-file based status checks for the CLI

Architecture:
    ┌─────────────────────────────────────────────┐
    │                 Watch Server                │
    │  ┌──────────────┐  ┌──────────────────────┐ │
    │  │ Coordinator  │  │  Notification        │ │
    │  │ + Scheduler  │──▶  Manager + Sinks     │ │
    │  └──────────────┘  └──────────────────────┘ │
    │           │                                 │
    │           ▼                                 │
    │  ┌──────────────┐  ┌──────────────────────┐ │
    │  │ Data Source  │  │  SQLite KV store     │ │
    │  │  (GitHub)    │  │ (seen/follow/inbox)  │ │
    │  └──────────────┘  └──────────────────────┘ │
    └─────────────────────────────────────────────┘
"""

from .server import (
    WatchInfo,
    WatchServer,
    get_watch_status,
    render_inbox,
    render_view,
    run_watch,
)

__all__ = [
    "WatchServer",
    "WatchInfo",
    "get_watch_status",
    "render_view",
    "render_inbox",
    "run_watch",
]
