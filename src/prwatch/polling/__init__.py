"""Polling scheduler and view refresh coordination."""

from .coordinator import VIEW_SWITCH_DEBOUNCE_SECONDS, ViewPollingCoordinator
from .host import HostSignals
from .scheduler import DEFAULT_POLL_TIMEOUT_SECONDS, PollScheduler
from .view_state import ViewSnapshot, ViewStateRegistry

__all__ = [
    "PollScheduler",
    "ViewPollingCoordinator",
    "HostSignals",
    "ViewSnapshot",
    "ViewStateRegistry",
    "DEFAULT_POLL_TIMEOUT_SECONDS",
    "VIEW_SWITCH_DEBOUNCE_SECONDS",
]
