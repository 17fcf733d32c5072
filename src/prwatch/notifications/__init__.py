"""Change detection and notification delivery."""

from .manager import (
    ActivitySnapshot,
    DetectorState,
    ItemActivity,
    NotificationChanges,
    NotificationConfig,
    NotificationManager,
)
from .sinks import ConsoleNotificationSink, DesktopNotificationSink, NotificationSink

__all__ = [
    "NotificationManager",
    "NotificationConfig",
    "NotificationChanges",
    "ItemActivity",
    "ActivitySnapshot",
    "DetectorState",
    # Sinks
    "NotificationSink",
    "DesktopNotificationSink",
    "ConsoleNotificationSink",
]
