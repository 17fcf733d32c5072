"""Notification sinks.

A sink delivers a :class:`~prwatch.models.Notification` to the user and
raises :class:`~prwatch.exceptions.NotificationDeliveryError` when it
can't, so the manager can fall back to an in-app rendering.
"""

import asyncio
import logging
import shutil
import sys
from typing import Protocol

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from prwatch.exceptions import NotificationDeliveryError
from prwatch.models import Notification

logger = logging.getLogger(__name__)

MAX_NOTIFICATION_BODY_LENGTH = 200
APP_NAME = "prwatch"


class NotificationSink(Protocol):
    async def send(self, notification: Notification) -> None: ...


def _truncate(text: str, limit: int = MAX_NOTIFICATION_BODY_LENGTH) -> str:
    return text if len(text) <= limit else text[: limit - 1] + "…"


def _applescript_quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


class DesktopNotificationSink:
    """Sends native desktop notifications.

    Uses ``notify-send`` on Linux and ``osascript`` on macOS. Any other
    platform, a missing binary, a non-zero exit or a hung notifier raises
    ``NotificationDeliveryError``.
    """

    def __init__(self, platform: str | None = None, timeout: float = 5.0) -> None:
        self.platform = platform or sys.platform
        self.timeout = timeout

    def build_command(self, notification: Notification) -> list[str]:
        """Build the platform command line for ``notification``.

        Raises:
            NotificationDeliveryError: If the platform channel is unavailable
        """
        body = _truncate(notification.body)

        if self.platform.startswith("linux"):
            binary = shutil.which("notify-send")
            if binary is None:
                raise NotificationDeliveryError("notify-send not found")
            summary = notification.title
            if notification.subtitle:
                body = f"{notification.subtitle}\n{body}"
            return [binary, "--app-name", APP_NAME, summary, body]

        if self.platform == "darwin":
            binary = shutil.which("osascript")
            if binary is None:
                raise NotificationDeliveryError("osascript not found")
            script = (
                f"display notification {_applescript_quote(body)} "
                f"with title {_applescript_quote(notification.title)}"
            )
            if notification.subtitle:
                script += f" subtitle {_applescript_quote(notification.subtitle)}"
            return [binary, "-e", script]

        raise NotificationDeliveryError(f"Desktop notifications unsupported on {self.platform}")

    async def send(self, notification: Notification) -> None:
        command = self.build_command(notification)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise NotificationDeliveryError(f"Failed to run {command[0]}: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), self.timeout)
        except asyncio.TimeoutError as e:
            # Reap the hung notifier so it doesn't outlive the delivery attempt
            if process.returncode is None:
                process.kill()
            await process.wait()
            raise NotificationDeliveryError(
                f"{command[0]} timed out after {self.timeout}s"
            ) from e

        if process.returncode != 0:
            message = stderr.decode(errors="replace").strip() if stderr else ""
            raise NotificationDeliveryError(
                f"{command[0]} exited with {process.returncode}: {message}"
            )


class ConsoleNotificationSink:
    """Renders notifications as rich panels. Used as the in-app fallback."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    def render(self, notification: Notification) -> None:
        lines = [f"[bold]{escape(notification.body)}[/bold]"]
        if notification.subtitle:
            lines.append(f"[dim]{escape(notification.subtitle)}[/dim]")
        if notification.url:
            lines.append(f"[blue]{escape(notification.url)}[/blue]")
        self.console.print(Panel("\n".join(lines), title=escape(notification.title), style="cyan"))

    async def send(self, notification: Notification) -> None:
        self.render(notification)
