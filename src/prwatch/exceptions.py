"""Exception hierarchy for prwatch.

Nothing in the polling core is fatal: these exist so callers can tell
timeouts, delivery problems and data source failures apart.
"""


class PrWatchError(Exception):
    """Base exception for prwatch errors."""

    pass


class PollTimeoutError(PrWatchError):
    """Raised when a poll task does not settle within its timeout."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Poll timed out after {timeout:g}s")
        self.timeout = timeout


class DataSourceError(PrWatchError):
    """Raised by a data source when a fetch fails."""

    pass


class NotificationDeliveryError(PrWatchError):
    """Raised when the platform notification channel is unavailable or fails."""

    pass


class PersistenceError(PrWatchError):
    """Raised when the persistence store cannot be read or written."""

    pass
