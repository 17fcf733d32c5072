"""Minimal observable value holder.

A value plus a list of change callbacks. Used for config flags, host
visibility/focus signals, the active view id and the followed-item count,
so components can watch a value instead of polling it.
"""

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T, T], None]


class Observable(Generic[T]):
    """Holds a value and notifies subscribers when it changes.

    Listeners receive ``(new, old)`` and are only called when the value
    actually changes.
    """

    def __init__(self, value: T) -> None:
        self._value = value
        self._listeners: list[Listener[T]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Update the value and notify listeners if it changed."""
        old = self._value
        if value == old:
            return
        self._value = value
        for listener in list(self._listeners):
            try:
                listener(value, old)
            except Exception:
                logger.exception("Observable listener failed")

    def subscribe(self, listener: Listener[T]) -> Callable[[], None]:
        """Register a change listener.

        Returns:
            Callable that removes the listener. Safe to call more than once.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def __repr__(self) -> str:
        return f"Observable({self._value!r})"
