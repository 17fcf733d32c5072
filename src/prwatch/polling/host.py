"""Host visibility/focus signals.

The scheduler reacts to the host application being hidden or focused. The
signals are injected so the same logic runs under a desktop shell, a
terminal watcher, or a headless test with fake signals.
"""

from prwatch.utils.observable import Observable


class HostSignals:
    """Two boolean host signals: ``hidden`` and ``focused``.

    Subscribers get ``(new, old)`` on every change; see
    :class:`~prwatch.utils.observable.Observable`.
    """

    def __init__(self, hidden: bool = False, focused: bool = True) -> None:
        self.hidden: Observable[bool] = Observable(hidden)
        self.focused: Observable[bool] = Observable(focused)

    def is_hidden(self) -> bool:
        return self.hidden.value

    def is_focused(self) -> bool:
        return self.focused.value

    def set_hidden(self, hidden: bool) -> None:
        self.hidden.set(hidden)

    def set_focused(self, focused: bool) -> None:
        self.focused.set(focused)

    def toggle_hidden(self) -> None:
        self.hidden.set(not self.hidden.value)
