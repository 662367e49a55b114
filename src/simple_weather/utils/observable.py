import logging
from typing import Any, Callable, List

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class Observable:
    """Minimal publish/subscribe helper for state holders.

    Subclasses call `_publish()` after changing observable attributes;
    every subscriber is then called with the instance. A failing subscriber
    is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener` and return a function that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _publish(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.exception(f"State listener failed: {e}")
