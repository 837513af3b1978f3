"""
State-change notifications.

Components that hold UI-visible state derive from ``Observable``. Every
mutation is applied through ``_commit``, which performs the write under the
component's lock and only then notifies subscribers, so a subscriber always
sees fully updated state.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ccmanager.logging import get_logger

logger = get_logger()


@dataclass(frozen=True)
class StateEvent:
    """A change announced by an observable component."""

    source: str
    name: str
    payload: Any = None


Subscriber = Callable[[StateEvent], None]


class Observable:
    """Mixin providing subscription and serialized state commits."""

    event_source = "state"

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._state_lock = threading.RLock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for state events.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _commit(
        self,
        name: str,
        mutate: Callable[[], Any] | None = None,
        payload: Any = None,
    ) -> Any:
        """Apply ``mutate`` under the state lock, then notify subscribers."""
        with self._state_lock:
            result = mutate() if mutate is not None else None
        self._notify(StateEvent(self.event_source, name, payload))
        return result

    def _notify(self, event: StateEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber failed handling %s.%s", event.source, event.name)
