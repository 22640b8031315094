"""
Thread-safe observable value.

Holds the latest value and notifies subscribers on change; used for the
"in progress" flags of the task managers and the coordinator's snapshot.
"""

import logging
import threading
from typing import Callable, Generic, List, TypeVar

T = TypeVar('T')

logger = logging.getLogger(__name__)


class Observable(Generic[T]):
    """
    Last-value holder with change listeners.

    Listeners run synchronously on the thread that calls set(), outside
    the internal lock. A failing listener is logged and does not stop
    the others.
    """

    def __init__(self, initial: T, notify_unchanged: bool = False):
        self._value = initial
        self._notify_unchanged = notify_unchanged
        self._listeners: List[Callable[[T], None]] = []
        self._lock = threading.Lock()

    @property
    def value(self) -> T:
        with self._lock:
            return self._value

    def set(self, value: T) -> None:
        with self._lock:
            changed = value is not self._value and value != self._value
            self._value = value
            listeners = list(self._listeners)

        if not (changed or self._notify_unchanged):
            return

        for listener in listeners:
            try:
                listener(value)
            except Exception as e:
                logger.warning(f"Observable listener failed: {e}", exc_info=True)

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        """
        Register a change listener.

        Returns:
            Callable that removes the listener again
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def __bool__(self) -> bool:
        return bool(self.value)
