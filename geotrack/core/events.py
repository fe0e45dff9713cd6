"""
In-process Publish/Subscribe

Typed channels connecting acquisition, wake cycles and upload:

- EventStream: fire-and-forget events (every fix, every error), no replay.
- StateCell: an observable value; subscribers get the current value on
  subscribe and every subsequent change. Setting an equal value is a no-op.

Callbacks run on the publishing thread. A failing callback is logged and
never affects the publisher or other subscribers.
"""

import threading
from typing import Callable, Generic, List, Optional, TypeVar
from loguru import logger

T = TypeVar("T")


class Subscription:
    """Handle returned by subscribe(); cancel() detaches the callback"""

    def __init__(self, detach: Callable[[], None]):
        self._detach = detach
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Detach the callback. Safe to call more than once."""
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._detach()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cancel()


class EventStream(Generic[T]):
    """A channel of events delivered in publish order"""

    def __init__(self, name: str = "events"):
        self.name = name
        self._callbacks: List[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[T], None]) -> Subscription:
        """Register a callback for future events"""
        with self._lock:
            self._callbacks.append(callback)
        return Subscription(lambda: self._remove(callback))

    def _remove(self, callback: Callable[[T], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def publish(self, event: T) -> None:
        """Deliver an event to all current subscribers"""
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"{self.name} subscriber error: {e}")

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._callbacks)


class StateCell(Generic[T]):
    """An observable value holder"""

    def __init__(self, initial: T, name: str = "state"):
        self.name = name
        self._value = initial
        self._lock = threading.Lock()
        self._stream: EventStream[T] = EventStream(name)

    @property
    def value(self) -> T:
        with self._lock:
            return self._value

    def get(self) -> T:
        return self.value

    def set(self, value: T) -> bool:
        """
        Update the value.

        Returns:
            True if the value changed and subscribers were notified
        """
        with self._lock:
            if self._value == value:
                return False
            self._value = value
        self._stream.publish(value)
        return True

    def subscribe(self, callback: Callable[[T], None], replay: bool = True) -> Subscription:
        """
        Observe the cell.

        Args:
            callback: Called with each new value
            replay: Also call it immediately with the current value
        """
        subscription = self._stream.subscribe(callback)
        if replay:
            current = self.value
            try:
                callback(current)
            except Exception as e:
                logger.error(f"{self.name} subscriber error: {e}")
        return subscription

    def __repr__(self) -> str:
        return f"StateCell({self.name}={self.value!r})"


def first_value(cell: StateCell[T], predicate: Callable[[T], bool],
                timeout: Optional[float] = None) -> Optional[T]:
    """
    Block until the cell holds a value matching predicate.

    Returns:
        The matching value, or None on timeout
    """
    found = threading.Event()
    holder: List[T] = []

    def check(value: T) -> None:
        if not found.is_set() and predicate(value):
            holder.append(value)
            found.set()

    with cell.subscribe(check):
        found.wait(timeout)
    return holder[0] if holder else None
