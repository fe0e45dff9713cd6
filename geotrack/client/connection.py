"""
Supervised Connection

Keeps a connection to a collaborator process alive: connects on bind(),
checks liveness periodically and reconnects with exponential backoff when
the handle dies or the connect attempt fails. Observers watch the
connected/disconnected state instead of rebinding by hand.
"""

from enum import Enum
from typing import Callable, Generic, Optional, TypeVar
import threading

from loguru import logger

from ..core.errors import ServiceUnavailable
from ..core.events import EventStream, StateCell

T = TypeVar("T")


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class SupervisedConnection(Generic[T]):
    """
    Supervises a handle produced by a connect() factory.

    The supervisor thread runs check() in a loop; check() performs one
    supervision step and returns how long to wait before the next one.
    """

    def __init__(
        self,
        connect: Callable[[], T],
        is_alive: Optional[Callable[[T], bool]] = None,
        disconnect: Optional[Callable[[T], None]] = None,
        check_interval: float = 5.0,
        initial_backoff: float = 1.0,
        max_backoff: float = 30.0,
        name: str = "connection",
    ):
        """
        Args:
            connect: Factory returning a live handle, raising on failure
            is_alive: Liveness check for a handle (always alive if not specified)
            disconnect: Release a handle
            check_interval: Seconds between liveness checks
            initial_backoff: First reconnect delay in seconds
            max_backoff: Upper bound for the reconnect delay
            name: Name used in logs
        """
        self._connect = connect
        self._is_alive = is_alive or (lambda handle: True)
        self._disconnect = disconnect
        self.check_interval = check_interval
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.name = name

        self.state: StateCell[ConnectionState] = StateCell(ConnectionState.DISCONNECTED, name)
        self.errors: EventStream[ServiceUnavailable] = EventStream(f"{name}-errors")

        self._handle: Optional[T] = None
        self._backoff = initial_backoff
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.reconnects = 0

    @property
    def is_connected(self) -> bool:
        return self.state.value == ConnectionState.CONNECTED

    @property
    def is_bound(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def next_backoff(self) -> float:
        return self._backoff

    def get(self) -> T:
        """
        Get the live handle.

        Raises:
            ServiceUnavailable: If not connected
        """
        with self._lock:
            if self._handle is None:
                raise ServiceUnavailable(f"{self.name} is not connected")
            return self._handle

    def bind(self) -> None:
        """Start the supervisor thread"""
        with self._lock:
            if self.is_bound:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run, name=f"{self.name}-supervisor", daemon=True)
            self._thread.start()
        logger.info(f"Supervising {self.name}")

    def unbind(self, timeout: float = 5.0) -> None:
        """Stop supervising and disconnect"""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None
        with self._lock:
            self._drop()
        logger.info(f"Stopped supervising {self.name}")

    def check(self) -> float:
        """
        Run one supervision step.

        Returns:
            Seconds to wait before the next step
        """
        with self._lock:
            if self._handle is not None:
                try:
                    alive = self._is_alive(self._handle)
                except Exception as e:
                    logger.debug(f"{self.name} liveness check raised: {e}")
                    alive = False

                if alive:
                    return self.check_interval

                logger.warning(f"{self.name} liveness check failed, reconnecting")
                self._drop()
                self._report(f"{self.name} stopped responding")
                self.reconnects += 1

            try:
                handle = self._connect()
            except Exception as e:
                delay = self._backoff
                self._backoff = min(self._backoff * 2, self.max_backoff)
                logger.warning(f"{self.name} connect failed ({e}), retrying in {delay:.1f}s")
                self._report(f"{self.name} connect failed: {e}")
                return delay

            self._handle = handle
            self._backoff = self.initial_backoff

        self.state.set(ConnectionState.CONNECTED)
        logger.info(f"{self.name} connected")
        return self.check_interval

    def _run(self) -> None:
        while not self._stop_event.is_set():
            delay = self.check()
            self._stop_event.wait(delay)

    def _drop(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None and self._disconnect is not None:
            try:
                self._disconnect(handle)
            except Exception as e:
                logger.debug(f"Error disconnecting {self.name}: {e}")
        self.state.set(ConnectionState.DISCONNECTED)

    def _report(self, message: str) -> None:
        self.errors.publish(ServiceUnavailable(message))

    def __enter__(self):
        self.bind()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.unbind()
