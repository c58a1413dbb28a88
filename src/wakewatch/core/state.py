"""Observable Wi-Fi and device state."""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, TypeVar

from wakewatch.core.netmath import SENTINEL_ADDRESS

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T, T], None]


class ConnectionState(Enum):
    UNKNOWN = "unknown"
    PENDING = "pending"
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


@dataclass(frozen=True)
class WifiState:
    """Wi-Fi link of this machine."""

    connection_state: ConnectionState = ConnectionState.UNKNOWN
    local_address: str = SENTINEL_ADDRESS
    broadcast_address: str = SENTINEL_ADDRESS
    subnet_mask: str = SENTINEL_ADDRESS


@dataclass(frozen=True)
class DeviceState:
    """Reachability of the machine to wake."""

    connection_state: ConnectionState = ConnectionState.UNKNOWN
    address: str = SENTINEL_ADDRESS
    mac_address: str = "00:00:00:00:00:00"


class ReadOnlyCell(Generic[T]):
    """Read side of a :class:`StateCell`; holders can observe but never write."""

    def __init__(self, cell: "StateCell[T]") -> None:
        self._cell = cell

    @property
    def value(self) -> T:
        return self._cell.value

    def subscribe(self, listener: Listener[T]) -> Callable[[], None]:
        return self._cell.subscribe(listener)


class StateCell(Generic[T]):
    """
    Single-owner value cell with change notification.

    Writes are serialized by a lock. Listeners are called with ``(old, new)``
    after the new value is committed, in commit order, and only when the
    value actually changed.
    """

    def __init__(self, initial: T, name: str = "") -> None:
        self._value = initial
        self._name = name or type(initial).__name__
        self._lock = threading.RLock()
        self._listeners: list[Listener[T]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> T:
        return self.update(lambda _: value)

    def update(self, fn: Callable[[T], T]) -> T:
        """Apply ``fn`` to the current value and commit the result."""
        with self._lock:
            old = self._value
            new = fn(old)
            if new == old:
                return old
            self._value = new
            logger.debug("%s: %s -> %s", self._name, old, new)
            for listener in list(self._listeners):
                try:
                    listener(old, new)
                except Exception as exc:
                    logger.error("%s listener raised: %s", self._name, exc)
            return new

    def subscribe(self, listener: Listener[T]) -> Callable[[], None]:
        """
        Register ``listener``; returns a callable that unregisters it.
        """
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def read_only(self) -> ReadOnlyCell[T]:
        return ReadOnlyCell(self)
