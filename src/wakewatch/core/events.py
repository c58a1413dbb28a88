"""Network input events, terminal output events and the event bus."""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Union

logger = logging.getLogger(__name__)


# ── Network interface events (input) ──────────────────────────────────────────


@dataclass(frozen=True)
class InterfaceAttached:
    interface: str = ""


@dataclass(frozen=True)
class InterfaceLost:
    interface: str = ""


@dataclass(frozen=True)
class CapabilitiesChanged:
    has_wifi_transport: bool
    ipv4_addresses: tuple[str, ...] = ()
    interface: str = ""


NetworkEvent = Union[InterfaceAttached, InterfaceLost, CapabilitiesChanged]


# ── Terminal events (output) ──────────────────────────────────────────────────


class WakeResult(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    WIFI_DISCONNECTED = "wifi_disconnected"
    SUBNET_MISMATCH = "subnet_mismatch"


@dataclass(frozen=True)
class WakeOutcome:
    result: WakeResult
    host: str
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class DeviceAvailabilityChanged:
    is_available: bool
    host: str
    attempts: int = 0
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Event = Union[WakeOutcome, DeviceAvailabilityChanged]


class EventBus:
    """
    Fan-out of terminal events to subscribers.

    Keeps the most recent ``history`` events so late readers (the API) can
    show what happened while they were not listening.
    """

    def __init__(self, history: int = 50) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[Callable[[Event], None]] = []
        self._recent: deque[Event] = deque(maxlen=history)

    def subscribe(self, callback: Callable[[Event], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def emit(self, event: Event) -> None:
        with self._lock:
            self._recent.append(event)
            subscribers = list(self._subscribers)
        logger.info("Event: %s", event)
        for callback in subscribers:
            try:
                callback(event)
            except Exception as exc:
                logger.error("Event subscriber raised: %s", exc)

    def recent(self) -> list[Event]:
        with self._lock:
            return list(self._recent)
