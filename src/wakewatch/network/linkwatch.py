"""
Network interface observation for the Wi-Fi link.

The watcher polls one interface and turns what it sees into the three
network events the connectivity state machine understands:

    InterfaceAttached      the interface appeared or came up
    CapabilitiesChanged    transport type or IPv4 addresses changed
    InterfaceLost          the interface went down or disappeared

Polling runs as an APScheduler interval job that exists only while at least
one subscription is open.
"""

import json
import logging
import subprocess
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.interval import IntervalTrigger

from wakewatch.core.events import (
    CapabilitiesChanged,
    InterfaceAttached,
    InterfaceLost,
    NetworkEvent,
)

logger = logging.getLogger(__name__)

_SYS_NET = Path("/sys/class/net")


@dataclass(frozen=True)
class LinkSnapshot:
    """What an interface looked like at one poll."""

    interface: str
    is_up: bool
    is_wireless: bool
    ipv4_addresses: tuple[str, ...] = ()


LinkReader = Callable[[str], Optional[LinkSnapshot]]


def read_link(interface: str) -> Optional[LinkSnapshot]:
    """
    Read the state of ``interface`` with ``ip -j -4 addr show``.

    Args:
        interface: Interface name, e.g. ``wlan0``

    Returns:
        LinkSnapshot, or None if the interface does not exist or ``ip`` is unavailable
    """
    try:
        result = subprocess.run(
            ["ip", "-j", "-4", "addr", "show", "dev", interface],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except FileNotFoundError:
        logger.error("'ip' command not found, cannot watch %s", interface)
        return None
    except subprocess.TimeoutExpired:
        logger.warning("'ip addr show %s' timed out", interface)
        return None

    if result.returncode != 0:
        logger.debug("ip addr show %s failed: %s", interface, result.stderr.strip())
        return None

    try:
        entries = json.loads(result.stdout or "[]")
    except json.JSONDecodeError as exc:
        logger.warning("Unparseable output from ip for %s: %s", interface, exc)
        return None
    if not entries:
        return None

    entry = entries[0]
    flags = entry.get("flags", [])
    is_up = entry.get("operstate") == "UP" or "LOWER_UP" in flags
    addresses = tuple(
        info["local"]
        for info in entry.get("addr_info", [])
        if info.get("family") == "inet" and info.get("local")
    )
    return LinkSnapshot(
        interface=interface,
        is_up=is_up,
        is_wireless=is_wireless(interface),
        ipv4_addresses=addresses,
    )


def is_wireless(interface: str) -> bool:
    """True if the kernel exposes wireless extensions or a phy for ``interface``."""
    base = _SYS_NET / interface
    return (base / "wireless").exists() or (base / "phy80211").exists()


def diff_events(
    previous: Optional[LinkSnapshot], current: Optional[LinkSnapshot]
) -> list[NetworkEvent]:
    """Events that take the link from ``previous`` to ``current``."""
    if current is None or not current.is_up:
        if previous is not None and previous.is_up:
            return [InterfaceLost(interface=previous.interface)]
        return []

    caps = CapabilitiesChanged(
        has_wifi_transport=current.is_wireless,
        ipv4_addresses=current.ipv4_addresses,
        interface=current.interface,
    )
    if previous is None or not previous.is_up:
        return [InterfaceAttached(interface=current.interface), caps]
    if (previous.is_wireless, previous.ipv4_addresses) != (
        current.is_wireless,
        current.ipv4_addresses,
    ):
        return [caps]
    return []


class Subscription:
    """Handle returned by :meth:`LinkWatcher.subscribe`; ``close()`` detaches it."""

    def __init__(self, watcher: "LinkWatcher", callback: Callable[[NetworkEvent], None]) -> None:
        self._watcher = watcher
        self._callback = callback
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._watcher._unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class LinkWatcher:
    """
    Polls a network interface and publishes link events to subscribers.

    Usage::

        watcher = LinkWatcher("wlan0", scheduler)
        sub = watcher.subscribe(state_machine.handle)
        ...
        sub.close()
    """

    def __init__(
        self,
        interface: str,
        scheduler: BaseScheduler,
        poll_interval: float = 2.0,
        reader: LinkReader = read_link,
    ) -> None:
        self.interface = interface
        self._scheduler = scheduler
        self._poll_interval = poll_interval
        self._reader = reader
        self._lock = threading.Lock()
        self._poll_lock = threading.Lock()
        self._subscriptions: list[Subscription] = []
        self._last: Optional[LinkSnapshot] = None
        self._polled_once = False

    @property
    def job_id(self) -> str:
        return f"link-watch:{self.interface}"

    def subscribe(self, callback: Callable[[NetworkEvent], None]) -> Subscription:
        sub = Subscription(self, callback)
        with self._lock:
            self._subscriptions.append(sub)
            first = len(self._subscriptions) == 1
        if first:
            self._scheduler.add_job(
                func=self.poll,
                trigger=IntervalTrigger(seconds=self._poll_interval),
                next_run_time=datetime.now(timezone.utc),
                id=self.job_id,
                name=self.job_id,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            logger.info("Watching %s every %.1fs", self.interface, self._poll_interval)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)
            last = not self._subscriptions
        if last:
            try:
                self._scheduler.remove_job(self.job_id)
            except JobLookupError:
                pass
            logger.info("Stopped watching %s", self.interface)

    def poll(self) -> list[NetworkEvent]:
        """
        Read the interface once and publish any resulting events.

        Polls are serialized, so events from one poll are delivered before
        the next poll reads the interface.
        """
        with self._poll_lock:
            current = self._reader(self.interface)
            previous = self._last
            self._last = current
            events = diff_events(previous, current)
            if not self._polled_once:
                self._polled_once = True
                if not events:
                    # First look at a missing or down interface.
                    events = [InterfaceLost(interface=self.interface)]
            with self._lock:
                subscriptions = list(self._subscriptions)

            for event in events:
                logger.debug("Link event on %s: %s", self.interface, event)
                for sub in subscriptions:
                    try:
                        sub._callback(event)
                    except Exception as exc:
                        logger.error("Link event subscriber raised: %s", exc)
            return events
