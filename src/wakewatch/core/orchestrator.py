"""Wake orchestration: preconditions, magic packet, follow-up monitoring."""

import logging
import threading
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any, Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

from wakewatch.config.loader import (
    DEVICE_IP_KEY,
    DEVICE_MAC_KEY,
    SUBNET_MASK_KEY,
    EngineSettings,
    load_config,
    settings_from_config,
    validate_config,
)
from wakewatch.config.store import PreferenceStore
from wakewatch.core.connectivity import ConnectivityStateMachine
from wakewatch.core.errors import ConfigError, InvalidFormat, SendFailure
from wakewatch.core.events import EventBus, WakeOutcome, WakeResult
from wakewatch.core.netmath import same_subnet
from wakewatch.core.probe import ProbeResult, Prober, probe
from wakewatch.core.state import ConnectionState, DeviceState, ReadOnlyCell, WifiState
from wakewatch.core.wol import send_wake_packet
from wakewatch.network.linkwatch import LinkWatcher, Subscription
from wakewatch.notifications.notify import Notifier
from wakewatch.scheduler.monitor import WakeAttempt, WakeMonitor

logger = logging.getLogger(__name__)

Sender = Callable[[str, str], None]

_PROBE_TO_STATE = {
    ProbeResult.REACHABLE: ConnectionState.CONNECTED,
    ProbeResult.UNREACHABLE: ConnectionState.DISCONNECTED,
    ProbeResult.ERROR: ConnectionState.UNKNOWN,
}


class WakeOrchestrator:
    """
    Ties the connectivity state machine, the wake monitor and the
    preferences together.

    Usage::

        engine = WakeOrchestrator(PreferenceStore(path), settings)
        engine.start()
        result = engine.wake_device()
        ...
        engine.stop()
    """

    def __init__(
        self,
        preferences: PreferenceStore,
        settings: Optional[EngineSettings] = None,
        scheduler: Optional[BaseScheduler] = None,
        prober: Optional[Prober] = None,
        sender: Sender = send_wake_packet,
        events: Optional[EventBus] = None,
        link_watcher: Optional[LinkWatcher] = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.preferences = preferences
        self.events = events or EventBus()
        self._scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self._prober: Prober = prober or partial(probe, port=self.settings.probe_port)
        self._sender = sender
        self._foreground = False
        self._check_lock = threading.Lock()
        self._check_token = 0

        self.machine = ConnectivityStateMachine(
            device_address=preferences.get(DEVICE_IP_KEY),
            device_mac=preferences.get(DEVICE_MAC_KEY),
            subnet_mask=preferences.get(SUBNET_MASK_KEY),
            on_connected=self.check_device_connectivity,
        )
        self.monitor = WakeMonitor(
            self._scheduler,
            prober=self._prober,
            on_terminal=self._on_monitor_terminal,
            is_foreground=self.is_foreground,
            events=self.events,
        )
        self._link_watcher = link_watcher
        self._link_sub: Optional[Subscription] = None
        self._unsubscribe_prefs = preferences.subscribe(self._on_preference)

    @classmethod
    def from_config(cls, config_path: Path, **kwargs: Any) -> "WakeOrchestrator":
        """
        Build an orchestrator from a YAML config file.

        A missing file yields defaults; preferences set later are written to it.
        Configured notification channels are attached to the event bus.

        Raises:
            ConfigError: If the file fails validation
        """
        raw = load_config(config_path) if config_path.exists() else None
        if raw:
            errors = validate_config(raw)
            if errors:
                raise ConfigError("; ".join(errors))
        settings = settings_from_config(raw)
        engine = cls(PreferenceStore(config_path), settings, **kwargs)
        if settings.notifications:
            Notifier(settings.notifications).attach(engine.events)
        return engine

    # ── Observable state ──────────────────────────────────────────────────────

    @property
    def wifi(self) -> ReadOnlyCell[WifiState]:
        return self.machine.wifi

    @property
    def device(self) -> ReadOnlyCell[DeviceState]:
        return self.machine.device

    @property
    def scheduler(self) -> BaseScheduler:
        return self._scheduler

    def set_foreground(self, is_foreground: bool) -> None:
        """Record whether a user is looking; suppresses availability events while True."""
        self._foreground = is_foreground

    def is_foreground(self) -> bool:
        return self._foreground

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the scheduler, the link watcher and the preference reload job."""
        if self._link_watcher is None:
            self._link_watcher = LinkWatcher(
                self.settings.interface,
                self._scheduler,
                poll_interval=self.settings.link_poll_interval,
            )
        if self._link_sub is None:
            self._link_sub = self._link_watcher.subscribe(self.machine.handle)
        if self.preferences.path is not None:
            self._scheduler.add_job(
                func=self.preferences.reload,
                trigger="interval",
                seconds=self.settings.preferences_poll_interval,
                id="preferences-reload",
                name="preferences-reload",
                replace_existing=True,
                coalesce=True,
            )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info("wakewatch started on %s", self.settings.interface)

    def stop(self, wait: bool = False) -> None:
        if self._link_sub is not None:
            self._link_sub.close()
            self._link_sub = None
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
        logger.info("wakewatch stopped")

    def sync_link(self) -> None:
        """Poll the watched interface now, on the calling thread."""
        if self._link_watcher is not None:
            self._link_watcher.poll()

    # ── Operations ────────────────────────────────────────────────────────────

    def check_device_connectivity(self) -> bool:
        """
        Probe the device once in the background if Wi-Fi is up and the device
        is on the local subnet.

        The device goes to PENDING until the probe finishes, then to
        CONNECTED, DISCONNECTED, or UNKNOWN if the probe itself failed.
        Without the preconditions the device is set to UNKNOWN and nothing
        is probed.

        Returns:
            True if a probe was scheduled or a wake monitor is already probing
        """
        wifi = self.wifi.value
        device = self.device.value
        if not self._preconditions_met(wifi, device):
            logger.debug("Connectivity check skipped: Wi-Fi down or device on another subnet")
            self.machine.set_device_state(ConnectionState.UNKNOWN)
            return False

        if self.monitor.outstanding(device.address):
            logger.debug("Connectivity check skipped: wake monitor running for %s", device.address)
            self.machine.set_device_state(ConnectionState.PENDING)
            return True

        with self._check_lock:
            self._check_token += 1
            token = self._check_token
        self.machine.set_device_state(ConnectionState.PENDING)
        self._scheduler.add_job(
            func=self._run_check,
            trigger="date",
            run_date=datetime.now(timezone.utc),
            args=[token, device.address],
            id=f"device-check:{token}",
            name="device-check",
            misfire_grace_time=60,
        )
        logger.info("Checking whether %s is reachable", device.address)
        return True

    def wake_device(self) -> WakeResult:
        """
        Wake the configured device and start watching for it to come up.

        Returns:
            WIFI_DISCONNECTED or SUBNET_MISMATCH if a precondition failed,
            FAILURE if the packet could not be sent, otherwise SUCCESS
        """
        wifi = self.wifi.value
        device = self.device.value

        if wifi.connection_state != ConnectionState.CONNECTED:
            logger.info("Not waking %s: Wi-Fi not connected", device.address)
            return self._report(WakeResult.WIFI_DISCONNECTED, device.address)

        if not self._in_subnet(wifi, device):
            logger.info(
                "Not waking %s: not in subnet of %s/%s",
                device.address,
                wifi.local_address,
                wifi.subnet_mask,
            )
            return self._report(WakeResult.SUBNET_MISMATCH, device.address)

        try:
            self._sender(device.mac_address, wifi.broadcast_address)
        except (SendFailure, InvalidFormat) as exc:
            logger.warning("Wake of %s failed: %s", device.address, exc)
            return self._report(WakeResult.FAILURE, device.address)

        result = self._report(WakeResult.SUCCESS, device.address)
        with self._check_lock:
            # In-flight one-shot checks are stale once the monitor owns the device.
            self._check_token += 1
        self.machine.set_device_state(ConnectionState.PENDING)
        self.monitor.start(
            device.address,
            device.mac_address,
            max_attempts=self.settings.monitor_max_attempts,
            probe_timeout_ms=self.settings.monitor_probe_timeout_ms,
            backoff_seconds=self.settings.monitor_backoff_seconds,
            initial_delay=self.settings.monitor_initial_delay,
        )
        return result

    def wait_until_settled(self, timeout: float) -> DeviceState:
        """
        Block until the device leaves PENDING or ``timeout`` seconds pass.

        Returns:
            The device state at return time
        """
        settled = threading.Event()

        def _listener(old: DeviceState, new: DeviceState) -> None:
            if new.connection_state != ConnectionState.PENDING:
                settled.set()

        unsubscribe = self.device.subscribe(_listener)
        try:
            if self.device.value.connection_state != ConnectionState.PENDING:
                return self.device.value
            settled.wait(timeout)
            return self.device.value
        finally:
            unsubscribe()

    def status(self) -> dict[str, Any]:
        wifi = self.wifi.value
        device = self.device.value
        attempt = self.monitor.attempt(device.address)
        return {
            "wifi": {
                "state": wifi.connection_state.value,
                "address": wifi.local_address,
                "broadcast_address": wifi.broadcast_address,
                "subnet_mask": wifi.subnet_mask,
            },
            "device": {
                "state": device.connection_state.value,
                "address": device.address,
                "mac_address": device.mac_address,
            },
            "monitor": _attempt_dict(attempt),
            "foreground": self._foreground,
        }

    # ── Internals ─────────────────────────────────────────────────────────────

    def _run_check(self, token: int, address: str) -> None:
        result = self._prober(address, self.settings.probe_timeout_ms)
        with self._check_lock:
            if token != self._check_token or self.device.value.address != address:
                logger.debug("Discarding stale connectivity check for %s", address)
                return
            if self.monitor.outstanding(address):
                return
            state = _PROBE_TO_STATE[result]
            if result == ProbeResult.ERROR:
                logger.warning("Connectivity check of %s failed", address)
            else:
                logger.info("%s is %s", address, result.value)
            self.machine.set_device_state(state, require_wifi=True)

    def _on_monitor_terminal(self, attempt: WakeAttempt, succeeded: bool) -> None:
        if attempt.target_host != self.device.value.address:
            return
        state = ConnectionState.CONNECTED if succeeded else ConnectionState.DISCONNECTED
        self.machine.set_device_state(state, require_wifi=True)

    def _on_preference(self, key: str, value: str) -> None:
        if key == DEVICE_IP_KEY:
            old = self.device.value.address
            self.monitor.cancel(old)
            self.machine.set_device_address(value)
            if self.wifi.value.connection_state == ConnectionState.CONNECTED:
                self.check_device_connectivity()
        elif key == DEVICE_MAC_KEY:
            self.machine.set_device_mac(value)
        elif key == SUBNET_MASK_KEY:
            self.machine.set_subnet_mask(value)

    def _in_subnet(self, wifi: WifiState, device: DeviceState) -> bool:
        try:
            return same_subnet(wifi.local_address, device.address, wifi.subnet_mask)
        except InvalidFormat as exc:
            logger.warning("Subnet check failed: %s", exc)
            return False

    def _preconditions_met(self, wifi: WifiState, device: DeviceState) -> bool:
        return wifi.connection_state == ConnectionState.CONNECTED and self._in_subnet(wifi, device)

    def _report(self, result: WakeResult, host: str) -> WakeResult:
        self.events.emit(WakeOutcome(result=result, host=host))
        return result


def _attempt_dict(attempt: Optional[WakeAttempt]) -> Optional[dict[str, Any]]:
    if attempt is None:
        return None
    return {
        "host": attempt.target_host,
        "state": attempt.state.value,
        "attempts_made": attempt.attempts_made,
        "max_attempts": attempt.max_attempts,
        "backoff_seconds": attempt.backoff_interval_seconds,
    }
