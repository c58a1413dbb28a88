"""Wi-Fi and device connectivity state machine."""

import logging
import threading
from dataclasses import replace
from typing import Callable, Optional

from wakewatch.core.errors import InvalidFormat
from wakewatch.core.events import (
    CapabilitiesChanged,
    InterfaceAttached,
    InterfaceLost,
    NetworkEvent,
)
from wakewatch.core.netmath import SENTINEL_ADDRESS, broadcast_address, is_sentinel, is_valid_ipv4
from wakewatch.core.state import (
    ConnectionState,
    DeviceState,
    ReadOnlyCell,
    StateCell,
    WifiState,
)

logger = logging.getLogger(__name__)


def _broadcast_or_sentinel(address: str, mask: str) -> str:
    if is_sentinel(address):
        return SENTINEL_ADDRESS
    try:
        return broadcast_address(address, mask)
    except InvalidFormat as exc:
        logger.warning("Cannot compute broadcast address: %s", exc)
        return SENTINEL_ADDRESS


def _first_ipv4(addresses: tuple[str, ...]) -> Optional[str]:
    for address in addresses:
        if is_valid_ipv4(address) and not is_sentinel(address):
            return address
    return None


class ConnectivityStateMachine:
    """
    Owns the Wi-Fi and device state cells.

    Network events, preference changes and probe outcomes all enter through
    this class; everything else reads the cells through :attr:`wifi` and
    :attr:`device`.

    ``on_connected`` is called once for every transition of the Wi-Fi state
    into CONNECTED, after that state has been committed. Repeated
    CONNECTED observations do not call it again.
    """

    def __init__(
        self,
        device_address: str = SENTINEL_ADDRESS,
        device_mac: str = "00:00:00:00:00:00",
        subnet_mask: str = SENTINEL_ADDRESS,
        on_connected: Optional[Callable[[], None]] = None,
    ) -> None:
        self._wifi: StateCell[WifiState] = StateCell(WifiState(subnet_mask=subnet_mask), "wifi")
        self._device: StateCell[DeviceState] = StateCell(
            DeviceState(address=device_address, mac_address=device_mac), "device"
        )
        self._on_connected = on_connected
        self._lock = threading.RLock()

    @property
    def wifi(self) -> ReadOnlyCell[WifiState]:
        return self._wifi.read_only()

    @property
    def device(self) -> ReadOnlyCell[DeviceState]:
        return self._device.read_only()

    def set_on_connected(self, callback: Optional[Callable[[], None]]) -> None:
        self._on_connected = callback

    # ── Network events ────────────────────────────────────────────────────────

    def handle(self, event: NetworkEvent) -> None:
        """Apply one network interface event."""
        with self._lock:
            old = self._wifi.value
            new = self._wifi.update(lambda current: self._next_wifi(current, event))
            if new.connection_state == ConnectionState.DISCONNECTED:
                self._device.update(
                    lambda d: replace(d, connection_state=ConnectionState.UNKNOWN)
                )

        if old.connection_state != new.connection_state:
            logger.info(
                "Wi-Fi %s -> %s (address %s)",
                old.connection_state.value,
                new.connection_state.value,
                new.local_address,
            )
        if (
            old.connection_state != ConnectionState.CONNECTED
            and new.connection_state == ConnectionState.CONNECTED
            and self._on_connected is not None
        ):
            try:
                self._on_connected()
            except Exception as exc:
                logger.error("on_connected callback raised: %s", exc)

    @staticmethod
    def _next_wifi(current: WifiState, event: NetworkEvent) -> WifiState:
        if isinstance(event, InterfaceAttached):
            return replace(
                current,
                connection_state=ConnectionState.UNKNOWN,
                local_address=SENTINEL_ADDRESS,
                broadcast_address=SENTINEL_ADDRESS,
            )
        if isinstance(event, InterfaceLost):
            return replace(
                current,
                connection_state=ConnectionState.DISCONNECTED,
                local_address=SENTINEL_ADDRESS,
                broadcast_address=SENTINEL_ADDRESS,
            )
        if isinstance(event, CapabilitiesChanged):
            if not event.has_wifi_transport:
                return replace(
                    current,
                    connection_state=ConnectionState.DISCONNECTED,
                    local_address=SENTINEL_ADDRESS,
                    broadcast_address=SENTINEL_ADDRESS,
                )
            address = _first_ipv4(event.ipv4_addresses)
            if address is None:
                return current
            return replace(
                current,
                connection_state=ConnectionState.CONNECTED,
                local_address=address,
                broadcast_address=_broadcast_or_sentinel(address, current.subnet_mask),
            )
        logger.warning("Ignoring unknown network event %r", event)
        return current

    # ── Preferences ───────────────────────────────────────────────────────────

    def set_subnet_mask(self, mask: str) -> None:
        """Store a new subnet mask and recompute the broadcast address."""
        self._wifi.update(
            lambda w: replace(
                w,
                subnet_mask=mask,
                broadcast_address=_broadcast_or_sentinel(w.local_address, mask),
            )
        )

    def set_device_address(self, address: str) -> None:
        """Point at a different device; its reachability is unknown again."""
        self._device.update(
            lambda d: d
            if d.address == address
            else replace(d, address=address, connection_state=ConnectionState.UNKNOWN)
        )

    def set_device_mac(self, mac_address: str) -> None:
        self._device.update(lambda d: replace(d, mac_address=mac_address))

    # ── Device reachability ───────────────────────────────────────────────────

    def set_device_state(self, state: ConnectionState, require_wifi: bool = False) -> bool:
        """
        Write the device connection state.

        Args:
            state: New device connection state
            require_wifi: Drop the write unless Wi-Fi is currently CONNECTED.
                Used for probe results that may arrive after the link dropped.
                A device left PENDING by the dropped result goes to UNKNOWN.

        Returns:
            True if the write was applied
        """
        with self._lock:
            if require_wifi and self._wifi.value.connection_state != ConnectionState.CONNECTED:
                logger.debug("Dropping device state %s: Wi-Fi not connected", state.value)
                self._device.update(
                    lambda d: replace(d, connection_state=ConnectionState.UNKNOWN)
                    if d.connection_state == ConnectionState.PENDING
                    else d
                )
                return False
            self._device.update(lambda d: replace(d, connection_state=state))
            return True
