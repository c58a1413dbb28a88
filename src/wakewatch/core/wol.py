"""Wake-on-LAN magic packet construction and sending."""

import logging
import re

from wakeonlan import create_magic_packet, send_magic_packet

from wakewatch.core.errors import InvalidFormat, SendFailure
from wakewatch.core.netmath import parse_ipv4

logger = logging.getLogger(__name__)

WOL_PORT = 9
MAGIC_PACKET_SIZE = 102

MAC_RE = re.compile(r"^[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2}){5}$")


def validate_mac(mac_address: str) -> str:
    """
    Check that ``mac_address`` is six colon-separated hex octets.

    Returns:
        The MAC address with surrounding whitespace removed

    Raises:
        InvalidFormat: If the string is not a colon-separated MAC-48 address
    """
    if not isinstance(mac_address, str) or not MAC_RE.match(mac_address.strip()):
        raise InvalidFormat(f"Invalid MAC address: {mac_address!r}")
    return mac_address.strip()


def build_magic_packet(mac_address: str) -> bytes:
    """
    Build the 102-byte Wake-on-LAN payload for a MAC address.

    The payload is six 0xFF bytes followed by the six MAC bytes repeated
    sixteen times.

    Args:
        mac_address: Target MAC address (e.g., "00:11:32:C2:2F:ED")

    Returns:
        The magic packet bytes

    Raises:
        InvalidFormat: If the MAC address is malformed
    """
    return create_magic_packet(validate_mac(mac_address))


def send_wake_packet(mac_address: str, broadcast_address: str, port: int = WOL_PORT) -> None:
    """
    Send a magic packet as a single UDP datagram to ``broadcast_address:port``.

    A fresh socket is opened and closed for every send.

    Args:
        mac_address: MAC address of the target machine
        broadcast_address: Directed broadcast address of the local subnet
        port: UDP port for the WOL packet (default: 9)

    Raises:
        InvalidFormat: If the MAC or broadcast address is malformed
        SendFailure: If the datagram could not be sent
    """
    mac = validate_mac(mac_address)
    parse_ipv4(broadcast_address)
    logger.info("Sending WOL magic packet to %s via %s:%d", mac, broadcast_address, port)
    try:
        send_magic_packet(mac, ip_address=broadcast_address, port=port)
    except OSError as exc:
        logger.warning("WOL packet to %s could not be sent: %s", mac, exc)
        raise SendFailure(f"Could not send magic packet to {broadcast_address}:{port}: {exc}") from exc
    logger.debug("WOL packet sent successfully")
