"""IPv4 subnet arithmetic on dotted-decimal strings."""

from wakewatch.core.errors import InvalidFormat

SENTINEL_ADDRESS = "0.0.0.0"

Octets = tuple[int, int, int, int]


def parse_ipv4(address: str) -> Octets:
    """
    Split a dotted-decimal IPv4 string into its four octets.

    Args:
        address: Address or mask such as "192.168.2.10"

    Returns:
        Tuple of four integers in [0, 255]

    Raises:
        InvalidFormat: If the string does not hold exactly four decimal octets
    """
    if not isinstance(address, str):
        raise InvalidFormat(f"Invalid IPv4 address: {address!r}")
    parts = address.strip().split(".")
    if len(parts) != 4:
        raise InvalidFormat(f"Invalid IPv4 address: '{address}'")
    octets = []
    for part in parts:
        if not part.isdigit() or len(part) > 3:
            raise InvalidFormat(f"Invalid IPv4 address: '{address}'")
        value = int(part)
        if value > 255:
            raise InvalidFormat(f"Invalid IPv4 address: '{address}' (octet {value} > 255)")
        octets.append(value)
    return octets[0], octets[1], octets[2], octets[3]


def is_valid_ipv4(address: str) -> bool:
    try:
        parse_ipv4(address)
    except InvalidFormat:
        return False
    return True


def is_sentinel(address: str) -> bool:
    """True for the unset address 0.0.0.0."""
    return address.strip() == SENTINEL_ADDRESS


def same_subnet(a: str, b: str, mask: str) -> bool:
    """
    Check whether two addresses share a subnet under the given mask.

    Args:
        a: First IPv4 address
        b: Second IPv4 address
        mask: Subnet mask, e.g. "255.255.255.0"

    Returns:
        True if every masked octet of ``a`` equals the masked octet of ``b``

    Raises:
        InvalidFormat: If any operand is not a well-formed IPv4 string
    """
    a_octets = parse_ipv4(a)
    b_octets = parse_ipv4(b)
    m_octets = parse_ipv4(mask)
    return all((x & m) == (y & m) for x, y, m in zip(a_octets, b_octets, m_octets))


def broadcast_address(address: str, mask: str) -> str:
    """
    Compute the directed broadcast address for ``address`` under ``mask``.

    Example:
        broadcast_address("192.168.2.150", "255.255.255.0") == "192.168.2.255"

    Raises:
        InvalidFormat: If either operand is malformed
    """
    a_octets = parse_ipv4(address)
    m_octets = parse_ipv4(mask)
    return ".".join(str(a | (~m & 0xFF)) for a, m in zip(a_octets, m_octets))
