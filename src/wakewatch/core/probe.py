"""Single bounded-timeout reachability probe."""

import errno
import logging
import socket
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 500
BACKGROUND_TIMEOUT_MS = 250
ECHO_PORT = 7

# Errors that mean "no route to a live host" rather than a local fault.
_UNREACHABLE_ERRNOS = {errno.EHOSTUNREACH, errno.ENETUNREACH, errno.EHOSTDOWN}


class ProbeResult(Enum):
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"
    ERROR = "error"


Prober = Callable[[str, int], ProbeResult]


def probe(host: str, timeout_ms: int = DEFAULT_TIMEOUT_MS, port: int = ECHO_PORT) -> ProbeResult:
    """
    Check whether ``host`` answers on the network within ``timeout_ms``.

    Opens a TCP connection to ``port`` (echo by default). A completed
    handshake or an active refusal both prove the host's network stack is up.

    Args:
        host: Hostname or IPv4 address
        timeout_ms: Upper bound for the whole check in milliseconds
        port: TCP port to knock on (default: 7)

    Returns:
        REACHABLE, UNREACHABLE on timeout or no route, ERROR if the host
        could not be resolved or the socket failed for another reason
    """
    try:
        address = socket.gethostbyname(host)
    except (socket.gaierror, UnicodeError) as exc:
        logger.debug("Could not resolve %s: %s", host, exc)
        return ProbeResult.ERROR

    timeout = max(timeout_ms, 1) / 1000.0
    try:
        with socket.create_connection((address, port), timeout=timeout):
            logger.debug("%s accepted connection on port %d", host, port)
            return ProbeResult.REACHABLE
    except ConnectionRefusedError:
        logger.debug("%s refused port %d (host is up)", host, port)
        return ProbeResult.REACHABLE
    except socket.timeout:
        logger.debug("%s did not answer within %d ms", host, timeout_ms)
        return ProbeResult.UNREACHABLE
    except OSError as exc:
        if exc.errno in _UNREACHABLE_ERRNOS:
            logger.debug("%s unreachable: %s", host, exc)
            return ProbeResult.UNREACHABLE
        logger.debug("Probe of %s failed: %s", host, exc)
        return ProbeResult.ERROR
