"""Domain-specific errors for wakewatch."""


class WakewatchError(Exception):
    """Base error for wakewatch."""


class InvalidFormat(WakewatchError, ValueError):
    """Raised when an IPv4 address, subnet mask or MAC address is malformed."""


class SendFailure(WakewatchError):
    """Raised when the magic packet could not be sent."""


class ConfigError(WakewatchError):
    """Raised for invalid or missing configuration."""
