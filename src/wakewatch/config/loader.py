"""YAML configuration loader and validator."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from wakewatch.core.netmath import is_valid_ipv4
from wakewatch.core.wol import MAC_RE

DEVICE_IP_KEY = "network_device_ip_address"
DEVICE_MAC_KEY = "network_device_mac_address"
SUBNET_MASK_KEY = "network_subnet_mask"

PREFERENCE_DEFAULTS: dict[str, str] = {
    DEVICE_IP_KEY: "0.0.0.0",
    DEVICE_MAC_KEY: "00:00:00:00:00:00",
    SUBNET_MASK_KEY: "0.0.0.0",
}


@dataclass
class EngineSettings:
    """Static settings read from the ``settings`` section."""

    interface: str = "wlan0"
    link_poll_interval: float = 2.0
    probe_port: int = 7
    probe_timeout_ms: int = 500
    monitor_max_attempts: int = 5
    monitor_probe_timeout_ms: int = 250
    monitor_backoff_seconds: float = 10.0
    # Seconds between the magic packet and the first background probe.
    monitor_initial_delay: float = 0.0
    preferences_poll_interval: float = 5.0
    notifications: dict[str, Any] = field(default_factory=dict)


def load_config(path: Path) -> Optional[dict[str, Any]]:
    """
    Load configuration from a YAML file.

    Args:
        path: Path to the YAML config file

    Returns:
        Parsed configuration dictionary, or None if file is empty

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
    """
    with open(path) as f:
        result: Optional[dict[str, Any]] = yaml.safe_load(f)
        return result


def validate_preference(key: str, value: Any) -> Optional[str]:
    """Return an error message for a bad preference value, or None."""
    if key not in PREFERENCE_DEFAULTS:
        return f"unknown preference '{key}'"
    if not isinstance(value, str):
        return f"{key}: must be a string"
    if key == DEVICE_MAC_KEY:
        if not MAC_RE.match(value.strip()):
            return f"{key}: invalid MAC address '{value}'"
    elif not is_valid_ipv4(value):
        return f"{key}: invalid IPv4 address '{value}'"
    return None


def validate_config(config: dict[str, Any]) -> list[str]:
    """
    Validate a loaded configuration dictionary.

    Returns:
        List of validation error messages (empty list = valid)
    """
    errors: list[str] = []

    if not isinstance(config, dict):
        return ["Config root must be a YAML mapping"]

    prefs = config.get("preferences", {}) or {}
    if not isinstance(prefs, dict):
        errors.append("'preferences' must be a mapping")
    else:
        for key, value in prefs.items():
            err = validate_preference(str(key), value)
            if err:
                errors.append(f"preferences.{err}")

    settings = config.get("settings", {}) or {}
    if not isinstance(settings, dict):
        errors.append("'settings' must be a mapping")
        return errors

    for key in ("link_poll_interval", "preferences_poll_interval", "probe_timeout_ms", "probe_port"):
        value = settings.get(key)
        if value is not None and (not isinstance(value, (int, float)) or value <= 0):
            errors.append(f"settings.{key}: must be a positive number")

    monitor = settings.get("monitor", {}) or {}
    if not isinstance(monitor, dict):
        errors.append("settings.monitor: must be a mapping")
    else:
        max_attempts = monitor.get("max_attempts")
        if max_attempts is not None and (not isinstance(max_attempts, int) or max_attempts < 1):
            errors.append("settings.monitor.max_attempts: must be an integer >= 1")
        for key in ("probe_timeout_ms", "backoff_seconds", "initial_delay_seconds"):
            value = monitor.get(key)
            if value is not None and (not isinstance(value, (int, float)) or value < 0):
                errors.append(f"settings.monitor.{key}: must be a non-negative number")

    return errors


def preferences_from_config(config: Optional[dict[str, Any]]) -> dict[str, str]:
    """
    Return the three preferences, falling back to defaults for missing keys.

    A root or ``preferences`` section that is not a mapping counts as empty.
    """
    prefs = dict(PREFERENCE_DEFAULTS)
    raw = config.get("preferences") if isinstance(config, dict) else None
    if not isinstance(raw, dict):
        return prefs
    for key in PREFERENCE_DEFAULTS:
        if raw.get(key):
            prefs[key] = str(raw[key]).strip()
    return prefs


def settings_from_config(config: Optional[dict[str, Any]]) -> EngineSettings:
    """
    Construct EngineSettings from a validated config dict.

    Args:
        config: Parsed config dictionary (None yields all defaults)

    Returns:
        EngineSettings instance
    """
    settings = (config or {}).get("settings") or {}
    monitor = settings.get("monitor") or {}
    defaults = EngineSettings()
    return EngineSettings(
        interface=str(settings.get("interface", defaults.interface)),
        link_poll_interval=float(settings.get("link_poll_interval", defaults.link_poll_interval)),
        probe_port=int(settings.get("probe_port", defaults.probe_port)),
        probe_timeout_ms=int(settings.get("probe_timeout_ms", defaults.probe_timeout_ms)),
        monitor_max_attempts=int(monitor.get("max_attempts", defaults.monitor_max_attempts)),
        monitor_probe_timeout_ms=int(
            monitor.get("probe_timeout_ms", defaults.monitor_probe_timeout_ms)
        ),
        monitor_backoff_seconds=float(
            monitor.get("backoff_seconds", defaults.monitor_backoff_seconds)
        ),
        monitor_initial_delay=float(
            monitor.get("initial_delay_seconds", defaults.monitor_initial_delay)
        ),
        preferences_poll_interval=float(
            settings.get("preferences_poll_interval", defaults.preferences_poll_interval)
        ),
        notifications=dict(settings.get("notifications") or {}),
    )
