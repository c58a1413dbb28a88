"""Live key-value preference store backed by the YAML config file."""

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

import yaml

from wakewatch.config.loader import (
    PREFERENCE_DEFAULTS,
    load_config,
    preferences_from_config,
    validate_preference,
)
from wakewatch.config.writer import write_preferences
from wakewatch.core.errors import ConfigError, InvalidFormat

logger = logging.getLogger(__name__)

PreferenceListener = Callable[[str, str], None]


class PreferenceStore:
    """
    The three user preferences (device IP, device MAC, subnet mask).

    Subscribers are called with ``(key, value)`` whenever a value changes,
    either through :meth:`set` or because :meth:`reload` found a different
    value on disk. When ``path`` is None the store lives in memory only.
    """

    def __init__(
        self, path: Optional[Path] = None, initial: Optional[dict[str, str]] = None
    ) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._listeners: list[PreferenceListener] = []
        self._values = dict(PREFERENCE_DEFAULTS)
        if path is not None and path.exists():
            self._values = preferences_from_config(load_config(path))
        if initial:
            for key, value in initial.items():
                self._check(key, value)
                self._values[key] = value.strip()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def get(self, key: str) -> str:
        if key not in PREFERENCE_DEFAULTS:
            raise ConfigError(f"Unknown preference '{key}'")
        return self._values[key]

    def snapshot(self) -> dict[str, str]:
        return dict(self._values)

    def set(self, key: str, value: str) -> bool:
        """
        Validate, persist and publish a preference value.

        Returns:
            True if the value changed

        Raises:
            ConfigError: If ``key`` is not a known preference
            InvalidFormat: If ``value`` is malformed for ``key``
        """
        self._check(key, value)
        value = value.strip()
        with self._lock:
            if self._values[key] == value:
                return False
            self._values[key] = value
            if self._path is not None:
                write_preferences(self._path, self._values)
        logger.info("Preference %s set to %s", key, value)
        self._notify(key, value)
        return True

    def subscribe(self, listener: PreferenceListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def reload(self) -> list[str]:
        """
        Re-read the config file and publish every preference that changed on disk.

        Malformed values are logged and ignored; the previous value stays.

        Returns:
            Keys whose value changed
        """
        if self._path is None or not self._path.exists():
            return []
        try:
            raw = load_config(self._path)
        except yaml.YAMLError as exc:
            logger.warning("Could not reload %s: %s", self._path, exc)
            return []

        fresh = preferences_from_config(raw)
        changed: list[str] = []
        with self._lock:
            for key, value in fresh.items():
                if value == self._values[key]:
                    continue
                err = validate_preference(key, value)
                if err:
                    logger.warning("Ignoring preference from %s: %s", self._path, err)
                    continue
                self._values[key] = value
                changed.append(key)
        for key in changed:
            logger.info("Preference %s changed on disk to %s", key, self._values[key])
            self._notify(key, self._values[key])
        return changed

    def _check(self, key: str, value: str) -> None:
        if key not in PREFERENCE_DEFAULTS:
            raise ConfigError(f"Unknown preference '{key}'")
        err = validate_preference(key, value)
        if err:
            raise InvalidFormat(err)

    def _notify(self, key: str, value: str) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(key, value)
            except Exception as exc:
                logger.error("Preference listener raised: %s", exc)
