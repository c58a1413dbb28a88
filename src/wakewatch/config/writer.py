"""Crash-safe YAML write-back of the wakewatch config file."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from wakewatch.config.loader import load_config

logger = logging.getLogger(__name__)


def write_config(path: Path, config: dict[str, Any]) -> None:
    """
    Replace the file at ``path`` with ``config`` as YAML.

    The document goes to a temp file in the same directory, is flushed to
    disk, and is then renamed over ``path``; readers see either the old
    file or the new one.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            yaml.safe_dump(config, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.debug("Wrote %s", path)


def write_preferences(path: Path, preferences: dict[str, str]) -> dict[str, Any]:
    """
    Store ``preferences`` under the ``preferences`` key of the file at ``path``.

    Other top-level sections (``settings``) are left as they are. A missing
    file is created.

    Returns:
        The full config dict that was written.
    """
    existing = load_config(path) if path.exists() else None
    config: dict[str, Any] = existing if isinstance(existing, dict) else {}
    config["preferences"] = dict(preferences)
    write_config(path, config)
    return config
