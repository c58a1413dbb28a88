"""Tests for the YAML config writer."""

from pathlib import Path
from unittest.mock import patch

import pytest

from wakewatch.config.loader import DEVICE_IP_KEY, load_config
from wakewatch.config.writer import write_config, write_preferences


class TestWriteConfig:
    def test_write_and_reload(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        config = {"preferences": {DEVICE_IP_KEY: "192.168.2.150"}, "settings": {"interface": "wlan0"}}

        write_config(path, config)

        assert load_config(path) == config

    def test_atomic_write_leaves_no_temp_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        write_config(path, {"preferences": {}})
        assert list(tmp_path.iterdir()) == [path]

    def test_failed_write_keeps_old_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        write_config(path, {"preferences": {DEVICE_IP_KEY: "1.2.3.4"}})

        with patch("wakewatch.config.writer.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                write_config(path, {"preferences": {DEVICE_IP_KEY: "5.6.7.8"}})

        assert load_config(path) == {"preferences": {DEVICE_IP_KEY: "1.2.3.4"}}
        assert list(tmp_path.iterdir()) == [path]

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "wakewatch" / "config.yaml"
        write_config(path, {"settings": {}})
        assert path.exists()

    def test_key_order_preserved(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        write_config(path, {"settings": {}, "preferences": {}})
        assert path.read_text().index("settings") < path.read_text().index("preferences")


class TestWritePreferences:
    def test_keeps_other_sections(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        write_config(path, {"settings": {"interface": "wlp2s0"}, "preferences": {DEVICE_IP_KEY: "1.2.3.4"}})

        written = write_preferences(path, {DEVICE_IP_KEY: "192.168.2.150"})

        reloaded = load_config(path)
        assert reloaded == written
        assert reloaded["settings"] == {"interface": "wlp2s0"}
        assert reloaded["preferences"] == {DEVICE_IP_KEY: "192.168.2.150"}

    def test_creates_missing_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        write_preferences(path, {DEVICE_IP_KEY: "192.168.2.150"})
        assert load_config(path) == {"preferences": {DEVICE_IP_KEY: "192.168.2.150"}}

    def test_replaces_non_mapping_root(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("- oops\n")

        write_preferences(path, {DEVICE_IP_KEY: "192.168.2.150"})

        assert load_config(path) == {"preferences": {DEVICE_IP_KEY: "192.168.2.150"}}
