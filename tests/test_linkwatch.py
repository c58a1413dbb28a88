"""Tests for network interface observation."""

import json
import subprocess
from unittest.mock import MagicMock, patch

from wakewatch.core.events import CapabilitiesChanged, InterfaceAttached, InterfaceLost
from wakewatch.network.linkwatch import LinkSnapshot, LinkWatcher, diff_events, read_link

UP = LinkSnapshot("wlan0", is_up=True, is_wireless=True, ipv4_addresses=("192.168.2.10",))
DOWN = LinkSnapshot("wlan0", is_up=False, is_wireless=True)


def _ip_output(operstate: str = "UP", addresses: tuple = ("192.168.2.10",)) -> str:
    return json.dumps(
        [
            {
                "ifname": "wlan0",
                "flags": ["BROADCAST", "MULTICAST", "UP", "LOWER_UP"] if operstate == "UP" else [],
                "operstate": operstate,
                "addr_info": [
                    {"family": "inet", "local": a, "prefixlen": 24} for a in addresses
                ],
            }
        ]
    )


class TestReadLink:
    @patch("wakewatch.network.linkwatch.is_wireless", return_value=True)
    @patch("wakewatch.network.linkwatch.subprocess.run")
    def test_parses_ip_json(self, mock_run: MagicMock, _wireless: MagicMock) -> None:
        mock_run.return_value = MagicMock(returncode=0, stdout=_ip_output(), stderr="")

        snap = read_link("wlan0")

        assert snap == UP
        assert mock_run.call_args[0][0] == ["ip", "-j", "-4", "addr", "show", "dev", "wlan0"]

    @patch("wakewatch.network.linkwatch.is_wireless", return_value=False)
    @patch("wakewatch.network.linkwatch.subprocess.run")
    def test_down_interface(self, mock_run: MagicMock, _wireless: MagicMock) -> None:
        mock_run.return_value = MagicMock(
            returncode=0, stdout=_ip_output("DOWN", addresses=()), stderr=""
        )

        snap = read_link("wlan0")

        assert snap is not None
        assert snap.is_up is False
        assert snap.ipv4_addresses == ()

    @patch("wakewatch.network.linkwatch.subprocess.run")
    def test_missing_interface(self, mock_run: MagicMock) -> None:
        mock_run.return_value = MagicMock(
            returncode=1, stdout="", stderr='Device "wlan9" does not exist.'
        )
        assert read_link("wlan9") is None

    @patch("wakewatch.network.linkwatch.subprocess.run", side_effect=FileNotFoundError())
    def test_no_ip_binary(self, _run: MagicMock) -> None:
        assert read_link("wlan0") is None

    @patch(
        "wakewatch.network.linkwatch.subprocess.run",
        side_effect=subprocess.TimeoutExpired(cmd="ip", timeout=5),
    )
    def test_timeout(self, _run: MagicMock) -> None:
        assert read_link("wlan0") is None


class TestDiffEvents:
    def test_first_up(self) -> None:
        events = diff_events(None, UP)
        assert events == [
            InterfaceAttached("wlan0"),
            CapabilitiesChanged(True, ("192.168.2.10",), "wlan0"),
        ]

    def test_went_down(self) -> None:
        assert diff_events(UP, DOWN) == [InterfaceLost("wlan0")]

    def test_disappeared(self) -> None:
        assert diff_events(UP, None) == [InterfaceLost("wlan0")]

    def test_came_back_up(self) -> None:
        assert [type(e) for e in diff_events(DOWN, UP)] == [InterfaceAttached, CapabilitiesChanged]

    def test_address_changed(self) -> None:
        moved = LinkSnapshot("wlan0", True, True, ("192.168.2.11",))
        assert diff_events(UP, moved) == [CapabilitiesChanged(True, ("192.168.2.11",), "wlan0")]

    def test_no_change(self) -> None:
        assert diff_events(UP, UP) == []
        assert diff_events(DOWN, None) == []


class TestLinkWatcher:
    def test_first_subscription_adds_poll_job(self) -> None:
        scheduler = MagicMock()
        watcher = LinkWatcher("wlan0", scheduler, poll_interval=3.0, reader=lambda _: UP)

        watcher.subscribe(MagicMock())
        watcher.subscribe(MagicMock())

        scheduler.add_job.assert_called_once()
        kwargs = scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == "link-watch:wlan0"
        assert kwargs["func"] == watcher.poll
        assert kwargs["max_instances"] == 1

    def test_closing_last_subscription_removes_job(self) -> None:
        scheduler = MagicMock()
        watcher = LinkWatcher("wlan0", scheduler, reader=lambda _: UP)
        first = watcher.subscribe(MagicMock())
        second = watcher.subscribe(MagicMock())

        first.close()
        scheduler.remove_job.assert_not_called()
        second.close()
        scheduler.remove_job.assert_called_once_with("link-watch:wlan0")

    def test_subscription_as_context_manager(self) -> None:
        scheduler = MagicMock()
        watcher = LinkWatcher("wlan0", scheduler, reader=lambda _: UP)

        with watcher.subscribe(MagicMock()) as sub:
            assert sub.closed is False

        assert sub.closed is True
        scheduler.remove_job.assert_called_once()

    def test_poll_publishes_changes_only(self) -> None:
        snapshots = iter([UP, UP, DOWN])
        watcher = LinkWatcher("wlan0", MagicMock(), reader=lambda _: next(snapshots))
        seen = []
        watcher.subscribe(seen.append)

        watcher.poll()
        watcher.poll()
        watcher.poll()

        assert [type(e) for e in seen] == [InterfaceAttached, CapabilitiesChanged, InterfaceLost]

    def test_first_poll_of_missing_interface_reports_lost(self) -> None:
        watcher = LinkWatcher("wlan0", MagicMock(), reader=lambda _: None)
        seen = []
        watcher.subscribe(seen.append)

        watcher.poll()
        watcher.poll()

        assert seen == [InterfaceLost("wlan0")]

    def test_closed_subscription_receives_nothing(self) -> None:
        watcher = LinkWatcher("wlan0", MagicMock(), reader=lambda _: UP)
        seen = []
        watcher.subscribe(seen.append).close()

        watcher.poll()

        assert seen == []

    def test_subscriber_error_is_contained(self) -> None:
        watcher = LinkWatcher("wlan0", MagicMock(), reader=lambda _: UP)
        seen = []
        watcher.subscribe(MagicMock(side_effect=RuntimeError("boom")))
        watcher.subscribe(seen.append)

        watcher.poll()

        assert len(seen) == 2
