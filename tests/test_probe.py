"""Tests for the reachability probe."""

import errno
import socket
from unittest.mock import MagicMock, patch

from wakewatch.core.probe import ProbeResult, probe


@patch("wakewatch.core.probe.socket.gethostbyname", return_value="192.168.2.150")
class TestProbe:
    @patch("wakewatch.core.probe.socket.create_connection")
    def test_connect_is_reachable(self, mock_conn: MagicMock, _resolve: MagicMock) -> None:
        assert probe("192.168.2.150") == ProbeResult.REACHABLE
        mock_conn.assert_called_once_with(("192.168.2.150", 7), timeout=0.5)

    @patch("wakewatch.core.probe.socket.create_connection", side_effect=ConnectionRefusedError())
    def test_refused_is_reachable(self, _conn: MagicMock, _resolve: MagicMock) -> None:
        assert probe("192.168.2.150") == ProbeResult.REACHABLE

    @patch("wakewatch.core.probe.socket.create_connection", side_effect=socket.timeout())
    def test_timeout_is_unreachable(self, _conn: MagicMock, _resolve: MagicMock) -> None:
        assert probe("192.168.2.150", timeout_ms=250) == ProbeResult.UNREACHABLE

    @patch(
        "wakewatch.core.probe.socket.create_connection",
        side_effect=OSError(errno.EHOSTUNREACH, "No route to host"),
    )
    def test_no_route_is_unreachable(self, _conn: MagicMock, _resolve: MagicMock) -> None:
        assert probe("192.168.2.150") == ProbeResult.UNREACHABLE

    @patch(
        "wakewatch.core.probe.socket.create_connection",
        side_effect=OSError(errno.EMFILE, "Too many open files"),
    )
    def test_other_os_error_is_error(self, _conn: MagicMock, _resolve: MagicMock) -> None:
        assert probe("192.168.2.150") == ProbeResult.ERROR

    @patch("wakewatch.core.probe.socket.create_connection")
    def test_custom_port_and_timeout(self, mock_conn: MagicMock, _resolve: MagicMock) -> None:
        probe("192.168.2.150", timeout_ms=250, port=22)
        mock_conn.assert_called_once_with(("192.168.2.150", 22), timeout=0.25)


class TestProbeResolution:
    @patch("wakewatch.core.probe.socket.create_connection")
    @patch("wakewatch.core.probe.socket.gethostbyname", side_effect=socket.gaierror("no such host"))
    def test_resolution_failure_is_error(self, _resolve: MagicMock, mock_conn: MagicMock) -> None:
        assert probe("nas.invalid") == ProbeResult.ERROR
        mock_conn.assert_not_called()
