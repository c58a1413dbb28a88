"""Tests for Wake-on-LAN functionality."""

from unittest.mock import MagicMock, patch

import pytest

from wakewatch.core.errors import InvalidFormat, SendFailure
from wakewatch.core.wol import (
    MAGIC_PACKET_SIZE,
    build_magic_packet,
    send_wake_packet,
    validate_mac,
)

MAC = "00:11:32:C2:2F:ED"
MAC_BYTES = bytes([0x00, 0x11, 0x32, 0xC2, 0x2F, 0xED])


class TestBuildMagicPacket:
    def test_length(self) -> None:
        assert len(build_magic_packet(MAC)) == MAGIC_PACKET_SIZE == 102

    def test_header_is_six_ff_bytes(self) -> None:
        assert build_magic_packet(MAC)[:6] == b"\xff" * 6

    def test_mac_repeated_sixteen_times(self) -> None:
        packet = build_magic_packet(MAC)
        assert packet[6:12] == MAC_BYTES
        assert packet[6:] == MAC_BYTES * 16

    def test_lowercase_mac(self) -> None:
        assert build_magic_packet(MAC.lower()) == build_magic_packet(MAC)

    @pytest.mark.parametrize("bad", ["", "00:11:32:C2:2F", "00-11-32-C2-2F-ED", "00:11:32:C2:2F:GG"])
    def test_rejects_malformed_mac(self, bad: str) -> None:
        with pytest.raises(InvalidFormat):
            build_magic_packet(bad)


class TestValidateMac:
    def test_strips_whitespace(self) -> None:
        assert validate_mac(f"  {MAC} ") == MAC


class TestSendWakePacket:
    """Tests for send_wake_packet."""

    @patch("wakewatch.core.wol.send_magic_packet")
    def test_sends_to_broadcast_on_port_9(self, mock_send: MagicMock) -> None:
        send_wake_packet(MAC, "192.168.2.255")

        mock_send.assert_called_once_with(MAC, ip_address="192.168.2.255", port=9)

    @patch("wakewatch.core.wol.send_magic_packet")
    def test_custom_port(self, mock_send: MagicMock) -> None:
        send_wake_packet(MAC, "192.168.2.255", port=7)

        mock_send.assert_called_once_with(MAC, ip_address="192.168.2.255", port=7)

    @patch("wakewatch.core.wol.send_magic_packet", side_effect=OSError("Network is unreachable"))
    def test_os_error_becomes_send_failure(self, mock_send: MagicMock) -> None:
        with pytest.raises(SendFailure, match="unreachable"):
            send_wake_packet(MAC, "192.168.2.255")

    @patch("wakewatch.core.wol.send_magic_packet")
    def test_invalid_mac_never_sends(self, mock_send: MagicMock) -> None:
        with pytest.raises(InvalidFormat):
            send_wake_packet("not-a-mac", "192.168.2.255")
        mock_send.assert_not_called()

    @patch("wakewatch.core.wol.send_magic_packet")
    def test_invalid_broadcast_never_sends(self, mock_send: MagicMock) -> None:
        with pytest.raises(InvalidFormat):
            send_wake_packet(MAC, "192.168.2")
        mock_send.assert_not_called()
