"""Tests for control-channel request/reply operations."""

import pytest

from ecowitt_firmware_updater.config import UpdaterConfig
from ecowitt_firmware_updater.protocol.control_session import (
    ControlSession,
    build_update_payload,
)
from ecowitt_firmware_updater.protocol.errors import (
    GatewayTimeout,
    ProtocolViolation,
    SizeOverflow,
    UpdateRejected,
)
from ecowitt_firmware_updater.protocol.packets import Opcode, build_command_packet
from ecowitt_firmware_updater.protocol.replies import StationMac, UpdateStatus

MAC = bytes.fromhex("a1b2c3d4e5f6")


class TestBuildUpdatePayload:
    """Test WRITE_UPDATE callback encoding."""

    def test_address_and_port_network_order(self):
        assert build_update_payload("192.168.0.99", 8080) == bytes.fromhex("c0a800631f90")

    def test_invalid_address(self):
        with pytest.raises(ValueError):
            build_update_payload("not-an-ip", 8080)

    def test_ipv6_rejected(self):
        with pytest.raises(ValueError):
            build_update_payload("::1", 8080)

    def test_port_out_of_range(self):
        with pytest.raises(ValueError):
            build_update_payload("10.0.0.1", 70000)


class TestControlSession:
    """Replies are queued on the peer before each call."""

    def test_read_station_mac(self, sock_pair):
        engine, peer = sock_pair
        peer.sendall(build_command_packet(Opcode.READ_STATION_MAC, MAC))

        reply = ControlSession(engine).read_station_mac()

        assert reply.value == StationMac(MAC)
        assert peer.recv(64) == bytes.fromhex("ffff260329")

    def test_read_firmware_version(self, sock_pair):
        engine, peer = sock_pair
        peer.sendall(build_command_packet(Opcode.READ_FIRMWARE_VERSION, b"\x11EasyWeatherV1.2.0"))

        reply = ControlSession(engine).read_firmware_version()

        assert reply.value == "EasyWeatherV1.2.0"
        assert peer.recv(64) == bytes.fromhex("ffff500353")

    def test_write_update_sends_callback(self, sock_pair):
        engine, peer = sock_pair
        peer.sendall(build_command_packet(Opcode.WRITE_UPDATE, b"\x00"))

        reply = ControlSession(engine).write_update("192.168.0.99", 8080)

        assert reply.value == UpdateStatus(0)
        assert peer.recv(64) == bytes.fromhex("ffff4309c0a800631f90c6")

    def test_write_update_rejected(self, sock_pair):
        engine, peer = sock_pair
        peer.sendall(build_command_packet(Opcode.WRITE_UPDATE, b"\x01"))

        with pytest.raises(UpdateRejected):
            ControlSession(engine).write_update("192.168.0.99", 8080)

    def test_write_update_answered_with_other_opcode(self, sock_pair):
        """Acceptance must be confirmed by an actual update status."""
        engine, peer = sock_pair
        peer.sendall(build_command_packet(Opcode.READ_STATION_MAC, MAC))

        with pytest.raises(ProtocolViolation):
            ControlSession(engine).write_update("192.168.0.99", 8080)

    def test_station_mac_answered_with_version(self, sock_pair):
        """A version string must not be reported as the MAC address."""
        engine, peer = sock_pair
        peer.sendall(build_command_packet(Opcode.READ_FIRMWARE_VERSION, b"\x05GW_V1"))

        with pytest.raises(ProtocolViolation, match="not a MAC address"):
            ControlSession(engine).read_station_mac()

    def test_firmware_version_answered_with_mac(self, sock_pair):
        engine, peer = sock_pair
        peer.sendall(build_command_packet(Opcode.READ_STATION_MAC, MAC))

        with pytest.raises(ProtocolViolation, match="not a version"):
            ControlSession(engine).read_firmware_version()

    def test_stalled_reply_times_out(self, sock_pair):
        engine, peer = sock_pair
        peer.sendall(b"\xff\xff")

        with pytest.raises(GatewayTimeout):
            ControlSession(engine, UpdaterConfig(reply_timeout=0.2)).read_station_mac()

    def test_reply_buffer_size_is_honoured(self, sock_pair):
        engine, peer = sock_pair
        peer.sendall(build_command_packet(Opcode.READ_STATION_MAC, MAC))

        config = UpdaterConfig(reply_buffer_size=8)
        with pytest.raises(SizeOverflow):
            ControlSession(engine, config).read_station_mac()
