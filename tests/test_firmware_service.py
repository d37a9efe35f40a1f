"""Tests for the firmware transfer state machine and listener."""

import io
import logging
import socket
import struct
import threading

import pytest

from ecowitt_firmware_updater.config import UpdaterConfig
from ecowitt_firmware_updater.protocol.errors import (
    GatewayTimeout,
    GatewayTransportError,
    ImageUnavailable,
    ProtocolViolation,
)
from ecowitt_firmware_updater.protocol.firmware_service import (
    TRANSITIONS,
    FirmwareTransferListener,
    FirmwareTransferSession,
    TransferState,
    TransferToken,
    accept_once,
    parse_token,
    prepare_transfer,
)

from gateway_sim import recv_exact

IMAGE_1500 = bytes(range(256)) * 5 + bytes(220)


class TestScenarios:
    """Golden transfer conversations."""

    def test_single_image_1500_bytes(self):
        """user1.bin, start, continue, end: 1024 + 476 bytes in two packets."""
        session = FirmwareTransferSession(io.BytesIO(IMAGE_1500))

        assert session.handle(b"user1.bin\x00") == bytes.fromhex("000005dc")
        assert session.state is TransferState.GOT_USER1

        first = session.handle(b"start\x00")
        assert first == IMAGE_1500[:1024]
        assert session.state is TransferState.GOT_START

        second = session.handle(b"continue\x00")
        assert second == IMAGE_1500[1024:]
        assert len(second) == 476
        assert session.state is TransferState.GOT_CONTINUE

        assert session.handle(b"end\x00") is None
        assert session.state is TransferState.GOT_END
        assert session.summary.completed
        assert session.summary.packets_sent == 2
        assert session.summary.bytes_sent == 1500
        assert session.summary.image_name == "user1.bin"
        assert session.summary.anomalies == []

    def test_second_image_missing(self):
        """user2.bin without a second image fails before any size is sent."""
        session = FirmwareTransferSession(io.BytesIO(IMAGE_1500))

        with pytest.raises(ImageUnavailable, match="not specified"):
            session.handle(b"user2.bin\x00")
        assert session.state is TransferState.BASE

    def test_second_image_served(self):
        image2 = b"\xaa" * 10
        session = FirmwareTransferSession(io.BytesIO(IMAGE_1500), io.BytesIO(image2))

        assert session.handle(b"user2.bin\x00") == struct.pack(">I", 10)
        assert session.state is TransferState.GOT_USER2
        assert session.handle(b"start\x00") == image2


class TestStateMachine:
    """Every (state, token) pair either transitions or is rejected."""

    def test_invalid_pairs_rejected_without_state_change(self):
        for state in TransferState:
            for token in TransferToken:
                if (state, token) in TRANSITIONS:
                    continue
                session = FirmwareTransferSession(io.BytesIO(IMAGE_1500))
                session.summary.state = state
                with pytest.raises(ProtocolViolation):
                    session.handle(token.value)
                assert session.state is state

    def test_unknown_token(self):
        session = FirmwareTransferSession(io.BytesIO(IMAGE_1500))
        with pytest.raises(ProtocolViolation, match="unexpected"):
            session.handle(b"reboot\x00")
        assert session.state is TransferState.BASE

    def test_token_must_match_exactly(self):
        with pytest.raises(ProtocolViolation):
            parse_token(b"start")
        with pytest.raises(ProtocolViolation):
            parse_token(b"START\x00")
        assert parse_token(b"end\x00") is TransferToken.END

    def test_end_right_after_start(self):
        session = FirmwareTransferSession(io.BytesIO(b"tiny"))
        session.handle(b"user1.bin\x00")
        assert session.handle(b"start\x00") == b"tiny"
        session.handle(b"end\x00")
        assert session.summary.completed
        assert session.summary.packets_sent == 1


class TestChunking:
    """Chunks are sequential and at most chunk_size bytes."""

    def test_custom_chunk_size(self):
        data = bytes(range(250))
        session = FirmwareTransferSession(io.BytesIO(data), config=UpdaterConfig(chunk_size=100))
        session.handle(b"user1.bin\x00")

        chunks = [session.handle(b"start\x00")]
        chunks.append(session.handle(b"continue\x00"))
        chunks.append(session.handle(b"continue\x00"))

        assert [len(c) for c in chunks] == [100, 100, 50]
        assert b"".join(chunks) == data

    def test_progress_reported_once_per_chunk(self):
        calls = []
        session = FirmwareTransferSession(
            io.BytesIO(IMAGE_1500),
            progress_cb=lambda sent, total: calls.append((sent, total)),
        )
        session.handle(b"user1.bin\x00")
        assert calls == []

        session.handle(b"start\x00")
        session.handle(b"continue\x00")
        session.handle(b"end\x00")

        assert calls == [(1024, 1500), (1500, 1500)]

    def test_no_progress_for_request_past_eof(self):
        calls = []
        session = FirmwareTransferSession(
            io.BytesIO(bytes(10)),
            progress_cb=lambda sent, total: calls.append(sent),
        )
        session.handle(b"user1.bin\x00")
        session.handle(b"start\x00")
        session.handle(b"continue\x00")

        assert calls == [10]

    def test_request_past_eof_is_anomaly(self, caplog):
        session = FirmwareTransferSession(io.BytesIO(bytes(1024)))
        session.handle(b"user1.bin\x00")
        session.handle(b"start\x00")

        assert session.handle(b"continue\x00") is None
        assert session.state is TransferState.GOT_CONTINUE
        assert session.summary.packets_sent == 1
        assert session.summary.bytes_sent == 1024
        assert "At EOF" in session.summary.anomalies[0]
        assert "At EOF" in caplog.text

    def test_image_is_rewound_on_selection(self):
        image = io.BytesIO(b"0123456789")
        image.read(4)
        session = FirmwareTransferSession(image)

        assert session.handle(b"user1.bin\x00") == struct.pack(">I", 10)
        assert session.handle(b"start\x00") == b"0123456789"


class TestRun:
    """Serving a whole conversation over a socket."""

    def test_full_conversation(self, sock_pair):
        engine, peer = sock_pair
        peer.sendall(b"user1.bin\x00start\x00continue\x00end\x00")

        summary = FirmwareTransferSession(io.BytesIO(IMAGE_1500)).run(engine)

        assert summary.completed
        assert recv_exact(peer, 4 + 1500) == bytes.fromhex("000005dc") + IMAGE_1500

    def test_early_disconnect_is_recorded(self, sock_pair):
        engine, peer = sock_pair
        peer.sendall(b"user1.bin\x00start\x00")
        peer.shutdown(socket.SHUT_WR)

        summary = FirmwareTransferSession(io.BytesIO(IMAGE_1500)).run(engine)

        assert not summary.completed
        assert summary.state is TransferState.GOT_START
        assert summary.packets_sent == 1
        assert any("before END" in a for a in summary.anomalies)

    def test_unexpected_request_propagates(self, sock_pair):
        engine, peer = sock_pair
        peer.sendall(b"continue\x00")

        with pytest.raises(ProtocolViolation):
            FirmwareTransferSession(io.BytesIO(IMAGE_1500)).run(engine)

    def test_state_changes_traced_at_debug_when_verbose(self, sock_pair, caplog):
        caplog.set_level(logging.DEBUG, logger="ecowitt_firmware_updater")
        engine, peer = sock_pair
        peer.sendall(b"user1.bin\x00start\x00end\x00")

        FirmwareTransferSession(io.BytesIO(b"abc"), config=UpdaterConfig(verbose=True)).run(engine)

        assert "newstate=got_user1" in caplog.text
        assert "newstate=got_end" in caplog.text
        assert all(
            r.levelno == logging.DEBUG for r in caplog.records if "newstate=" in r.getMessage()
        )

    def test_state_changes_silent_at_info(self, sock_pair, caplog):
        caplog.set_level(logging.INFO, logger="ecowitt_firmware_updater")
        engine, peer = sock_pair
        peer.sendall(b"user1.bin\x00start\x00end\x00")

        FirmwareTransferSession(io.BytesIO(b"abc"), config=UpdaterConfig(verbose=True)).run(engine)

        assert "newstate=" not in caplog.text


class TestListener:
    """Inbound connection handling."""

    def test_prepare_transfer_binds_to_control_address(self, tcp_pair):
        control, _gateway_side = tcp_pair
        listen_sock, address, port = prepare_transfer(control)
        try:
            assert address == "127.0.0.1"
            assert port > 0
            assert listen_sock.getsockname() == (address, port)
        finally:
            listen_sock.close()

    def test_accept_timeout(self, tcp_pair):
        control, _gateway_side = tcp_pair
        listen_sock, _address, _port = prepare_transfer(control)
        try:
            with pytest.raises(GatewayTimeout):
                accept_once(listen_sock, timeout=0.2)
        finally:
            listen_sock.close()

    def test_serve_once_streams_image(self, tcp_pair):
        control, _gateway_side = tcp_pair
        received = {}
        progress = []

        def gateway(address, port):
            with socket.create_connection((address, port), timeout=5) as s:
                s.sendall(b"user1.bin\x00")
                (size,) = struct.unpack(">I", recv_exact(s, 4))
                s.sendall(b"start\x00")
                data = recv_exact(s, 1024)
                s.sendall(b"continue\x00")
                data += recv_exact(s, size - 1024)
                s.sendall(b"end\x00")
                received["data"] = data

        with FirmwareTransferListener(control) as listener:
            client = threading.Thread(target=gateway, args=(listener.address, listener.port))
            client.start()
            summary = listener.serve_once(
                io.BytesIO(IMAGE_1500),
                progress_cb=lambda sent, total: progress.append((sent, total)),
            )
            client.join(timeout=5)

            assert listener.sock is None

        assert summary.completed
        assert summary.bytes_sent == 1500
        assert received["data"] == IMAGE_1500
        assert progress == [(1024, 1500), (1500, 1500)]

    def test_serve_once_requires_open_listener(self, tcp_pair):
        control, _gateway_side = tcp_pair
        listener = FirmwareTransferListener(control)
        with pytest.raises(GatewayTransportError):
            listener.serve_once(io.BytesIO(IMAGE_1500))
