"""
Control-channel operations on a connected gateway.

Each operation is one request/reply exchange:
    build packet -> send -> receive reply -> interpret
"""

import ipaddress
import logging
import socket
import struct
from typing import Optional

from ..config import UpdaterConfig
from .gateway_transport import send_all
from .errors import ProtocolViolation
from .packets import Opcode, build_command_packet, opcode_name, receive_reply_packet
from .replies import DecodedReply, StationMac, UpdateStatus, interpret_reply_packet

logger = logging.getLogger(__name__)


def build_update_payload(address: str, port: int) -> bytes:
    """
    Encode the callback address for WRITE_UPDATE.

    Layout:
        ServerIP    4   network byte order (e.g. c0 a8 00 63 for 192.168.0.99)
        ServerPort  2   high byte first

    Raises:
        ValueError: If address is not an IPv4 literal or port is out of range
    """
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"Port must be 0-65535, got {port}")
    try:
        packed = ipaddress.IPv4Address(address).packed
    except ipaddress.AddressValueError as e:
        raise ValueError(f"Invalid callback address {address!r}: {e}")
    return packed + struct.pack(">H", port)


class ControlSession:
    """
    Request/reply operations over the gateway control connection.

    The session borrows the socket; the caller opens and closes it.

    Example:
        sock = open_control_socket("192.168.1.50")
        session = ControlSession(sock)
        mac = session.read_station_mac().value
        version = session.read_firmware_version().value
        session.write_update("192.168.1.10", 40123)
    """

    def __init__(self, sock: socket.socket, config: Optional[UpdaterConfig] = None):
        self.sock = sock
        self.config = config or UpdaterConfig()

    def exchange(self, opcode: Opcode, payload: bytes = b"") -> DecodedReply:
        """
        Send one command and interpret its reply.

        Raises:
            GatewayError: Whatever the first failing step raised
        """
        packet = build_command_packet(opcode, payload)
        logger.debug(f"Sending {opcode.name} ({len(packet)} bytes)")
        send_all(self.sock, packet)

        reply = receive_reply_packet(
            self.sock,
            max_len=self.config.reply_buffer_size,
            timeout=self.config.reply_timeout,
        )
        return interpret_reply_packet(opcode, reply, self.config)

    def read_station_mac(self) -> DecodedReply:
        """
        Read the gateway's MAC address (CMD_READ_SATION_MAC, sic).

        Raises:
            ProtocolViolation: If the reply does not carry a MAC address
        """
        reply = self.exchange(Opcode.READ_STATION_MAC)
        if not isinstance(reply.value, StationMac):
            raise ProtocolViolation(
                f"Reply to READ_STATION_MAC carried {opcode_name(reply.opcode)}, not a MAC address"
            )
        logger.info(f"MAC Address [{reply.value}]")
        return reply

    def read_firmware_version(self) -> DecodedReply:
        """Read the firmware version, which also names the model."""
        reply = self.exchange(Opcode.READ_FIRMWARE_VERSION)
        if not isinstance(reply.value, str):
            raise ProtocolViolation(
                f"Reply to READ_FIRMWARE_VERSION carried {opcode_name(reply.opcode)}, not a version"
            )
        logger.info(f"Firmware Version [{reply.value}]")
        return reply

    def write_update(self, callback_address: str, callback_port: int) -> DecodedReply:
        """
        Ask the gateway to fetch new firmware from callback_address:callback_port.

        Raises:
            UpdateRejected: If the gateway declines
            ProtocolViolation: If the reply is not an update status
        """
        payload = build_update_payload(callback_address, callback_port)
        reply = self.exchange(Opcode.WRITE_UPDATE, payload)
        if not isinstance(reply.value, UpdateStatus):
            raise ProtocolViolation(
                f"Reply to WRITE_UPDATE carried {opcode_name(reply.opcode)}, not an update status"
            )
        logger.info(f"Gateway accepted update; it will connect to {callback_address}:{callback_port}")
        return reply
