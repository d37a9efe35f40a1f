"""
Control-channel packet framing for Ecowitt gateways.

Based on the Fine Offset "telnet" interface document FOS-ENG-022-A.

Frame format:
[ 0xFF | 0xFF | opcode | size | payload... | checksum ]

- The two 0xFF marker bytes count in neither size nor checksum.
- size = opcode (1) + size (1) + payload + checksum (1)
- checksum = 8-bit sum of opcode, size and every payload byte

Some opcodes in the broader protocol family use a two-byte size field.
None of the opcodes used here do, so only the one-byte form is built.
"""

import socket
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from .errors import (
    FramingError,
    GatewayConnectionClosed,
    HeaderMismatch,
    SizeOverflow,
)
from .gateway_transport import read_exact, timed_read

logger = logging.getLogger(__name__)

MARKER = 0xFF
HEADER = bytes([MARKER, MARKER])
MAX_PAYLOAD = 251  # payload + 4 must fit the one-byte size field
MIN_PACKET = 5     # FF FF opcode size checksum
REPLY_BUFFER_SIZE = 1024


class Opcode(IntEnum):
    """Control operations this engine issues and recognizes."""
    READ_STATION_MAC = 0x26       # read MAC address
    WRITE_UPDATE = 0x43           # firmware upgrade
    READ_FIRMWARE_VERSION = 0x50  # read current firmware version


def opcode_name(value: int) -> str:
    """Readable name for a raw opcode byte."""
    try:
        return Opcode(value).name
    except ValueError:
        return f"0x{value:02X}"


def packet_checksum(data: bytes) -> int:
    """8-bit sum of data."""
    return sum(data) & 0xFF


def build_command_packet(opcode: int, payload: bytes = b"") -> bytes:
    """
    Build a command packet.

    Args:
        opcode: Command byte
        payload: Command parameters (at most 251 bytes)

    Returns:
        Complete frame, header through checksum

    Raises:
        ValueError: If opcode is not a byte or payload is too long
    """
    if not 0 <= opcode <= 0xFF:
        raise ValueError(f"Opcode must fit in one byte, got {opcode}")
    if len(payload) > MAX_PAYLOAD:
        raise ValueError(f"Payload too large: {len(payload)} bytes (max {MAX_PAYLOAD})")

    size = 1 + 1 + len(payload) + 1
    body = bytes([opcode, size]) + bytes(payload)
    return HEADER + body + bytes([packet_checksum(body)])


class PayloadCursor:
    """
    Bounds-checked reader over a reply payload.

    Every take fails with FramingError instead of running past the end,
    which is how a declared size that disagrees with the opcode's
    payload shape shows up.
    """

    def __init__(self, data: bytes):
        self._data = bytes(data)
        self._pos = 0

    def remaining(self) -> int:
        return len(self._data) - self._pos

    def consumed(self) -> int:
        return self._pos

    def take_byte(self) -> int:
        if self.remaining() < 1:
            raise FramingError("Payload exhausted: wanted 1 byte, none left")
        value = self._data[self._pos]
        self._pos += 1
        return value

    def take_bytes(self, n: int) -> bytes:
        if n < 0:
            raise ValueError(f"Cannot take {n} bytes")
        if self.remaining() < n:
            raise FramingError(
                f"Payload exhausted: wanted {n} bytes, {self.remaining()} left"
            )
        value = self._data[self._pos:self._pos + n]
        self._pos += n
        return value


@dataclass(frozen=True)
class ReplyFrame:
    """A framed reply split into its fields."""

    opcode: int
    size: int
    payload: bytes
    checksum: int
    computed_checksum: int

    @property
    def checksum_ok(self) -> bool:
        return self.checksum == self.computed_checksum

    def __repr__(self) -> str:
        return (
            f"ReplyFrame(opcode={opcode_name(self.opcode)}, size={self.size}, "
            f"payload={self.payload.hex(' ') if self.payload else '(empty)'})"
        )


def parse_reply_frame(packet: bytes) -> ReplyFrame:
    """
    Split a complete reply into opcode, payload and checksums.

    The checksum is compared by the caller; see ReplyFrame.checksum_ok.

    Raises:
        HeaderMismatch: If the first two bytes are not FF FF
        FramingError: If the packet is truncated or its size byte
            disagrees with its length
    """
    if len(packet) < 2 or packet[0] != MARKER or packet[1] != MARKER:
        raise HeaderMismatch(
            f"First two bytes are not ff ff: {packet[:2].hex(' ') or 'empty'}"
        )
    if len(packet) < MIN_PACKET:
        raise FramingError(f"Reply too short: {len(packet)} bytes")

    size = packet[3]
    if size != len(packet) - 2:
        raise FramingError(
            f"Size byte says {size} but reply carries {len(packet) - 2} bytes after the header"
        )

    return ReplyFrame(
        opcode=packet[2],
        size=size,
        payload=bytes(packet[4:-1]),
        checksum=packet[-1],
        computed_checksum=packet_checksum(packet[2:-1]),
    )


def receive_reply_packet(
    sock: socket.socket,
    max_len: int = REPLY_BUFFER_SIZE,
    timeout: Optional[float] = 1.0,
) -> bytes:
    """
    Read one framed reply from the control connection.

    Protocol:
        1. Discard bytes until the first 0xFF (no timeout - the gateway
           may take a while to prepare its answer)
        2. Read second 0xFF, opcode and size within timeout
        3. Read size - 2 more bytes (payload + checksum) within timeout

    Args:
        sock: Connected control socket
        max_len: Size of the destination buffer
        timeout: Bound on each wait after the first marker byte

    Returns:
        The reply, first marker byte through checksum

    Raises:
        GatewayTimeout: If the reply stalls after it started
        GatewayConnectionClosed: If the gateway closes mid-reply
        SizeOverflow: If the declared size exceeds max_len
        FramingError: If the declared size cannot hold a checksum
    """
    discarded = 0
    while True:
        c = timed_read(sock, 1, None)
        if not c:
            raise GatewayConnectionClosed(
                f"Connection closed by remote before reply header ({discarded} bytes discarded)"
            )
        if c[0] == MARKER:
            break
        discarded += 1

    if discarded:
        logger.warning(f"Discarded {discarded} bytes before reply header")

    header = bytes([MARKER]) + read_exact(sock, 3, timeout)

    size = header[3]
    if 2 + size > max_len:
        raise SizeOverflow(
            f"Size in reply packet is too large for buffer ({size} vs {max_len})"
        )
    if size < 3:
        raise FramingError(f"Size in reply packet is too small ({size})")

    rest = read_exact(sock, size - 2, timeout)
    return header + rest
