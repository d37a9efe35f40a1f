"""
Reply interpretation for the gateway control channel.

A reply is validated (header, size, checksum), then its payload is
handed to the decoder registered for the opcode it carries. Decoders
pull fields through a PayloadCursor; whatever a handled opcode's decoder
leaves behind means the declared size did not match the payload shape.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..config import UpdaterConfig
from ..utils.hexdump import hexdump
from .errors import (
    ChecksumMismatch,
    FramingError,
    OpcodeMismatch,
    ProtocolViolation,
    UpdateRejected,
)
from .packets import Opcode, PayloadCursor, opcode_name, parse_reply_frame

logger = logging.getLogger(__name__)

STATION_MAC_LENGTH = 6


@dataclass(frozen=True)
class StationMac:
    """Hardware (MAC) address of the gateway."""

    raw: bytes

    def __str__(self) -> str:
        return ":".join(f"{b:02x}" for b in self.raw)


@dataclass(frozen=True)
class UpdateStatus:
    """Result byte of a WRITE_UPDATE reply; 0 means accepted."""

    status: int

    @property
    def accepted(self) -> bool:
        return self.status == 0


@dataclass(frozen=True)
class GenericStatus:
    """First payload byte of a reply to an opcode we do not decode."""

    status: int
    unparsed: bytes = b""


@dataclass
class DecodedReply:
    """
    A validated, decoded control-channel reply.

    Attributes:
        opcode: Opcode the reply carried
        expected_opcode: Opcode of the request it answers
        payload: Raw payload bytes
        value: Decoded value (StationMac, str, UpdateStatus, GenericStatus)
        checksum_ok: Whether the trailing checksum matched
        warnings: Non-fatal problems noticed while interpreting
    """
    opcode: int
    expected_opcode: int
    payload: bytes
    value: Any = None
    checksum_ok: bool = True
    warnings: List[str] = field(default_factory=list)

    @property
    def opcode_matches(self) -> bool:
        return self.opcode == self.expected_opcode


def decode_station_mac(cursor: PayloadCursor) -> StationMac:
    """Sta_mac[6]"""
    return StationMac(cursor.take_bytes(STATION_MAC_LENGTH))


def decode_firmware_version(cursor: PayloadCursor) -> str:
    """
    Version length (1 byte), then that many bytes of version text.

    For example "EasyWeatherV1.2.0" or "GW1100C_V2.3.2".
    """
    length = cursor.take_byte()
    return cursor.take_bytes(length).decode("ascii", errors="replace")


def decode_update_status(cursor: PayloadCursor) -> UpdateStatus:
    """Result (1 byte): 0x00 success, 0x01 fail"""
    return UpdateStatus(cursor.take_byte())


REPLY_DECODERS: Dict[Opcode, Callable[[PayloadCursor], Any]] = {
    Opcode.READ_STATION_MAC: decode_station_mac,
    Opcode.READ_FIRMWARE_VERSION: decode_firmware_version,
    Opcode.WRITE_UPDATE: decode_update_status,
}


def _decode_generic(opcode: int, cursor: PayloadCursor, packet: bytes) -> GenericStatus:
    """Best-effort fallback for opcodes without a registered decoder."""
    if cursor.remaining() < 1:
        raise ProtocolViolation(
            f"Unhandled reply opcode 0x{opcode:02X} carries no status byte"
        )
    status = cursor.take_byte()
    unparsed = cursor.take_bytes(cursor.remaining())
    logger.warning(
        f"Unhandled reply: command=0x{opcode:02X}, length {len(packet)}, status=0x{status:02X}"
    )
    logger.debug(f"Dump of raw data - length {len(packet)} bytes:\n{hexdump(packet)}")
    return GenericStatus(status=status, unparsed=unparsed)


def interpret_reply_packet(
    expected_opcode: int,
    packet: bytes,
    config: Optional[UpdaterConfig] = None,
) -> DecodedReply:
    """
    Validate and decode a reply read by receive_reply_packet.

    Args:
        expected_opcode: Opcode of the request this reply answers
        packet: Complete reply, header through checksum
        config: Runtime settings (strict_checksum, debug)

    Returns:
        DecodedReply for the opcode actually received

    Raises:
        HeaderMismatch: If the reply does not start with FF FF
        FramingError: If the size or payload shape is wrong
        ChecksumMismatch: On a bad checksum with config.strict_checksum
        UpdateRejected: If a WRITE_UPDATE reply carries a non-zero status
        ProtocolViolation: If an unhandled reply has no status byte
    """
    config = config or UpdaterConfig()

    if config.debug:
        logger.debug(f"Reply is {len(packet)} bytes:\n{hexdump(packet)}")

    frame = parse_reply_frame(packet)
    reply = DecodedReply(
        opcode=frame.opcode,
        expected_opcode=expected_opcode,
        payload=frame.payload,
        checksum_ok=frame.checksum_ok,
    )

    if not frame.checksum_ok:
        mismatch = ChecksumMismatch(frame.checksum, frame.computed_checksum)
        if config.strict_checksum:
            raise mismatch
        logger.warning(str(mismatch))
        reply.warnings.append(str(mismatch))
    elif config.debug:
        logger.debug(f"Checksum OK: 0x{frame.checksum:02X}")

    if frame.opcode != expected_opcode:
        mismatch = OpcodeMismatch(expected_opcode, frame.opcode, len(frame.payload))
        logger.warning(str(mismatch))
        reply.warnings.append(str(mismatch))

    cursor = PayloadCursor(frame.payload)
    try:
        decoder = REPLY_DECODERS[Opcode(frame.opcode)]
    except ValueError:
        reply.value = _decode_generic(frame.opcode, cursor, packet)
        return reply

    reply.value = decoder(cursor)
    if cursor.remaining() != 0:
        raise FramingError(
            f"{cursor.remaining()} payload bytes left over after decoding "
            f"{opcode_name(frame.opcode)} - declared size {frame.size} does not match"
        )

    if isinstance(reply.value, UpdateStatus):
        logger.debug(f"WRITE_UPDATE status = 0x{reply.value.status:02X}")
        if not reply.value.accepted:
            raise UpdateRejected(reply.value.status)

    return reply
