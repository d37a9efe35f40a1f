"""Gateway protocol layer - control-channel packets and firmware transfer."""

from .errors import (
    GatewayError,
    GatewayTransportError,
    GatewayTimeout,
    GatewayConnectionClosed,
    PacketError,
    HeaderMismatch,
    SizeOverflow,
    FramingError,
    ChecksumMismatch,
    OpcodeMismatch,
    UpdateRejected,
    ProtocolViolation,
    ImageUnavailable,
)
from .gateway_transport import (
    DEFAULT_PORT,
    open_control_socket,
    send_all,
    timed_read,
    read_exact,
    read_until_null,
)
from .packets import (
    Opcode,
    PayloadCursor,
    ReplyFrame,
    build_command_packet,
    parse_reply_frame,
    receive_reply_packet,
)
from .replies import (
    DecodedReply,
    StationMac,
    UpdateStatus,
    GenericStatus,
    interpret_reply_packet,
)
from .control_session import ControlSession, build_update_payload
from .firmware_service import (
    TransferState,
    TransferToken,
    TransferSummary,
    FirmwareTransferSession,
    FirmwareTransferListener,
    prepare_transfer,
    accept_once,
)

__all__ = [
    # Errors
    "GatewayError",
    "GatewayTransportError",
    "GatewayTimeout",
    "GatewayConnectionClosed",
    "PacketError",
    "HeaderMismatch",
    "SizeOverflow",
    "FramingError",
    "ChecksumMismatch",
    "OpcodeMismatch",
    "UpdateRejected",
    "ProtocolViolation",
    "ImageUnavailable",
    # Transport
    "DEFAULT_PORT",
    "open_control_socket",
    "send_all",
    "timed_read",
    "read_exact",
    "read_until_null",
    # Packets
    "Opcode",
    "PayloadCursor",
    "ReplyFrame",
    "build_command_packet",
    "parse_reply_frame",
    "receive_reply_packet",
    # Replies
    "DecodedReply",
    "StationMac",
    "UpdateStatus",
    "GenericStatus",
    "interpret_reply_packet",
    # Control session
    "ControlSession",
    "build_update_payload",
    # Firmware transfer
    "TransferState",
    "TransferToken",
    "TransferSummary",
    "FirmwareTransferSession",
    "FirmwareTransferListener",
    "prepare_transfer",
    "accept_once",
]
