"""
Exception hierarchy for the gateway control and transfer protocols.

The protocol layer raises these; core.actions turns them into
OperationResult failures so nothing below the CLI ever ends the process.
"""


class GatewayError(Exception):
    """Base exception for all gateway protocol errors"""
    pass


class GatewayTransportError(GatewayError):
    """Socket connect/read/write failure"""
    pass


class GatewayTimeout(GatewayTransportError):
    """No data arrived within the bounded wait"""
    pass


class GatewayConnectionClosed(GatewayTransportError):
    """Peer closed the stream while bytes were still owed"""
    pass


class PacketError(GatewayError):
    """Malformed control-channel reply"""
    pass


class HeaderMismatch(PacketError):
    """Reply does not start with the FF FF marker"""
    pass


class SizeOverflow(PacketError):
    """Declared reply size does not fit the receive buffer"""
    pass


class FramingError(PacketError):
    """Declared size does not match the payload shape of the opcode"""
    pass


class ChecksumMismatch(PacketError):
    """
    Trailing checksum byte disagrees with the computed sum.

    Only raised when UpdaterConfig.strict_checksum is set; otherwise the
    mismatch is recorded as a warning and decoding continues.
    """

    def __init__(self, specified: int, computed: int):
        self.specified = specified
        self.computed = computed
        super().__init__(
            f"checksum error: specified 0x{specified:02X}, computed 0x{computed:02X}"
        )


class OpcodeMismatch(GatewayError):
    """Reply opcode differs from the one the request carried"""

    def __init__(self, expected: int, received: int, length: int = 0):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Received command 0x{received:02X} (data length={length}) "
            f"in response to 0x{expected:02X}"
        )


class UpdateRejected(GatewayError):
    """Gateway declined the firmware update request"""

    def __init__(self, status: int):
        self.status = status
        super().__init__(f"Gateway rejected the update request (status 0x{status:02X})")


class ProtocolViolation(GatewayError):
    """Peer sent something the current protocol state cannot accept"""
    pass


class ImageUnavailable(ProtocolViolation):
    """Device asked for a firmware image that was not supplied"""
    pass
