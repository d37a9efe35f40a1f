"""
Standardized warning and message system for the Ecowitt firmware updater.

Provides structured warning items with stable codes so the CLI (and any
other front end) can display gateway problems consistently.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Dict, Any

from .results import OperationResult


class MessageLevel(Enum):
    """Severity level for messages."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class WarningCode(Enum):
    """Stable warning codes for known conditions."""
    # Connection warnings
    W_CONNECT_FAILED = "W_CONNECT_FAILED"
    W_TIMEOUT = "W_TIMEOUT"
    W_CONNECTION_CLOSED = "W_CONNECTION_CLOSED"

    # Control channel warnings
    W_CHECKSUM_MISMATCH = "W_CHECKSUM_MISMATCH"
    W_OPCODE_MISMATCH = "W_OPCODE_MISMATCH"
    W_MALFORMED_REPLY = "W_MALFORMED_REPLY"
    W_UPDATE_REJECTED = "W_UPDATE_REJECTED"

    # Transfer warnings
    W_IMAGE_UNAVAILABLE = "W_IMAGE_UNAVAILABLE"
    W_EARLY_DISCONNECT = "W_EARLY_DISCONNECT"
    W_CHUNK_AT_EOF = "W_CHUNK_AT_EOF"
    W_UNEXPECTED_REQUEST = "W_UNEXPECTED_REQUEST"

    # Generic
    W_UNKNOWN = "W_UNKNOWN"


# Default remediation hints for each warning code
WARNING_REMEDIATIONS: Dict[WarningCode, str] = {
    WarningCode.W_CONNECT_FAILED:
        "Check the gateway's IP address and that it is on the same network. Default port is 45000.",
    WarningCode.W_TIMEOUT:
        "The gateway stopped answering mid-reply. Retry, or raise --timeout.",
    WarningCode.W_CONNECTION_CLOSED:
        "The gateway closed the connection. Power cycle it and try again.",
    WarningCode.W_CHECKSUM_MISMATCH:
        "Reply was used anyway. Use --strict-checksum to treat this as fatal.",
    WarningCode.W_OPCODE_MISMATCH:
        "The gateway answered a different command. Another client may be talking to it.",
    WarningCode.W_MALFORMED_REPLY:
        "Reply could not be decoded. Run with --debug to see a hex dump.",
    WarningCode.W_UPDATE_REJECTED:
        "The gateway refused the update. Check that no other update is in progress.",
    WarningCode.W_IMAGE_UNAVAILABLE:
        "This gateway wants a second image. Pass both user1.bin and user2.bin.",
    WarningCode.W_EARLY_DISCONNECT:
        "The gateway hung up before the transfer finished. Check its firmware version.",
    WarningCode.W_CHUNK_AT_EOF:
        "The gateway asked for more data than the image holds. Check the image file.",
    WarningCode.W_UNEXPECTED_REQUEST:
        "The gateway sent an unknown request. Run with --verbose to see the exchange.",
    WarningCode.W_UNKNOWN:
        "Check logs for more details.",
}


@dataclass
class WarningItem:
    """
    Structured warning message with stable code.

    Attributes:
        level: Severity (INFO, WARN, ERROR)
        code: Stable warning code for programmatic handling
        title: Short, user-facing title
        detail: Longer explanation of the issue
        remediation: Suggested action to resolve the issue
    """
    level: MessageLevel
    code: WarningCode
    title: str
    detail: str = ""
    remediation: str = ""

    def __post_init__(self):
        """Set default remediation if not provided."""
        if not self.remediation and self.code in WARNING_REMEDIATIONS:
            self.remediation = WARNING_REMEDIATIONS[self.code]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON/display."""
        return {
            "level": self.level.value,
            "code": self.code.value,
            "title": self.title,
            "detail": self.detail,
            "remediation": self.remediation,
        }

    def to_cli_string(self, verbose: bool = False) -> str:
        """
        Format for CLI output.

        The code is always shown so users can search for it; detail and
        remediation only in verbose mode.
        """
        icons = {
            MessageLevel.INFO: "ℹ️ ",
            MessageLevel.WARN: "⚠️ ",
            MessageLevel.ERROR: "❌",
        }
        lines = [f"{icons.get(self.level, '')} [{self.code.value}] {self.title}"]
        if verbose:
            if self.detail:
                lines.append(f"   {self.detail}")
            if self.remediation:
                lines.append(f"   → {self.remediation}")
        return "\n".join(lines)


def classify_message(msg: str) -> WarningCode:
    """
    Pick a warning code for a plain message by its wording.

    The protocol layer's messages are stable, so matching on a few
    keywords is enough.
    """
    msg_lower = msg.lower()

    if "checksum" in msg_lower:
        return WarningCode.W_CHECKSUM_MISMATCH
    if "in response to" in msg_lower:
        return WarningCode.W_OPCODE_MISMATCH
    if "rejected" in msg_lower:
        return WarningCode.W_UPDATE_REJECTED
    if "not specified" in msg_lower:
        return WarningCode.W_IMAGE_UNAVAILABLE
    if "before end" in msg_lower:
        return WarningCode.W_EARLY_DISCONNECT
    if "at eof" in msg_lower:
        return WarningCode.W_CHUNK_AT_EOF
    if "unexpected" in msg_lower:
        return WarningCode.W_UNEXPECTED_REQUEST
    if "cannot connect" in msg_lower or "could not resolve" in msg_lower:
        return WarningCode.W_CONNECT_FAILED
    if "no data within" in msg_lower or "no inbound connection" in msg_lower:
        return WarningCode.W_TIMEOUT
    if "closed by remote" in msg_lower:
        return WarningCode.W_CONNECTION_CLOSED
    if "size" in msg_lower or "ff ff" in msg_lower or "payload" in msg_lower:
        return WarningCode.W_MALFORMED_REPLY
    return WarningCode.W_UNKNOWN


def warnings_from_strings(
    warning_strings: List[str],
    default_level: MessageLevel = MessageLevel.WARN,
) -> List[WarningItem]:
    """
    Convert plain warning strings to WarningItem list.

    Args:
        warning_strings: List of plain warning message strings
        default_level: Default severity level

    Returns:
        List of WarningItem objects
    """
    return [
        WarningItem(level=default_level, code=classify_message(msg), title=msg)
        for msg in warning_strings
    ]


def result_to_warnings(result: OperationResult) -> List[WarningItem]:
    """
    Convert Result object's warnings and errors to WarningItem list.

    Args:
        result: OperationResult from core operations

    Returns:
        List of WarningItem objects
    """
    items = warnings_from_strings(result.warnings, MessageLevel.WARN)
    items.extend(warnings_from_strings(result.errors, MessageLevel.ERROR))
    return items
