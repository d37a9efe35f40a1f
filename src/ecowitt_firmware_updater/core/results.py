"""
Result objects for core operations.

Every step of a gateway session ("validate_config", "open_images",
"connect", "read_info", "update_firmware") reports one OperationResult.
The CLI renders them and picks the exit code from them; --json dumps
them as they are.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any


@dataclass
class OperationResult:
    """
    Outcome of one step of a gateway session.

    Attributes:
        ok: Whether the step completed
        operation: Step name (e.g., "read_info", "update_firmware")
        gateway: Gateway the step talked to ("host:port")
        bytes_len: Firmware bytes transferred
        warnings: Tolerated protocol oddities (checksum, early disconnect)
        errors: Why the step failed
        metadata: Step-specific values (station_mac, packets_sent, ...)
        logs: Log lines captured while the step ran
    """
    ok: bool
    operation: str
    gateway: str = ""
    bytes_len: int = 0
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "ok": self.ok,
            "operation": self.operation,
            "gateway": self.gateway,
            "bytes_len": self.bytes_len,
            "warnings": self.warnings,
            "errors": self.errors,
            "metadata": self.metadata,
            "logs": self.logs,
        }

    @classmethod
    def success(
        cls,
        operation: str,
        gateway: str = "",
        bytes_len: int = 0,
        **kwargs,
    ) -> "OperationResult":
        """Create a successful result."""
        return cls(
            ok=True,
            operation=operation,
            gateway=gateway,
            bytes_len=bytes_len,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        operation: str,
        error: str,
        gateway: str = "",
        **kwargs,
    ) -> "OperationResult":
        """Create a failed result."""
        result = cls(
            ok=False,
            operation=operation,
            gateway=gateway,
            **kwargs,
        )
        result.errors.append(error)
        return result

    @classmethod
    def from_exception(
        cls,
        operation: str,
        exc: BaseException,
        gateway: str = "",
        **kwargs,
    ) -> "OperationResult":
        """
        Create a failed result from a caught exception.

        metadata["error_type"] keeps the exception class name (e.g.
        "UpdateRejected", "GatewayTimeout") so scripts reading --json can
        branch on it without parsing the message.
        """
        result = cls.failure(operation, str(exc), gateway=gateway, **kwargs)
        result.metadata["error_type"] = type(exc).__name__
        return result
