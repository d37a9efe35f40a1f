"""
Runtime configuration for gateway operations.

One UpdaterConfig is built by the CLI (or a caller) and handed to every
component that needs it; nothing reads debug/verbose from module state.
"""

from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

DEFAULT_PORT = 45000
DEFAULT_CHUNK_SIZE = 1024  # per observation of the WS View app
MAX_CHUNK_SIZE = 1024
DEFAULT_REPLY_TIMEOUT = 1.0
DEFAULT_REPLY_BUFFER_SIZE = 1024


@dataclass
class UpdaterConfig:
    """
    Settings shared by the control session and the firmware transfer.

    Attributes:
        debug: Log raw replies as hex dumps and every state change
        verbose: Log protocol milestones (state changes, connections)
        reply_timeout: Seconds to wait for each part of a reply once its
                       first marker byte has arrived
        reply_buffer_size: Largest reply accepted on the control channel
        chunk_size: Firmware bytes sent per start/continue request
        strict_checksum: Treat a reply checksum mismatch as fatal instead
                         of a warning
        accept_timeout: Seconds to wait for the gateway to connect back
                        (None waits indefinitely)
        connect_timeout: Seconds allowed for the control connection
    """
    debug: bool = False
    verbose: bool = False
    reply_timeout: float = DEFAULT_REPLY_TIMEOUT
    reply_buffer_size: int = DEFAULT_REPLY_BUFFER_SIZE
    chunk_size: int = DEFAULT_CHUNK_SIZE
    strict_checksum: bool = False
    accept_timeout: Optional[float] = None
    connect_timeout: Optional[float] = 10.0

    def validate(self) -> "UpdaterConfig":
        """Check value ranges; returns self so it can be chained."""
        if self.reply_timeout <= 0:
            raise ValueError(f"reply_timeout must be > 0, got {self.reply_timeout}")
        if self.reply_buffer_size < 5:
            raise ValueError(
                f"reply_buffer_size must hold at least one empty packet, got {self.reply_buffer_size}"
            )
        if not 0 < self.chunk_size <= MAX_CHUNK_SIZE:
            raise ValueError(
                f"chunk_size must be between 1 and {MAX_CHUNK_SIZE}, got {self.chunk_size}"
            )
        if self.accept_timeout is not None and self.accept_timeout <= 0:
            raise ValueError(f"accept_timeout must be > 0, got {self.accept_timeout}")
        if self.connect_timeout is not None and self.connect_timeout <= 0:
            raise ValueError(f"connect_timeout must be > 0, got {self.connect_timeout}")
        return self

    @property
    def trace(self) -> bool:
        """Whether state changes should be reported."""
        return self.debug or self.verbose

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)
