"""
Core module for the Ecowitt firmware updater.

This module provides the single source of truth for:
- Port parsing (parsing.py)
- Result objects (results.py)
- Gateway info/update workflows (actions.py)
- Standardized warnings/messages (messages.py)

The CLI calls into this module rather than driving the protocol layer
itself.
"""

from .parsing import parse_port
from .results import OperationResult
from .messages import (
    MessageLevel,
    WarningCode,
    WarningItem,
    classify_message,
    warnings_from_strings,
    result_to_warnings,
)
from .actions import (
    read_gateway_info,
    update_firmware,
    run_gateway_session,
)

__all__ = [
    # Parsing
    "parse_port",
    # Results
    "OperationResult",
    # Messages
    "MessageLevel",
    "WarningCode",
    "WarningItem",
    "classify_message",
    "warnings_from_strings",
    "result_to_warnings",
    # Actions
    "read_gateway_info",
    "update_firmware",
    "run_gateway_session",
]
