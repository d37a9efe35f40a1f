"""
Centralized parsing helpers for user-supplied values.

The CLI imports these helpers rather than re-implementing them.
"""

from typing import Dict, Optional

from ..config import DEFAULT_PORT

# Service names accepted in place of a port number
SERVICE_PORTS: Dict[str, int] = {
    "ecowitt": DEFAULT_PORT,
}


def parse_port(value: Optional[str]) -> int:
    """
    Parse a TCP port from string.

    This is the single source of truth for port parsing.

    Accepts:
        - Decimal: "45000"
        - Service name: "ecowitt"
        - None or empty for the default port (45000)

    Returns:
        Port number in 1-65535.

    Raises:
        ValueError: If value cannot be parsed or is out of range.
    """
    if value is None:
        return DEFAULT_PORT

    value = value.strip()
    if not value:
        return DEFAULT_PORT

    if value.lower() in SERVICE_PORTS:
        return SERVICE_PORTS[value.lower()]

    try:
        port = int(value, 10)
    except ValueError:
        raise ValueError(
            f"Invalid port '{value}'. Use a number (45000) or a service name "
            f"({', '.join(sorted(SERVICE_PORTS))})."
        )
    if not 1 <= port <= 0xFFFF:
        raise ValueError(f"Port {port} out of range 1-65535")
    return port
