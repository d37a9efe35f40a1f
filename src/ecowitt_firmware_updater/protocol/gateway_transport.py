"""
Gateway Socket Transport Layer

Handles low-level TCP stream I/O with Ecowitt weather-station gateways.

This module provides:
- Control connection setup (IPv4 only, like the gateways themselves)
- Persistent write-until-complete
- Reads with a bounded wait time
- Read-until-null for the text tokens of the transfer channel
"""

import socket
import logging
from typing import Optional, Tuple

from ..config import DEFAULT_PORT
from .errors import (
    GatewayTransportError,
    GatewayTimeout,
    GatewayConnectionClosed,
    ProtocolViolation,
)

logger = logging.getLogger(__name__)

MAX_TOKEN_LENGTH = 8192


def open_control_socket(
    host: str,
    port: int = DEFAULT_PORT,
    timeout: Optional[float] = 10.0,
) -> socket.socket:
    """
    Open the control connection to a gateway.

    Every IPv4 address the host resolves to is tried in turn.

    Args:
        host: Gateway host name or dotted IPv4 address
        port: TCP port of the gateway API (default 45000)
        timeout: Connect timeout in seconds (None blocks)

    Returns:
        Connected stream socket in blocking mode

    Raises:
        GatewayTransportError: If the host cannot be resolved or reached
    """
    try:
        addresses = socket.getaddrinfo(host, port, socket.AF_INET, socket.SOCK_STREAM)
    except socket.gaierror as e:
        raise GatewayTransportError(
            f"Could not resolve host \"{host}\", port \"{port}\": {e}"
        )

    last_error: Optional[OSError] = None
    for family, socktype, proto, _canonname, sockaddr in addresses:
        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as e:
            last_error = e
            continue

        logger.debug(f"Attempting to connect to host address {sockaddr[0]}, port {sockaddr[1]}")
        try:
            sock.settimeout(timeout)
            sock.connect(sockaddr)
        except OSError as e:
            logger.warning(f"Cannot connect to host address {sockaddr[0]}, port {sockaddr[1]}: {e}")
            sock.close()
            last_error = e
            continue

        # reply reads manage their own timeouts
        sock.settimeout(None)
        logger.debug(f"Connected to {sockaddr[0]}:{sockaddr[1]}")
        return sock

    raise GatewayTransportError(f"Cannot connect to {host}:{port}: {last_error}")


def local_address(sock: socket.socket) -> Tuple[str, int]:
    """
    Return the (address, port) this end of a socket is bound to.

    Raises:
        GatewayTransportError: If the socket has no IPv4 local address
    """
    try:
        name = sock.getsockname()
    except OSError as e:
        raise GatewayTransportError(f"getsockname failed: {e}")
    if not isinstance(name, tuple) or len(name) != 2:
        raise GatewayTransportError(f"Socket is not bound to an IPv4 address: {name!r}")
    return name[0], name[1]


def send_all(sock: socket.socket, data: bytes) -> None:
    """
    Send every byte of data, continuing across partial writes.

    Raises:
        GatewayTransportError: If the write fails
    """
    try:
        sock.sendall(data)
    except OSError as e:
        raise GatewayTransportError(f"Write error sending {len(data)} bytes: {e}")
    logger.debug(f">>> {data.hex().upper()}")


def timed_read(sock: socket.socket, length: int, timeout: Optional[float]) -> bytes:
    """
    Read up to length bytes, waiting at most timeout seconds for any.

    Args:
        sock: Connected stream socket
        length: Maximum number of bytes to return
        timeout: Seconds to wait; None waits indefinitely

    Returns:
        The bytes read; empty when the peer has closed the stream

    Raises:
        GatewayTimeout: If nothing arrived in time
        GatewayTransportError: If the read fails
    """
    old_timeout = sock.gettimeout()
    try:
        sock.settimeout(timeout)
        data = sock.recv(length)
    except socket.timeout:
        raise GatewayTimeout(f"No data within {timeout}s")
    except OSError as e:
        raise GatewayTransportError(f"Read error: {e}")
    finally:
        try:
            sock.settimeout(old_timeout)
        except OSError:
            # socket already torn down by the failing read
            pass

    if data:
        logger.debug(f"<<< {data.hex().upper()}")
    return data


def read_exact(sock: socket.socket, length: int, timeout: Optional[float]) -> bytes:
    """
    Read exactly length bytes, tolerating partial arrivals.

    Each individual wait is bounded by timeout.

    Raises:
        GatewayTimeout: If the stream stalls
        GatewayConnectionClosed: If the peer closes with bytes still owed
    """
    out = bytearray()
    while len(out) < length:
        chunk = timed_read(sock, length - len(out), timeout)
        if not chunk:
            raise GatewayConnectionClosed(
                f"Connection closed by remote with {length - len(out)} bytes still owed"
            )
        out.extend(chunk)
    return bytes(out)


def read_until_null(
    sock: socket.socket,
    max_len: int = MAX_TOKEN_LENGTH,
    timeout: Optional[float] = None,
) -> bytes:
    """
    Read input until a terminating null is seen.

    Returns:
        The bytes read including the null, or b"" if the connection was
        closed before the null arrived

    Raises:
        ProtocolViolation: If max_len bytes arrive without a terminator
        GatewayTransportError: If the read fails
    """
    buf = bytearray()
    while len(buf) < max_len:
        c = timed_read(sock, 1, timeout)
        if not c:
            if buf:
                logger.debug(f"Connection closed after partial token {bytes(buf)!r}")
            return b""
        buf.extend(c)
        if c == b"\x00":
            return bytes(buf)

    raise ProtocolViolation(f"No null terminator within {max_len} bytes")
