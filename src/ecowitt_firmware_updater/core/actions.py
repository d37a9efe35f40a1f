"""
Core workflow actions for the Ecowitt firmware updater.

This module exposes the functions the CLI calls. Protocol errors are
turned into failed OperationResults here; nothing below the CLI decides
how the process exits.
"""

import logging
import socket
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional, Union

from ..config import DEFAULT_PORT, UpdaterConfig
from ..protocol import (
    ControlSession,
    FirmwareTransferListener,
    GatewayTransportError,
    open_control_socket,
)
from .results import OperationResult

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class _ListLogHandler(logging.Handler):
    """Capture log records into a list of formatted strings."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.records = []
        self.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(self.format(record))


@contextmanager
def _capture_logs(logger_name: str = "ecowitt_firmware_updater"):
    """Capture logs for core operations into a list."""
    target_logger = logging.getLogger(logger_name)
    handler = _ListLogHandler()
    previous_level = target_logger.level
    if previous_level in (logging.NOTSET, logging.WARNING, logging.ERROR, logging.CRITICAL):
        target_logger.setLevel(logging.INFO)
    target_logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        target_logger.removeHandler(handler)
        target_logger.setLevel(previous_level)


def _peer_label(sock: socket.socket) -> str:
    """"host:port" of the connected gateway, or "" if unknown."""
    try:
        host, port = sock.getpeername()[:2]
    except (OSError, ValueError, TypeError):
        return ""
    return f"{host}:{port}"


def read_gateway_info(
    sock: socket.socket,
    config: Optional[UpdaterConfig] = None,
) -> OperationResult:
    """
    Read the gateway's MAC address and firmware version.

    Args:
        sock: Connected control socket (borrowed, not closed)
        config: Runtime settings

    Returns:
        OperationResult with:
            - ok: True if both replies were decoded
            - metadata["station_mac"]: "aa:bb:cc:dd:ee:ff"
            - metadata["firmware_version"]: e.g. "GW1100C_V2.3.2"
            - warnings: checksum/opcode mismatches tolerated on the way
    """
    gateway = _peer_label(sock)

    with _capture_logs() as logs:
        try:
            session = ControlSession(sock, config)
            mac_reply = session.read_station_mac()
            version_reply = session.read_firmware_version()

            result = OperationResult.success(operation="read_info", gateway=gateway, logs=logs)
            result.metadata["station_mac"] = str(mac_reply.value)
            result.metadata["firmware_version"] = str(version_reply.value)
            for warning in mac_reply.warnings + version_reply.warnings:
                result.add_warning(warning)
            return result

        except Exception as e:
            logger.exception("read_info failed")
            return OperationResult.from_exception("read_info", e, gateway=gateway, logs=logs)


def update_firmware(
    sock: socket.socket,
    image1: BinaryIO,
    image2: Optional[BinaryIO] = None,
    config: Optional[UpdaterConfig] = None,
    progress_cb: Optional[Callable[[int, int], None]] = None,
) -> OperationResult:
    """
    Perform a firmware update over an already-connected control socket.

    The transfer listener is bound and listening before WRITE_UPDATE is
    sent, so the gateway can connect back as soon as it has replied.
    Image streams are borrowed; the caller opens and closes them.

    Args:
        sock: Connected control socket (borrowed, not closed)
        image1: Opened first (or only) firmware image
        image2: Opened second image for dual-image gateways
        config: Runtime settings
        progress_cb: Optional callback(bytes_sent, image_size), once per chunk

    Returns:
        OperationResult with:
            - ok: True if the gateway accepted and the transfer ran
            - bytes_len: firmware bytes sent
            - metadata["callback_address"], metadata["callback_port"]
            - metadata["image"]: image the gateway asked for
            - metadata["packets_sent"], metadata["bytes_sent"]
            - metadata["completed"]: whether the gateway said "end"
            - warnings: transfer anomalies (early disconnect, EOF requests)
    """
    gateway = _peer_label(sock)

    with _capture_logs() as logs:
        listener = FirmwareTransferListener(sock, config)
        try:
            with listener:
                callback_address, callback_port = listener.address, listener.port
                ControlSession(sock, config).write_update(callback_address, callback_port)
                summary = listener.serve_once(image1, image2, progress_cb)

        except Exception as e:
            logger.exception("update_firmware failed")
            result = OperationResult.from_exception(
                "update_firmware", e, gateway=gateway, logs=logs
            )
            if listener.port:
                result.metadata["callback_address"] = listener.address
                result.metadata["callback_port"] = listener.port
            return result

        result = OperationResult.success(
            operation="update_firmware",
            gateway=gateway,
            bytes_len=summary.bytes_sent,
            logs=logs,
        )
        result.metadata["callback_address"] = callback_address
        result.metadata["callback_port"] = callback_port
        result.metadata["image"] = summary.image_name
        result.metadata["image_size"] = summary.image_size
        result.metadata["packets_sent"] = summary.packets_sent
        result.metadata["bytes_sent"] = summary.bytes_sent
        result.metadata["completed"] = summary.completed
        for anomaly in summary.anomalies:
            result.add_warning(anomaly)
        return result


def run_gateway_session(
    host: str,
    port: int = DEFAULT_PORT,
    firmware1: Optional[PathLike] = None,
    firmware2: Optional[PathLike] = None,
    config: Optional[UpdaterConfig] = None,
    progress_cb: Optional[Callable[[int, int], None]] = None,
) -> List[OperationResult]:
    """
    Connect to a gateway, read its identity, and optionally update it.

    Image files are opened before connecting and stay open until the
    transfer is over; the control socket is closed on every path.

    Args:
        host: Gateway host name or IPv4 address
        port: Gateway API port
        firmware1: Path of the first (or only) firmware image
        firmware2: Path of the second image for dual-image gateways
        config: Runtime settings
        progress_cb: Passed on to update_firmware

    Returns:
        Results in execution order. A failed "validate_config",
        "open_images" or "connect" result is returned alone. The update
        only runs if the identity read succeeded.
    """
    config = config or UpdaterConfig()
    gateway = f"{host}:{port}"
    results: List[OperationResult] = []

    try:
        config.validate()
    except ValueError as e:
        return [OperationResult.failure(
            operation="validate_config",
            error=str(e),
            gateway=gateway,
        )]

    with ExitStack() as stack:
        image1: Optional[BinaryIO] = None
        image2: Optional[BinaryIO] = None
        try:
            if firmware1 is not None:
                image1 = stack.enter_context(open(firmware1, "rb"))
            if firmware2 is not None:
                image2 = stack.enter_context(open(firmware2, "rb"))
        except OSError as e:
            return [OperationResult.failure(
                operation="open_images",
                error=f"Cannot open firmware image: {e}",
                gateway=gateway,
            )]

        with _capture_logs() as logs:
            try:
                sock = open_control_socket(host, port, config.connect_timeout)
            except GatewayTransportError as e:
                logger.error(f"Connect failed: {e}")
                return [OperationResult.from_exception("connect", e, gateway=gateway, logs=logs)]
        stack.callback(sock.close)

        info = read_gateway_info(sock, config)
        results.append(info)

        if image1 is not None:
            if info.ok:
                results.append(update_firmware(sock, image1, image2, config, progress_cb))
            else:
                logger.warning("Skipping firmware update: gateway identity could not be read")

    return results
