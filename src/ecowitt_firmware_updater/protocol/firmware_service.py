"""
Firmware transfer service for Ecowitt gateways.

After WRITE_UPDATE is accepted, the gateway opens a new TCP connection
to the address and port it was given and pulls the image:

    ->  "user1.bin\\0" or "user2.bin\\0"   (which image it wants)
    <-  file size, 4 bytes, network byte order (NOT a string)
    ->  "start\\0"
    <-  first 1024-byte chunk
    ->  "continue\\0"                      (repeated)
    <-  next chunk (the last one is shorter unless the size divides evenly)
    ->  "end\\0", then the gateway closes the connection

Older devices such as the GW1000 carry two images ("user1"/"user2");
newer ones have a single image and always ask for "user1.bin".
"""

import io
import logging
import socket
import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Callable, Dict, List, Optional, Tuple

from ..config import UpdaterConfig
from .errors import (
    GatewayTimeout,
    GatewayTransportError,
    ImageUnavailable,
    ProtocolViolation,
)
from .gateway_transport import local_address, read_until_null, send_all

logger = logging.getLogger(__name__)


class TransferState(Enum):
    """States of the transfer conversation."""
    BASE = "state_base"          # waiting for "user1.bin" or "user2.bin"
    GOT_USER1 = "got_user1"
    GOT_USER2 = "got_user2"
    GOT_START = "got_start"
    GOT_CONTINUE = "got_continue"
    GOT_END = "got_end"


class TransferToken(Enum):
    """Requests the gateway sends; the trailing null is part of each."""
    USER1 = b"user1.bin\x00"
    USER2 = b"user2.bin\x00"
    START = b"start\x00"
    CONTINUE = b"continue\x00"
    END = b"end\x00"


TRANSITIONS: Dict[Tuple[TransferState, TransferToken], TransferState] = {
    (TransferState.BASE, TransferToken.USER1): TransferState.GOT_USER1,
    (TransferState.BASE, TransferToken.USER2): TransferState.GOT_USER2,
    (TransferState.GOT_USER1, TransferToken.START): TransferState.GOT_START,
    (TransferState.GOT_USER2, TransferToken.START): TransferState.GOT_START,
    (TransferState.GOT_START, TransferToken.CONTINUE): TransferState.GOT_CONTINUE,
    (TransferState.GOT_CONTINUE, TransferToken.CONTINUE): TransferState.GOT_CONTINUE,
    (TransferState.GOT_START, TransferToken.END): TransferState.GOT_END,
    (TransferState.GOT_CONTINUE, TransferToken.END): TransferState.GOT_END,
}

MAX_IMAGE_SIZE = 0xFFFFFFFF


def parse_token(raw: bytes) -> TransferToken:
    """
    Match a null-terminated request against the token vocabulary.

    Raises:
        ProtocolViolation: For anything that is not exactly a known token
    """
    try:
        return TransferToken(bytes(raw))
    except ValueError:
        raise ProtocolViolation(f"Received unexpected {describe_token(raw)} from the client")


def describe_token(raw: bytes) -> str:
    """Printable form of a request for logs and error messages."""
    return '"' + raw.rstrip(b"\x00").decode("ascii", errors="replace") + '"'


@dataclass
class TransferSummary:
    """
    Outcome of one firmware transfer connection.

    Attributes:
        state: State the conversation ended in
        packets_sent: Chunks sent since "start"
        bytes_sent: Image bytes sent
        image_name: Image the gateway asked for ("user1.bin"/"user2.bin")
        image_size: Size announced to the gateway
        anomalies: Non-fatal oddities (early disconnect, chunk request at EOF)
    """
    state: TransferState = TransferState.BASE
    packets_sent: int = 0
    bytes_sent: int = 0
    image_name: str = ""
    image_size: int = 0
    anomalies: List[str] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        """True once the gateway said "end"."""
        return self.state is TransferState.GOT_END


class FirmwareTransferSession:
    """
    State machine for one inbound transfer connection.

    Image streams are borrowed: the caller opens them before the transfer
    and closes them afterwards.
    progress_cb, if given, is called with (bytes_sent, image_size) after
    every chunk handed out.

    Example:
        with open("user1.bin", "rb") as image:
            summary = FirmwareTransferSession(image).run(conn)
    """

    def __init__(
        self,
        image1: BinaryIO,
        image2: Optional[BinaryIO] = None,
        config: Optional[UpdaterConfig] = None,
        progress_cb: Optional[Callable[[int, int], None]] = None,
    ):
        self.images: Dict[TransferToken, Optional[BinaryIO]] = {
            TransferToken.USER1: image1,
            TransferToken.USER2: image2,
        }
        self.config = config or UpdaterConfig()
        self.summary = TransferSummary()
        self.progress_cb = progress_cb
        self._image: Optional[BinaryIO] = None

    @property
    def state(self) -> TransferState:
        return self.summary.state

    def _select_image(self, token: TransferToken) -> bytes:
        image = self.images[token]
        if image is None:
            raise ImageUnavailable(
                f"Device requested {describe_token(token.value)}, "
                "but that firmware image was not specified"
            )

        size = image.seek(0, io.SEEK_END)
        image.seek(0)
        if size > MAX_IMAGE_SIZE:
            raise ProtocolViolation(f"Image of {size} bytes does not fit the 4-byte size field")

        self._image = image
        self.summary.image_name = token.value.rstrip(b"\x00").decode("ascii")
        self.summary.image_size = size
        logger.info(f"File size is {size} bytes.")
        return struct.pack(">I", size)

    def _next_chunk(self) -> Optional[bytes]:
        chunk = self._image.read(self.config.chunk_size)
        if not chunk:
            # The gateway knows the size and should have said "end" instead.
            message = (
                f"At EOF on firmware file after {self.summary.packets_sent} packets, "
                f"{self.summary.bytes_sent} bytes"
            )
            logger.warning(message)
            self.summary.anomalies.append(message)
            return None

        self.summary.packets_sent += 1
        self.summary.bytes_sent += len(chunk)
        logger.debug(
            f"Sending packet {self.summary.packets_sent:4d} - {len(chunk):4d} bytes"
            f" - sent={self.summary.bytes_sent}"
        )
        if self.progress_cb:
            self.progress_cb(self.summary.bytes_sent, self.summary.image_size)
        return chunk

    def handle(self, raw: bytes) -> Optional[bytes]:
        """
        Advance the state machine with one request.

        Args:
            raw: Null-terminated request as received

        Returns:
            Bytes to send back, or None when nothing is owed

        Raises:
            ProtocolViolation: If the request is unknown or not valid in
                the current state; the state is left unchanged
            ImageUnavailable: If "user2.bin" is requested without a
                second image
        """
        token = parse_token(raw)
        next_state = TRANSITIONS.get((self.state, token))
        if next_state is None:
            raise ProtocolViolation(
                f"Received unexpected {describe_token(raw)} while in {self.state.value} state"
            )

        response: Optional[bytes] = None
        if token in (TransferToken.USER1, TransferToken.USER2):
            response = self._select_image(token)
        elif token is TransferToken.START:
            self.summary.packets_sent = 0
            response = self._next_chunk()
        elif token is TransferToken.CONTINUE:
            response = self._next_chunk()

        if next_state is not self.state:
            self.summary.state = next_state
            if self.config.trace:
                logger.debug(f"newstate={next_state.value}")
        return response

    def run(self, conn: socket.socket) -> TransferSummary:
        """
        Serve requests on conn until "end" or disconnect.

        Disconnecting before "end" is recorded as an anomaly rather than
        raised.

        Raises:
            ProtocolViolation: On an unexpected request
            GatewayTransportError: On socket failure
        """
        while not self.summary.completed:
            raw = read_until_null(conn)
            if not raw:
                message = "Client closed the connection before END"
                logger.warning(message)
                self.summary.anomalies.append(message)
                break

            logger.info(f">>> {describe_token(raw)}")
            response = self.handle(raw)
            if response is not None:
                send_all(conn, response)

        packets = self.summary.packets_sent
        logger.info(
            f"Sent total of {packets} packet{'' if packets == 1 else 's'}, "
            f"{self.summary.bytes_sent} bytes."
        )
        return self.summary


def prepare_transfer(control_sock: socket.socket) -> Tuple[socket.socket, str, int]:
    """
    Create the listening socket the gateway will connect back to.

    It is bound to the local address of the connected control socket,
    which is an address the gateway can already reach, with an
    OS-assigned port.

    Returns:
        (listening socket, bound address, bound port)

    Raises:
        GatewayTransportError: If the socket cannot be created or bound
    """
    address, control_port = local_address(control_sock)
    logger.info(f"Command socket address is {address}, port {control_port}.")

    try:
        listen_sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    except OSError as e:
        raise GatewayTransportError(f"Can't create server socket: {e}")

    try:
        listen_sock.bind((address, 0))
        bound_address, bound_port = listen_sock.getsockname()
        listen_sock.listen(1)
    except OSError as e:
        listen_sock.close()
        raise GatewayTransportError(f"Cannot bind/listen on local address {address}: {e}")

    logger.info(
        f"Firmware server socket is bound to host address {bound_address}, port {bound_port}"
    )
    return listen_sock, bound_address, bound_port


def accept_once(
    listen_sock: socket.socket,
    timeout: Optional[float] = None,
) -> Tuple[socket.socket, Tuple[str, int]]:
    """
    Wait for the gateway's inbound connection.

    Interrupted waits are retried.

    Raises:
        GatewayTimeout: If timeout is set and nobody connected in time
        GatewayTransportError: If accept fails
    """
    listen_sock.settimeout(timeout)
    while True:
        try:
            conn, peer = listen_sock.accept()
            break
        except InterruptedError:
            continue
        except socket.timeout:
            raise GatewayTimeout(f"No inbound connection within {timeout}s")
        except OSError as e:
            raise GatewayTransportError(f"Cannot accept incoming connection on socket: {e}")

    conn.settimeout(None)
    logger.info(f"Received inbound connection from address {peer[0]}, port {peer[1]}")
    return conn, peer


class FirmwareTransferListener:
    """
    Owns the listening socket for one firmware transfer.

    Exactly one connection is served; the listening socket is closed
    afterwards whatever the outcome.

    Example:
        with FirmwareTransferListener(control_sock, config) as listener:
            session.write_update(listener.address, listener.port)
            summary = listener.serve_once(image1, image2)
    """

    def __init__(self, control_sock: socket.socket, config: Optional[UpdaterConfig] = None):
        self.control_sock = control_sock
        self.config = config or UpdaterConfig()
        self.sock: Optional[socket.socket] = None
        self.address = ""
        self.port = 0

    def open(self) -> None:
        self.sock, self.address, self.port = prepare_transfer(self.control_sock)

    def close(self) -> None:
        if self.sock is not None:
            self.sock.close()
            self.sock = None
            logger.debug("Closed firmware server socket")

    def __enter__(self) -> "FirmwareTransferListener":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def serve_once(
        self,
        image1: BinaryIO,
        image2: Optional[BinaryIO] = None,
        progress_cb: Optional[Callable[[int, int], None]] = None,
    ) -> TransferSummary:
        """
        Accept the gateway's connection and stream the requested image.

        Raises:
            GatewayTransportError: If the listener is not open or I/O fails
            ProtocolViolation: If the gateway breaks the transfer protocol
        """
        if self.sock is None:
            raise GatewayTransportError("Firmware server socket is not open")

        logger.info("Waiting for inbound connection...")
        conn, _peer = accept_once(self.sock, self.config.accept_timeout)
        try:
            session = FirmwareTransferSession(image1, image2, self.config, progress_cb)
            return session.run(conn)
        finally:
            conn.close()
            # one client per invocation
            self.close()
