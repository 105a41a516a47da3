"""
RPC Connection State Machine.

Drives the handshake, frame exchange, ping/pong keep-alive and teardown
over an exclusively owned transport. Every operation performs a bounded
number of transport calls and returns; the caller re-invokes open() and
read() from its own poll loop.

Session errors are not raised. They are recorded in last_error_code and
last_error_message, and reported through on_disconnect.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from pipelink.ipc.exceptions import (
    ErrorCode,
    IPCConnectionError,
    IPCErrorCode,
    IPCProtocolError,
    IPCValidationError,
)
from pipelink.ipc.protocol import (
    HEADER_SIZE,
    MAX_APPLICATION_ID_LENGTH,
    MAX_PAYLOAD_SIZE,
    MessageFrame,
    Opcode,
    decode_document,
    encode_document,
    get_int_member,
    get_str_member,
    handshake_payload,
    is_ready_event,
    unpack_header,
)
from pipelink.ipc.transport import Transport, create_transport

if TYPE_CHECKING:
    from pipelink.core.config import PipelinkConfig

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 256

# Callback types
ConnectCallback = Callable[[dict[str, Any]], None]
DisconnectCallback = Callable[[int, str], None]


class ConnectionState(str, Enum):
    """Lifecycle state of an RPC connection."""

    DISCONNECTED = "disconnected"
    SENT_HANDSHAKE = "sent_handshake"
    CONNECTED = "connected"


class RpcConnection:
    """
    Client side of one RPC session.

    Example:
        conn = RpcConnection("my-app-id")
        conn.on_connect = lambda doc: print("ready", doc)
        while conn.open() != ConnectionState.CONNECTED:
            time.sleep(0.25)
        conn.send({"cmd": "HELLO"})
        document = conn.read()
    """

    def __init__(self, application_id: str, transport: Transport | None = None) -> None:
        """
        Initialize the connection.

        Args:
            application_id: Identifier announced in the handshake
            transport: Byte-stream transport to own (platform default if None)

        Raises:
            IPCValidationError: If the application id is too long
        """
        if len(application_id) > MAX_APPLICATION_ID_LENGTH:
            raise IPCValidationError(
                f"Application id too long: {len(application_id)} characters "
                f"(max: {MAX_APPLICATION_ID_LENGTH})",
                details={"length": len(application_id), "max": MAX_APPLICATION_ID_LENGTH},
            )

        self.application_id = application_id
        self._transport = transport if transport is not None else create_transport()
        self._state = ConnectionState.DISCONNECTED
        self._destroyed = False

        self.last_error_code: int = ErrorCode.SUCCESS
        self.last_error_message: str = ""

        self.on_connect: ConnectCallback | None = None
        self.on_disconnect: DisconnectCallback | None = None

    @classmethod
    def from_config(cls, config: PipelinkConfig) -> RpcConnection:
        """Create a connection and its transport from configuration."""
        settings = config.connection
        transport = create_transport(
            settings.socket_path,
            connect_timeout=settings.connect_timeout,
            io_timeout=settings.io_timeout,
        )
        return cls(config.application_id, transport)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def transport(self) -> Transport:
        return self._transport

    def open(self) -> ConnectionState:
        """
        Advance the connection by at most one transition.

        Safe to call repeatedly from a poll loop.

        Returns:
            State after this step
        """
        self._ensure_alive()

        if self._state == ConnectionState.CONNECTED:
            return self._state

        if self._state == ConnectionState.DISCONNECTED and not self._transport.open():
            return self._state

        if self._state == ConnectionState.SENT_HANDSHAKE:
            self._await_ready()
        else:
            self._send_handshake()

        return self._state

    def _send_handshake(self) -> None:
        frame = MessageFrame(Opcode.HANDSHAKE, handshake_payload(self.application_id))
        if self._transport.write(frame.to_bytes()):
            logger.debug(f"Sent handshake for application {self.application_id!r}")
            self._state = ConnectionState.SENT_HANDSHAKE
        else:
            logger.warning("Failed to send handshake")
            self.close()

    def _await_ready(self) -> None:
        document = self.read()
        if document is None or not is_ready_event(document):
            return

        logger.info("Connection established")
        self._state = ConnectionState.CONNECTED
        if self.on_connect is not None:
            try:
                self.on_connect(document)
            except Exception as e:
                logger.exception(f"Connect callback error: {e}")

    def close(self) -> None:
        """
        Tear down the session.

        Fires on_disconnect only when leaving an active state, so repeated
        calls are harmless.
        """
        if self._state in (ConnectionState.CONNECTED, ConnectionState.SENT_HANDSHAKE):
            logger.info(
                f"Disconnected (code={self.last_error_code}, message={self.last_error_message!r})"
            )
            if self.on_disconnect is not None:
                try:
                    self.on_disconnect(self.last_error_code, self.last_error_message)
                except Exception as e:
                    logger.exception(f"Disconnect callback error: {e}")

        self._transport.close()
        self._state = ConnectionState.DISCONNECTED

    def reset_error(self) -> None:
        """Clear the last-error fields, e.g. before a caller-initiated close."""
        self.last_error_code = ErrorCode.SUCCESS
        self.last_error_message = ""

    def write(self, data: bytes) -> bool:
        """
        Send one application payload as a FRAME.

        Returns:
            True if the frame was written; on failure the session is closed

        Raises:
            IPCProtocolError: If the payload does not fit in a frame
        """
        self._ensure_alive()

        frame = MessageFrame(Opcode.FRAME, bytes(data))
        if not self._transport.write(frame.to_bytes()):
            logger.warning("Failed to write frame")
            self.close()
            return False
        return True

    def send(self, document: dict[str, Any]) -> bool:
        """Serialize a document and send it as a FRAME."""
        return self.write(encode_document(document))

    def read(self) -> dict[str, Any] | None:
        """
        Read the next application document.

        Ping, pong and close frames are handled here and never returned.
        Frames holding valid JSON that is not an object are skipped.

        Returns:
            Parsed document, or None if nothing is available, the session
            is not active, or the session ended (see last_error_code)
        """
        self._ensure_alive()

        if self._state not in (ConnectionState.CONNECTED, ConnectionState.SENT_HANDSHAKE):
            return None

        while True:
            header = self._transport.read(HEADER_SIZE)
            if header is None:
                if not self._transport.is_open:
                    self._fail(ErrorCode.PIPE_CLOSED, "Pipe closed")
                return None
            if len(header) != HEADER_SIZE:
                self._fail(ErrorCode.READ_CORRUPT, "Partial data in frame")
                return None

            opcode, length = unpack_header(header)

            if length > MAX_PAYLOAD_SIZE:
                self._fail(ErrorCode.READ_CORRUPT, "Frame too large")
                return None

            payload = b""
            if length > 0:
                data = self._transport.read(length)
                if data is None or len(data) != length:
                    self._fail(ErrorCode.READ_CORRUPT, "Partial data in frame")
                    return None
                payload = data

            if opcode == Opcode.CLOSE:
                self._handle_close(payload)
                return None

            if opcode == Opcode.FRAME:
                try:
                    document = decode_document(payload)
                except IPCProtocolError as e:
                    if e.code != IPCErrorCode.MALFORMED_JSON:
                        # Valid JSON that is not an object carries no fields
                        logger.debug(f"Skipping frame: {e}")
                        continue
                    logger.warning(f"Malformed frame payload: {e}")
                    self._fail(ErrorCode.READ_CORRUPT, "Malformed frame payload")
                    return None
                logger.debug(f"Received frame ({length} bytes)")
                return document

            if opcode == Opcode.PING:
                logger.debug("Ping received, sending pong")
                pong = MessageFrame(Opcode.PONG, payload)
                if not self._transport.write(pong.to_bytes()):
                    self.close()
                continue

            if opcode == Opcode.PONG:
                continue

            logger.warning(f"Unexpected opcode {opcode}")
            self._fail(ErrorCode.READ_CORRUPT, "Bad ipc frame")
            return None

    def _handle_close(self, payload: bytes) -> None:
        try:
            document = decode_document(payload)
        except IPCProtocolError as e:
            logger.warning(f"Unreadable close payload: {e}")
            document = {}

        code = get_int_member(document, "code")
        message = get_str_member(document, "message", "") or ""
        logger.warning(f"Peer closed connection: {code} {message}")
        self._fail(code, message)

    def _fail(self, code: int, message: str) -> None:
        self.last_error_code = code
        self.last_error_message = message[:MAX_ERROR_MESSAGE_LENGTH]
        self.close()

    def destroy(self) -> None:
        """Close the session and release the transport. Later calls are no-ops."""
        if self._destroyed:
            return
        self.close()
        self._destroyed = True

    def _ensure_alive(self) -> None:
        if self._destroyed:
            raise IPCConnectionError(
                "Connection has been destroyed",
                code=IPCErrorCode.INVALID_STATE,
            )

    def __enter__(self) -> RpcConnection:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit - destroy connection."""
        self.destroy()
