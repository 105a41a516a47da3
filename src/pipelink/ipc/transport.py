"""
Byte-Stream Transport Layer.

Low-level socket operations underneath the frame protocol. A transport
knows nothing about frames: it opens, reads and writes raw bytes, and
reports whether it is still alive after each operation.
"""

from __future__ import annotations

import contextlib
import logging
import socket
import sys
from pathlib import Path
from typing import Protocol

from pipelink.ipc.exceptions import IPCConnectionError, IPCErrorCode

logger = logging.getLogger(__name__)

# Default socket path
DEFAULT_SOCKET_PATH = "/run/pipelink/ipc.sock"

# Socket timeouts (seconds)
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_IO_TIMEOUT = 5.0


class Transport(Protocol):
    """
    Capability set required by the connection state machine.

    ``read`` returns None both when nothing is available yet and when the
    transport failed; ``is_open`` tells the two apart.
    """

    @property
    def is_open(self) -> bool: ...

    def open(self) -> bool: ...

    def write(self, data: bytes) -> bool: ...

    def read(self, length: int) -> bytes | None: ...

    def close(self) -> None: ...


class UnixSocketTransport:
    """
    Non-blocking client transport over a Unix domain socket.

    Handles:
    - Connecting to the peer socket
    - Poll-style reads that never wait for data that has not started arriving
    - Whole-buffer writes
    - Connection state tracking
    """

    def __init__(
        self,
        socket_path: str | Path = DEFAULT_SOCKET_PATH,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        io_timeout: float = DEFAULT_IO_TIMEOUT,
    ) -> None:
        self.socket_path = Path(socket_path)
        self.connect_timeout = connect_timeout
        self.io_timeout = io_timeout
        self._socket: socket.socket | None = None

    @property
    def is_open(self) -> bool:
        """Check if transport is connected."""
        return self._socket is not None

    def open(self) -> bool:
        """
        Connect to the peer socket.

        Returns:
            True if connected (or already connected)
        """
        if self._socket is not None:
            return True

        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.settimeout(self.connect_timeout)
            sock.connect(str(self.socket_path))
        except OSError as e:
            logger.debug(f"Failed to connect to {self.socket_path}: {e}")
            sock.close()
            return False

        sock.setblocking(False)
        self._socket = sock
        logger.debug(f"Connected to {self.socket_path}")
        return True

    def close(self) -> None:
        """Close the socket connection."""
        if self._socket is not None:
            with contextlib.suppress(OSError):
                self._socket.close()
            self._socket = None
            logger.debug(f"Closed {self.socket_path}")

    def write(self, data: bytes) -> bool:
        """
        Send the whole buffer.

        Returns:
            True if every byte was sent; on failure the transport is closed
        """
        if self._socket is None:
            return False

        try:
            self._socket.settimeout(self.io_timeout)
            self._socket.sendall(data)
        except OSError as e:
            logger.debug(f"Send failed: {e}")
            self.close()
            return False
        finally:
            if self._socket is not None:
                self._socket.setblocking(False)
        return True

    def read(self, length: int) -> bytes | None:
        """
        Receive exactly `length` bytes if any are available.

        Returns immediately with None when nothing has arrived. Once the
        first chunk is in, the remainder is awaited for up to io_timeout.

        Returns:
            Received bytes, or None (check is_open to tell "no data" from
            a closed transport)
        """
        if self._socket is None:
            return None
        if length <= 0:
            return b""

        try:
            chunk = self._socket.recv(length)
        except BlockingIOError:
            return None
        except OSError as e:
            logger.debug(f"Receive failed: {e}")
            self.close()
            return None

        if not chunk:
            logger.debug("Peer closed connection")
            self.close()
            return None

        return self._recv_remaining(bytearray(chunk), length)

    def _recv_remaining(self, data: bytearray, length: int) -> bytes | None:
        """Block (bounded by io_timeout) until `data` reaches `length` bytes."""
        if len(data) >= length:
            return bytes(data)

        sock = self._socket
        if sock is None:
            return None
        try:
            sock.settimeout(self.io_timeout)
            while len(data) < length:
                chunk = sock.recv(length - len(data))
                if not chunk:
                    logger.debug(f"Connection closed after receiving {len(data)}/{length} bytes")
                    self.close()
                    return None
                data.extend(chunk)
        except OSError as e:
            # TimeoutError included: the stream cannot be resynchronised
            logger.debug(f"Receive failed after {len(data)}/{length} bytes: {e}")
            self.close()
            return None
        finally:
            if self._socket is not None:
                self._socket.setblocking(False)

        return bytes(data)

    def __enter__(self) -> UnixSocketTransport:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit - close socket."""
        self.close()


def create_transport(
    socket_path: str | Path = DEFAULT_SOCKET_PATH,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    io_timeout: float = DEFAULT_IO_TIMEOUT,
) -> Transport:
    """
    Create the transport for the current platform.

    Raises:
        IPCConnectionError: If the platform has no transport implementation
    """
    if sys.platform == "win32":
        raise IPCConnectionError(
            "Named pipe transport is not available on this platform",
            code=IPCErrorCode.UNSUPPORTED_PLATFORM,
            details={"platform": sys.platform},
        )
    return UnixSocketTransport(socket_path, connect_timeout, io_timeout)
