"""
Pipelink IPC.

Client-side state machine for opcode-framed sessions with a peer process
over a local byte-stream transport (Unix socket).
"""

from pipelink.ipc.connection import (
    ConnectionState,
    RpcConnection,
)
from pipelink.ipc.exceptions import (
    ErrorCode,
    IPCConnectionError,
    IPCError,
    IPCErrorCode,
    IPCProtocolError,
    IPCValidationError,
)
from pipelink.ipc.protocol import (
    HEADER_SIZE,
    MAX_FRAME_SIZE,
    MAX_PAYLOAD_SIZE,
    RPC_VERSION,
    MessageFrame,
    Opcode,
    decode_document,
    encode_document,
    is_ready_event,
)
from pipelink.ipc.transport import (
    DEFAULT_SOCKET_PATH,
    Transport,
    UnixSocketTransport,
    create_transport,
)

__all__ = [
    # Protocol
    "HEADER_SIZE",
    "MAX_FRAME_SIZE",
    "MAX_PAYLOAD_SIZE",
    "RPC_VERSION",
    "MessageFrame",
    "Opcode",
    "decode_document",
    "encode_document",
    "is_ready_event",
    # Transport
    "DEFAULT_SOCKET_PATH",
    "Transport",
    "UnixSocketTransport",
    "create_transport",
    # Connection
    "ConnectionState",
    "RpcConnection",
    # Exceptions
    "ErrorCode",
    "IPCError",
    "IPCErrorCode",
    "IPCConnectionError",
    "IPCProtocolError",
    "IPCValidationError",
]
