"""
IPC Frame Protocol.

Defines the opcode-tagged frame format used on the byte stream and the
JSON documents carried in frame payloads.

Every frame is an 8-byte header (opcode and payload length, both
little-endian unsigned 32-bit integers) followed by exactly ``length``
payload bytes.
"""

from __future__ import annotations

import json
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from pipelink.ipc.exceptions import IPCErrorCode, IPCProtocolError

# Protocol version announced in the handshake
RPC_VERSION = 1

# Frame size limits (header included)
MAX_FRAME_SIZE = 64 * 1024

HEADER_FORMAT = "<II"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)
MAX_PAYLOAD_SIZE = MAX_FRAME_SIZE - HEADER_SIZE

# Application ids longer than this are rejected
MAX_APPLICATION_ID_LENGTH = 64

# Ready event literals
DISPATCH_COMMAND = "DISPATCH"
READY_EVENT = "READY"


class Opcode(IntEnum):
    """Frame opcodes."""

    HANDSHAKE = 0
    FRAME = 1
    CLOSE = 2
    PING = 3
    PONG = 4


def pack_header(opcode: int, length: int) -> bytes:
    """Encode a frame header."""
    return struct.pack(HEADER_FORMAT, opcode, length)


def unpack_header(data: bytes) -> tuple[int, int]:
    """
    Decode a frame header.

    Returns:
        Tuple of (opcode, payload_length). The opcode is returned as a raw
        integer so unknown values can be reported by the caller.

    Raises:
        IPCProtocolError: If data is not exactly one header long
    """
    if len(data) != HEADER_SIZE:
        raise IPCProtocolError(
            f"Invalid header size: {len(data)} bytes (expected {HEADER_SIZE})",
            details={"size": len(data)},
        )
    opcode, length = struct.unpack(HEADER_FORMAT, data)
    return opcode, length


@dataclass
class MessageFrame:
    """A single frame: opcode plus raw payload bytes."""

    opcode: int
    payload: bytes = b""

    @property
    def length(self) -> int:
        return len(self.payload)

    def to_bytes(self) -> bytes:
        """
        Serialize header and payload into one buffer.

        Raises:
            IPCProtocolError: If the payload does not fit in a frame
        """
        if self.length > MAX_PAYLOAD_SIZE:
            raise IPCProtocolError(
                f"Payload too large: {self.length} bytes (max: {MAX_PAYLOAD_SIZE})",
                code=IPCErrorCode.MESSAGE_TOO_LARGE,
                details={"size": self.length, "max": MAX_PAYLOAD_SIZE},
            )
        return pack_header(self.opcode, self.length) + self.payload


def encode_document(document: dict[str, Any]) -> bytes:
    """Serialize a document to compact UTF-8 JSON."""
    return json.dumps(document, separators=(",", ":")).encode("utf-8")


def decode_document(data: bytes) -> dict[str, Any]:
    """
    Parse a frame payload into a document.

    An empty payload yields an empty document.

    Raises:
        IPCProtocolError: If the payload is not a UTF-8 JSON object
    """
    if not data:
        return {}

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise IPCProtocolError(
            f"Invalid UTF-8 encoding: {e}",
            code=IPCErrorCode.MALFORMED_JSON,
        ) from e

    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise IPCProtocolError(
            f"Invalid JSON: {e}",
            code=IPCErrorCode.MALFORMED_JSON,
            details={"raw": text[:100]},
        ) from e

    if not isinstance(document, dict):
        raise IPCProtocolError(
            f"Expected a JSON object, got {type(document).__name__}",
            code=IPCErrorCode.INVALID_MESSAGE,
        )
    return document


def get_str_member(document: dict[str, Any], name: str, default: str | None = None) -> str | None:
    """Return a string field, or default if it is missing or not a string."""
    value = document.get(name)
    return value if isinstance(value, str) else default


def get_int_member(document: dict[str, Any], name: str, default: int = 0) -> int:
    """Return an integer field, or default if it is missing or not an integer."""
    value = document.get(name)
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    return value


def handshake_payload(application_id: str, version: int = RPC_VERSION) -> bytes:
    """Build the payload of the HANDSHAKE frame."""
    return encode_document({"v": version, "client_id": application_id})


def is_ready_event(document: dict[str, Any]) -> bool:
    """Check whether a document is the peer's DISPATCH/READY event."""
    cmd = get_str_member(document, "cmd")
    evt = get_str_member(document, "evt")
    return cmd == DISPATCH_COMMAND and evt == READY_EVENT
