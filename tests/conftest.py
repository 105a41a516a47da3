"""Shared fixtures for Pipelink tests."""

from __future__ import annotations

import json
import struct
from typing import Any

import pytest

from pipelink.ipc.protocol import HEADER_FORMAT, HEADER_SIZE, Opcode


class FakeTransport:
    """
    Scripted in-memory transport.

    Bytes queued with push_* are handed out by read(); everything written
    is recorded. Setting eof makes an empty read report a closed peer.
    """

    def __init__(self) -> None:
        self.incoming = bytearray()
        self.written: list[bytes] = []
        self.open_result = True
        self.fail_writes = False
        self.eof = False
        self.open_calls = 0
        self.read_calls = 0
        self.close_calls = 0
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> bool:
        self.open_calls += 1
        self._open = self.open_result
        return self._open

    def close(self) -> None:
        self.close_calls += 1
        self._open = False

    def write(self, data: bytes) -> bool:
        if not self._open or self.fail_writes:
            self._open = False
            return False
        self.written.append(bytes(data))
        return True

    def read(self, length: int) -> bytes | None:
        self.read_calls += 1
        if not self._open:
            return None
        if not self.incoming:
            if self.eof:
                self._open = False
            return None
        if len(self.incoming) < length:
            # Partial unit: drop what is there and report failure
            self.incoming.clear()
            return None
        data = bytes(self.incoming[:length])
        del self.incoming[:length]
        return data

    # Scripting helpers

    def push_raw(self, data: bytes) -> None:
        self.incoming.extend(data)

    def push_frame(self, opcode: int, payload: bytes = b"") -> None:
        self.incoming.extend(struct.pack(HEADER_FORMAT, opcode, len(payload)) + payload)

    def push_document(self, opcode: int, document: dict[str, Any]) -> None:
        self.push_frame(opcode, json.dumps(document).encode("utf-8"))

    def push_ready(self) -> None:
        self.push_document(
            Opcode.FRAME, {"cmd": "DISPATCH", "evt": "READY", "data": {"v": 1}}
        )

    def written_frames(self) -> list[tuple[int, bytes]]:
        """Decode every recorded write into (opcode, payload)."""
        frames = []
        for data in self.written:
            opcode, length = struct.unpack(HEADER_FORMAT, data[:HEADER_SIZE])
            payload = data[HEADER_SIZE:]
            assert len(payload) == length
            frames.append((opcode, payload))
        return frames


@pytest.fixture
def transport() -> FakeTransport:
    """Fresh scripted transport."""
    return FakeTransport()


@pytest.fixture(scope="session")
def qapp():
    """Qt core application shared by the poller tests."""
    from PySide6.QtCore import QCoreApplication

    app = QCoreApplication.instance() or QCoreApplication([])
    yield app
