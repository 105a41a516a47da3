"""
Qt driver for an RPC connection.

Runs the connection's poll loop from a QTimer and re-emits its callbacks
as Qt signals, so QML or widget code can observe the session.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from PySide6.QtCore import Property, QObject, QTimer, Signal, Slot

from pipelink.ipc.connection import ConnectionState, RpcConnection
from pipelink.ipc.exceptions import IPCProtocolError

if TYPE_CHECKING:
    from pipelink.core.config import PollingSettings

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 250
DEFAULT_MAX_READS_PER_TICK = 16


class ConnectionPoller(QObject):
    """
    Timer-driven poll loop over an RpcConnection.

    Each tick advances the handshake until the session is connected, then
    drains available documents. A dropped session is reopened on the next
    tick.
    """

    connected = Signal(object)  # ready document
    disconnected = Signal(int, str)  # error_code, error_message
    messageReceived = Signal(object)  # application document
    stateChanged = Signal()

    def __init__(
        self,
        connection: RpcConnection,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        max_reads_per_tick: int = DEFAULT_MAX_READS_PER_TICK,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._connection = connection
        self._max_reads_per_tick = max_reads_per_tick
        self._last_state = connection.state

        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self.poll)

        connection.on_connect = self._handle_connect
        connection.on_disconnect = self._handle_disconnect

    @classmethod
    def from_settings(
        cls,
        connection: RpcConnection,
        settings: PollingSettings,
        parent: QObject | None = None,
    ) -> ConnectionPoller:
        return cls(connection, settings.interval_ms, settings.max_reads_per_tick, parent)

    @property
    def connection(self) -> RpcConnection:
        return self._connection

    @Property(str, notify=stateChanged)
    def state(self) -> str:
        return self._connection.state.value

    @Property(bool, notify=stateChanged)
    def isConnected(self) -> bool:
        return self._connection.is_connected

    @Slot()
    def start(self) -> None:
        """Start polling immediately and then on every timer tick."""
        logger.debug(f"Starting poller ({self._timer.interval()} ms)")
        self._timer.start()
        self.poll()

    @Slot()
    def stop(self) -> None:
        """Stop polling. The session stays as it is."""
        self._timer.stop()

    @Slot()
    def poll(self) -> None:
        """Run one iteration of the poll loop."""
        if self._connection.state != ConnectionState.CONNECTED:
            self._connection.open()

        if self._connection.state == ConnectionState.CONNECTED:
            for _ in range(self._max_reads_per_tick):
                document = self._connection.read()
                if document is None:
                    break
                self.messageReceived.emit(document)

        self._sync_state()

    @Slot(str, result=bool)
    def sendJson(self, text: str) -> bool:
        """Send a JSON object given as text. Returns False if not sent."""
        if not self._connection.is_connected:
            logger.warning("Cannot send: not connected")
            return False

        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON payload: {e}")
            return False
        if not isinstance(document, dict):
            logger.error("Payload must be a JSON object")
            return False

        try:
            sent = self._connection.write(text.encode("utf-8"))
        except IPCProtocolError as e:
            logger.error(f"Payload rejected: {e}")
            return False

        self._sync_state()
        return sent

    def _handle_connect(self, document: dict[str, Any]) -> None:
        self.connected.emit(document)

    def _handle_disconnect(self, code: int, message: str) -> None:
        self.disconnected.emit(int(code), message)

    def _sync_state(self) -> None:
        state = self._connection.state
        if state != self._last_state:
            self._last_state = state
            self.stateChanged.emit()
