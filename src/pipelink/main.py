"""
Pipelink - Entry point.

This module handles:
- Argument parsing
- Configuration loading
- Running an RPC session from a Qt event loop
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any

from pipelink import __version__
from pipelink.core.config import (
    ConfigurationError,
    PipelinkConfig,
    find_config_file,
    load_config,
)
from pipelink.ipc.exceptions import ErrorCode, IPCError
from pipelink.ipc.protocol import MAX_APPLICATION_ID_LENGTH

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_SESSION_ERROR = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="pipelink",
        description="Pipelink - open an RPC session with a local peer process",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Pipelink {__version__}",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: auto-detect)",
    )

    parser.add_argument(
        "--app-id",
        default=None,
        help="Application identifier sent in the handshake (overrides config)",
    )

    parser.add_argument(
        "--socket",
        type=Path,
        default=None,
        help="Path to the peer's IPC socket (overrides config)",
    )

    parser.add_argument(
        "--send",
        default=None,
        metavar="JSON",
        help="JSON object to send once the session is established",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Exit after the first received document or when the session ends",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode",
    )

    return parser.parse_args(argv)


def resolve_config(args: argparse.Namespace) -> PipelinkConfig:
    """
    Build the effective configuration from the config file and CLI overrides.

    Raises:
        ConfigurationError: If the config file is invalid or no application
            id is available
    """
    config_path = find_config_file(args.config)
    config = load_config(config_path) if config_path is not None else PipelinkConfig()

    if config_path is not None:
        logger.debug(f"Using config: {config_path}")

    if args.app_id is not None:
        if len(args.app_id) > MAX_APPLICATION_ID_LENGTH:
            raise ConfigurationError(
                f"Application id too long (max {MAX_APPLICATION_ID_LENGTH} characters)"
            )
        config.application_id = args.app_id
    if args.socket is not None:
        config.connection.socket_path = str(args.socket)
    if args.debug:
        config.advanced.debug_mode = True

    if not config.application_id:
        raise ConfigurationError(
            "No application id configured.\n"
            "Set application_id in pipelink.yaml or pass --app-id"
        )

    return config


def print_document(document: dict[str, Any]) -> None:
    """Write one document to stdout as a JSON line."""
    print(json.dumps(document), flush=True)


def run_session(config: PipelinkConfig, payload: str | None, once: bool) -> int:
    """
    Run the session until interrupted.

    With once, the first document (or the end of the session, whichever
    comes first) stops the event loop.

    Args:
        config: Effective configuration
        payload: JSON text to send after the handshake
        once: Quit after the first document or disconnect

    Returns:
        Exit code (a disconnect with a non-zero code gives EXIT_SESSION_ERROR)
    """
    # Import Qt modules here so argument and config errors stay cheap
    from PySide6.QtCore import QCoreApplication, QTimer

    from pipelink.gui.poller import ConnectionPoller
    from pipelink.ipc.connection import RpcConnection

    app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    exit_code = EXIT_OK
    finished = False

    connection = RpcConnection.from_config(config)
    poller = ConnectionPoller.from_settings(connection, config.polling)

    def finish(code: int) -> None:
        nonlocal exit_code, finished
        finished = True
        exit_code = code
        poller.stop()
        app.quit()

    def on_connected(document: dict[str, Any]) -> None:
        if finished:
            return
        logger.info(f"Session ready for {config.application_id}")
        if payload is not None:
            if not poller.sendJson(payload):
                logger.error("Failed to send payload")
            return
        if once:
            print_document(document)
            finish(EXIT_OK)

    def on_message(document: dict[str, Any]) -> None:
        if finished:
            return
        print_document(document)
        if once:
            finish(EXIT_OK)

    def on_disconnected(code: int, message: str) -> None:
        if finished:
            return
        logger.warning(f"Session closed: [{code}] {message}")
        if once:
            finish(EXIT_OK if code == ErrorCode.SUCCESS else EXIT_SESSION_ERROR)

    poller.connected.connect(on_connected)
    poller.messageReceived.connect(on_message)
    poller.disconnected.connect(on_disconnected)

    # Let Ctrl-C stop the event loop
    signal.signal(signal.SIGINT, lambda *_: app.quit())

    # First poll runs inside exec() so an early quit() is not lost
    QTimer.singleShot(0, poller.start)
    try:
        app.exec()
    finally:
        finished = True
        poller.stop()
        connection.destroy()

    return exit_code


def main(argv: list[str] | None = None) -> int:
    """
    Application entry point.

    Returns:
        Exit code (0 = success)
    """
    args = parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s]: %(message)s",
    )

    try:
        config = resolve_config(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if config.advanced.debug_mode:
        logging.getLogger().setLevel(logging.DEBUG)
    else:
        logging.getLogger().setLevel(config.advanced.log_level.upper())

    if args.send is not None:
        try:
            document = json.loads(args.send)
        except json.JSONDecodeError as e:
            print(f"Error: --send is not valid JSON: {e}", file=sys.stderr)
            return EXIT_CONFIG_ERROR
        if not isinstance(document, dict):
            print("Error: --send must be a JSON object", file=sys.stderr)
            return EXIT_CONFIG_ERROR

    try:
        return run_session(config, args.send, args.once)
    except IPCError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_SESSION_ERROR


if __name__ == "__main__":
    sys.exit(main())
