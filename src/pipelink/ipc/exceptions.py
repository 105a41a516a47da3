"""
IPC Exception Hierarchy.

Defines the exceptions raised for caller contract violations, and the
error codes recorded on a connection when a session ends on its own.
"""

from enum import Enum, IntEnum


class ErrorCode(IntEnum):
    """Locally assigned codes stored in ``RpcConnection.last_error_code``."""

    SUCCESS = 0
    PIPE_CLOSED = 1
    READ_CORRUPT = 2


class IPCErrorCode(str, Enum):
    """Error codes for raised IPC exceptions."""

    # Protocol errors
    INVALID_MESSAGE = "INVALID_MESSAGE"
    MALFORMED_JSON = "MALFORMED_JSON"
    MESSAGE_TOO_LARGE = "MESSAGE_TOO_LARGE"

    # Connection errors
    CONNECTION_FAILED = "CONNECTION_FAILED"
    UNSUPPORTED_PLATFORM = "UNSUPPORTED_PLATFORM"
    INVALID_STATE = "INVALID_STATE"

    # Validation
    VALIDATION_FAILED = "VALIDATION_FAILED"

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class IPCError(Exception):
    """
    Base exception for misuse of the pipelink client API.

    Session failures (peer hang-up, corrupt frames, peer CLOSE) are not
    raised; they end up in ``RpcConnection.last_error_code`` instead.
    Subclasses only pick the code used when none is given.
    """

    default_code = IPCErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: IPCErrorCode | None = None,
        details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert exception to dictionary, e.g. for a JSON error line."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class IPCConnectionError(IPCError):
    """No usable transport, or a connection used after destroy()."""

    default_code = IPCErrorCode.CONNECTION_FAILED


class IPCProtocolError(IPCError):
    """Bytes that cannot be framed or parsed: bad headers, oversize frames, bad JSON."""

    default_code = IPCErrorCode.INVALID_MESSAGE


class IPCValidationError(IPCError):
    """An application id (or other caller input) outside protocol limits."""

    default_code = IPCErrorCode.VALIDATION_FAILED
