"""Core exceptions for the bridge."""

from typing import Optional


class BridgeError(Exception):
    """Base exception for bridge errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(BridgeError):
    """Raised when there's an issue with the configuration."""
    pass


class InvalidRequestError(BridgeError):
    """Raised when an incoming request is invalid."""

    def __init__(self, message: str, code: str = "invalid_request", param: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code
        self.param = param


class BackendError(BridgeError):
    """Base class for failures talking to the conversational backend."""

    code = "backend_error"


class BackendHTTPError(BackendError):
    """The backend answered with a non-success HTTP status."""

    code = "backend_error"

    def __init__(self, status_code: int, body: bytes = b"") -> None:
        preview = body[:200].decode("utf-8", errors="replace") if body else ""
        message = f"backend returned status {status_code}"
        if preview:
            message = f"{message}: {preview}"
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class BackendUnavailableError(BackendError):
    """The backend could not be reached or the connection dropped."""

    code = "backend_unavailable"
