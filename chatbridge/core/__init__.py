"""Core module initialization."""

from .backend import (
    AuthStrategy,
    BackendClient,
    BackendStream,
    MessageStream,
    StreamingBackend,
    static_token_auth,
)
from .exceptions import (
    BackendError,
    BackendHTTPError,
    BackendUnavailableError,
    BridgeError,
    ConfigurationError,
    InvalidRequestError,
)
from .sse import BackendMessage, BackendMessageDecoder, SSEDecoder, parse_backend_message

__all__ = [
    "AuthStrategy",
    "BackendClient",
    "BackendError",
    "BackendHTTPError",
    "BackendMessage",
    "BackendMessageDecoder",
    "BackendStream",
    "BackendUnavailableError",
    "BridgeError",
    "ConfigurationError",
    "InvalidRequestError",
    "MessageStream",
    "SSEDecoder",
    "StreamingBackend",
    "parse_backend_message",
    "static_token_auth",
]
