"""Shared types: conversation turns and the client-facing Responses protocol."""

from .chat import Turn, TurnRole
from .responses import (
    FunctionCallItem,
    MessageItem,
    OutputItem,
    ProtocolEvent,
    ResponseObject,
)

__all__ = [
    "FunctionCallItem",
    "MessageItem",
    "OutputItem",
    "ProtocolEvent",
    "ResponseObject",
    "Turn",
    "TurnRole",
]
