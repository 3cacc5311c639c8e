"""Client-facing Responses protocol: event emission and stream translation."""

from .events import ResponseEventEmitter, encode_sse_event
from .output import (
    build_function_call_item,
    build_message_item,
    build_response_object,
    generate_call_id,
    generate_message_id,
    generate_response_id,
)
from .translator import BounceSignal, StreamTranslator, TranslationOutcome

__all__ = [
    "BounceSignal",
    "ResponseEventEmitter",
    "StreamTranslator",
    "TranslationOutcome",
    "build_function_call_item",
    "build_message_item",
    "build_response_object",
    "encode_sse_event",
    "generate_call_id",
    "generate_message_id",
    "generate_response_id",
]
