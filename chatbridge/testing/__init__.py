"""Testing utilities for in-process bridge simulations."""

from .assertions import (
    assert_responses_sse_valid,
    assert_sequence_numbers_contiguous,
    collect_text_deltas,
    parse_sse_events,
)
from .fake_backend import (
    BackendReply,
    FakeBackend,
    ScriptedBackend,
    ScriptedStream,
    build_reply_messages,
    done,
    encode_sse_body,
    ingesting,
    marker,
    token,
)

__all__ = [
    # Fakes
    "BackendReply",
    "FakeBackend",
    "ScriptedBackend",
    "ScriptedStream",
    # Message builders
    "build_reply_messages",
    "done",
    "encode_sse_body",
    "ingesting",
    "marker",
    "token",
    # Assertions
    "assert_responses_sse_valid",
    "assert_sequence_numbers_contiguous",
    "collect_text_deltas",
    "parse_sse_events",
]
