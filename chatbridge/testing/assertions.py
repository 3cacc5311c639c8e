"""Assertion utilities for protocol event streams."""

from __future__ import annotations

import json
from typing import Any, Sequence

PREFIX_TYPES = [
    "response.created",
    "response.in_progress",
    "response.output_item.added",
    "response.content_part.added",
]

TAIL_TYPES = [
    "response.output_text.done",
    "response.content_part.done",
    "response.output_item.done",
]


def parse_sse_events(body: bytes | str) -> list[dict[str, Any]]:
    """Parse an ``event:``/``data:`` SSE body into event dicts."""
    text = body.decode("utf-8") if isinstance(body, bytes) else body
    events: list[dict[str, Any]] = []
    for block in text.replace("\r\n", "\n").split("\n\n"):
        data_lines = [line[5:].lstrip() for line in block.split("\n") if line.startswith("data:")]
        if data_lines:
            events.append(json.loads("\n".join(data_lines)))
    return events


def assert_sequence_numbers_contiguous(events: Sequence[dict[str, Any]]) -> None:
    """Sequence numbers start at 0 and grow by exactly one."""
    numbers = [e.get("sequence_number") for e in events]
    assert numbers == list(range(len(events))), f"Sequence numbers not contiguous: {numbers}"


def assert_responses_sse_valid(events: Sequence[dict[str, Any]]) -> None:
    """Validate the shape of one response's event series.

    Raises:
        AssertionError: If structure is invalid
    """
    assert len(events) > 0, "Events list is empty"
    event_types = [e.get("type") for e in events]

    assert event_types[:4] == PREFIX_TYPES, f"Unexpected prefix: {event_types[:4]}"
    assert_sequence_numbers_contiguous(events)

    terminal = event_types[-1]
    assert terminal in {"response.completed", "error"}, (
        f"Last event should be response.completed or error, got '{terminal}'"
    )
    assert event_types.count(terminal) == 1, f"Terminal event '{terminal}' repeated"
    if terminal == "error":
        assert "response.completed" not in event_types, "error and completed in one response"
        assert "response.output_text.done" not in event_types, "error after the completion tail"


def collect_text_deltas(events: Sequence[dict[str, Any]]) -> str:
    return "".join(e["delta"] for e in events if e.get("type") == "response.output_text.delta")
