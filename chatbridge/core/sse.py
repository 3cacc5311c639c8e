"""SSE decoding for the backend generation stream.

The backend answers a generation request with a text/event-stream body whose
``data:`` lines hold one JSON message each::

    data: {"type":"ingesting","target":"message"}
    data: {"type":"token_data","target":"message","count":0,"content":"Hel"}
    data: {"type":"token_data","target":"tool_call","count":1,"content":"{\\"name\\":"}
    data: {"type":"done"}

Chunk boundaries from the transport are arbitrary, so events are only
surfaced once their terminating blank line has arrived.
"""

import codecs
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger("chatbridge")

# Message types
TYPE_TOKEN_DATA = "token_data"
TYPE_INGESTING = "ingesting"
TYPE_DONE = "done"
TYPE_ERROR = "error"
TYPE_TIMEOUT = "timeout"
TYPE_REJECTED = "rejected"
TYPE_HARMFUL = "harmful"

TERMINAL_FAILURE_TYPES = frozenset({TYPE_ERROR, TYPE_TIMEOUT, TYPE_REJECTED, TYPE_HARMFUL})
KNOWN_TYPES = frozenset({TYPE_TOKEN_DATA, TYPE_INGESTING, TYPE_DONE}) | TERMINAL_FAILURE_TYPES

# token_data targets
TARGET_MESSAGE = "message"
TARGET_TITLE = "title"
TARGET_TOOL_CALL = "tool_call"
TARGET_TOOL_RESULT = "tool_result"


@dataclass
class SSEEvent:
    data: Optional[str]
    other_lines: list[str] = field(default_factory=list)

    def encode(self) -> bytes:
        lines: list[str] = []
        lines.extend(self.other_lines)
        if self.data is not None:
            for item in self.data.split("\n"):
                if item:
                    lines.append(f"data: {item}")
                else:
                    lines.append("data:")
        text = "\n".join(lines) + "\n\n"
        return text.encode("utf-8")


class SSEDecoder:
    """Splits a byte stream into SSE events.

    Multi-byte UTF-8 sequences split across chunks are reassembled before
    decoding.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes) -> list[SSEEvent]:
        if not chunk:
            return []
        text = self._decoder.decode(chunk)
        self._buffer += text.replace("\r\n", "\n").replace("\r", "\n")
        events: list[SSEEvent] = []

        while True:
            sep_index = self._buffer.find("\n\n")
            if sep_index == -1:
                break
            raw_event = self._buffer[:sep_index]
            self._buffer = self._buffer[sep_index + 2:]
            if not raw_event.strip():
                continue
            events.append(self._parse_event(raw_event))

        return events

    def flush(self) -> list[SSEEvent]:
        """Return the trailing event of a body that did not end with a blank line."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        if not tail.strip():
            return []
        return [self._parse_event(tail.strip("\n"))]

    @staticmethod
    def _parse_event(raw: str) -> SSEEvent:
        data_lines: list[str] = []
        other_lines: list[str] = []
        for line in raw.split("\n"):
            if line.startswith("data:"):
                data_lines.append(line[5:].lstrip())
            else:
                other_lines.append(line)
        data = "\n".join(data_lines) if data_lines else None
        return SSEEvent(data=data, other_lines=other_lines)


@dataclass(frozen=True)
class BackendMessage:
    """One discrete message of the backend generation stream."""

    type: str
    target: Optional[str] = None
    content: str = ""
    detail: Optional[str] = None

    @property
    def is_terminal_failure(self) -> bool:
        return self.type in TERMINAL_FAILURE_TYPES


def parse_backend_message(data: Optional[str]) -> Optional[BackendMessage]:
    """Parse the data payload of one SSE event.

    Returns None for empty, non-JSON, non-object or unknown-type payloads.
    """
    if not data:
        return None
    try:
        parsed: Any = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Backend SSE: failed to parse: %s", data[:100])
        return None
    if not isinstance(parsed, dict):
        return None

    msg_type = parsed.get("type")
    if msg_type not in KNOWN_TYPES:
        logger.debug("Backend SSE: skipping message type=%s", msg_type)
        return None

    target = parsed.get("target")
    content = parsed.get("content")
    detail = parsed.get("message")
    return BackendMessage(
        type=msg_type,
        target=target if isinstance(target, str) else None,
        content=content if isinstance(content, str) else "",
        detail=str(detail) if detail is not None else None,
    )


class BackendMessageDecoder:
    """Bytes in, BackendMessages out."""

    def __init__(self) -> None:
        self._sse = SSEDecoder()

    def feed(self, chunk: bytes) -> list[BackendMessage]:
        return self._collect(self._sse.feed(chunk))

    def flush(self) -> list[BackendMessage]:
        return self._collect(self._sse.flush())

    @staticmethod
    def _collect(events: list[SSEEvent]) -> list[BackendMessage]:
        messages: list[BackendMessage] = []
        for event in events:
            message = parse_backend_message(event.data)
            if message is not None:
                messages.append(message)
        return messages
