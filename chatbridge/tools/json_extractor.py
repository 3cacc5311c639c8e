"""Brace-depth extraction of JSON objects from chunked text.

The backend streams tool calls and tool results as JSON fragments split at
arbitrary positions, sometimes several objects back to back with no
separator. Re-parsing the growing buffer on every chunk is quadratic; this
extractor is a character-level state machine instead, O(1) per character.

It only finds object boundaries. Whether a completed span is valid JSON is
the caller's concern: malformed input never raises here, and an object that
never closes simply stays buffered.
"""

from dataclasses import dataclass, field


@dataclass
class FeedResult:
    """Outcome of one ``feed_with_remainder`` call."""

    results: list[str] = field(default_factory=list)
    # Text of this chunk after the last object completed in it
    remainder: str = ""


class IncrementalJsonExtractor:
    """Pulls complete top-level JSON objects out of a chunked text stream.

    Characters outside any object are discarded. Braces inside string values
    do not count, and backslash escapes (including an escape split across two
    chunks) are honoured.
    """

    def __init__(self) -> None:
        self._buffer: list[str] = []
        self._depth = 0
        self._in_string = False
        self._escaped = False

    def feed(self, chunk: str) -> list[str]:
        """Feed a chunk; return the objects completed by it (possibly none)."""
        return self.feed_with_remainder(chunk).results

    def feed_with_remainder(self, chunk: str) -> FeedResult:
        """Feed a chunk; also return the text trailing the last completed object."""
        results: list[str] = []
        last_complete = -1
        buffer = self._buffer

        for index, char in enumerate(chunk):
            inside = self._depth > 0

            if self._in_string:
                if inside:
                    buffer.append(char)
                if self._escaped:
                    self._escaped = False
                elif char == "\\":
                    self._escaped = True
                elif char == '"':
                    self._in_string = False
                continue

            if char == '"':
                if inside:
                    buffer.append(char)
                self._in_string = True
                self._escaped = False
            elif char == "{":
                self._depth += 1
                buffer.append(char)
            elif char == "}":
                if not inside:
                    # Stray closing brace between objects
                    continue
                self._depth -= 1
                buffer.append(char)
                if self._depth == 0:
                    results.append("".join(buffer))
                    buffer.clear()
                    last_complete = index
            elif inside:
                buffer.append(char)
            # Text outside any object is dropped

        remainder = ""
        if 0 <= last_complete < len(chunk) - 1:
            remainder = chunk[last_complete + 1:]

        return FeedResult(results=results, remainder=remainder)

    def is_active(self) -> bool:
        """Whether an object is currently open."""
        return self._depth > 0

    def get_buffer(self) -> str:
        """The partial object accumulated so far."""
        return "".join(self._buffer)

    def reset(self) -> None:
        self._buffer = []
        self._depth = 0
        self._in_string = False
        self._escaped = False
