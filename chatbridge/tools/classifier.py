"""Classification of tool calls emitted on the backend's native tool channel.

The backend runs a handful of tools itself (web search, weather, ...). When a
client defines its own tools, the backend is supposed to answer with the call
as plain text, but it sometimes routes such a call through its native
``tool_call`` channel instead, where it can only fail. Those calls are
"misrouted": the translator aborts the response and the caller retries the
turn ("bounce").
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from ..usage_metrics import ToolCallCounters
from .json_extractor import IncrementalJsonExtractor
from .parser import ToolCall, is_error_result, parse_tool_call_json
from .prefix import strip_tool_prefix

logger = logging.getLogger("chatbridge")

NATIVE_TOOL_NAMES: frozenset[str] = frozenset({
    "proton_info",
    "web_search",
    "weather",
    "stock",
    "cryptocurrency",
})


@dataclass(frozen=True)
class ToolClassification:
    """Terminal summary of one response's native tool channel."""

    tool_call: Optional[ToolCall]
    failed: bool
    misrouted: bool


class ToolCallClassifier:
    """Tracks the tool_call and tool_result sub-channels of one response.

    Only the first complete tool call is classified. Later tool-call objects
    are still run through the extractor so its state stays consistent, but
    they never change the result.
    """

    def __init__(
        self,
        bounce: bool = False,
        *,
        native_tools: Iterable[str] = NATIVE_TOOL_NAMES,
        suppressed_tools: Iterable[str] = (),
        metrics: Optional[ToolCallCounters] = None,
        tool_prefix: str = "",
    ) -> None:
        """
        Args:
            bounce: This response is itself a bounce retry; misroute
                detection is disabled so a retry can never bounce again.
            native_tools: Tool names the backend executes itself.
            suppressed_tools: Names that must not trigger a misroute abort.
            metrics: Counters to record tool call outcomes into.
            tool_prefix: Prefix of client tool names, stripped for metrics.
        """
        self.bounce = bounce
        self._native_tools = frozenset(native_tools)
        self._suppressed = frozenset(suppressed_tools)
        self._metrics = metrics
        self._tool_prefix = tool_prefix

        self._call_extractor = IncrementalJsonExtractor()
        self._result_extractor = IncrementalJsonExtractor()
        self._first_call: Optional[ToolCall] = None
        self._failed = False
        self._misrouted = False
        self._finalized = False

    def feed_tool_call(self, text: str) -> bool:
        """Feed tool_call content. Returns True when the response must be aborted."""
        for raw in self._call_extractor.feed(text):
            if self._misrouted:
                # Already aborted; the caller should have stopped feeding
                continue
            if self._first_call is not None:
                logger.debug("Ignoring additional tool_call: %s", raw[:200])
                continue

            tool_call = parse_tool_call_json(raw)
            if tool_call is None:
                logger.debug("Dropping unparseable tool_call: %s", raw[:200])
                continue

            self._first_call = tool_call
            if self.is_misrouted(tool_call.name):
                self._misrouted = True
                stripped = strip_tool_prefix(tool_call.name, self._tool_prefix)
                if self._metrics is not None:
                    self._metrics.record("custom", "misrouted", stripped)
                logger.info("Misrouted tool call detected: %s", tool_call.name)
                return True
            logger.debug("Native tool_call: %s", raw[:200])
        return False

    def feed_tool_result(self, text: str) -> None:
        """Feed tool_result content."""
        for raw in self._result_extractor.feed(text):
            logger.debug("Native tool_result: %s", raw[:200])
            if self._first_call is not None and not self._failed and is_error_result(raw):
                self._failed = True

    def finalize(self) -> None:
        """Record the final outcome. Call once after the backend stream ends."""
        if self._finalized:
            return
        self._finalized = True
        if self._first_call is None or self._misrouted:
            return
        status = "failed" if self._failed else "success"
        if self._metrics is not None:
            self._metrics.record("native", status, self._first_call.name)
        logger.debug(
            "Backend tool call %s finished: %s",
            self._first_call.name,
            status,
        )

    def get_result(self) -> ToolClassification:
        return ToolClassification(
            tool_call=self._first_call,
            failed=self._failed,
            misrouted=self._misrouted,
        )

    def is_misrouted(self, name: str) -> bool:
        if self.bounce or name in self._suppressed:
            return False
        return name not in self._native_tools
