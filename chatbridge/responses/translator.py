"""Translation of one backend generation stream into client protocol events.

Backend messages are routed by target: ``message`` text becomes
output_text deltas, ``title`` text is collected for new conversations, and
``tool_call`` / ``tool_result`` fragments drive the ToolCallClassifier. A
misrouted tool call aborts the stream so the caller can retry the turn
("bounce"); backend failure markers end the response with a single ``error``
event.
"""

import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Iterable, Optional, Sequence

from ..core.backend import MessageStream, StreamingBackend
from ..core.exceptions import BackendError, BridgeError
from ..core.sse import (
    TARGET_MESSAGE,
    TARGET_TITLE,
    TARGET_TOOL_CALL,
    TARGET_TOOL_RESULT,
    TYPE_DONE,
    TYPE_ERROR,
    TYPE_HARMFUL,
    TYPE_INGESTING,
    TYPE_REJECTED,
    TYPE_TIMEOUT,
    TYPE_TOKEN_DATA,
    BackendMessage,
)
from ..tools.classifier import NATIVE_TOOL_NAMES, ToolCallClassifier, ToolClassification
from ..tools.json_extractor import IncrementalJsonExtractor
from ..tools.parser import ToolCall, parse_tool_call_json
from ..tools.prefix import strip_tool_prefix
from ..types.chat import Turn
from ..types.responses import OutputItem, ProtocolEvent, ResponseError, ResponseObject
from ..usage_metrics import ToolCallCounters
from .events import MESSAGE_OUTPUT_INDEX, ResponseEventEmitter
from .output import build_function_call_item, build_message_item, build_response_object

logger = logging.getLogger("chatbridge")

# Backend failure marker -> (error code, message)
MARKER_ERRORS: dict[str, tuple[str, str]] = {
    TYPE_ERROR: ("backend_error", "The backend reported an error."),
    TYPE_TIMEOUT: ("backend_timeout", "The backend timed out while generating the response."),
    TYPE_REJECTED: ("request_rejected", "The backend rejected the request."),
    TYPE_HARMFUL: ("content_rejected", "The backend refused to answer for content policy reasons."),
}

STREAM_ENDED_UNEXPECTEDLY = "stream_ended_unexpectedly"


@dataclass(frozen=True)
class BounceSignal:
    """A misrouted tool call; the caller should retry the turn with these tools suppressed."""

    tool_call: ToolCall
    suppressed_tools: frozenset[str]


@dataclass
class TranslationOutcome:
    """Terminal result of one translator run."""

    status: str  # completed | bounced | failed
    text: str = ""
    title: Optional[str] = None
    classification: Optional[ToolClassification] = None
    response: Optional[ResponseObject] = None
    error: Optional[ResponseError] = None
    bounce: Optional[BounceSignal] = None
    function_calls: list[ToolCall] = field(default_factory=list)


class StreamTranslator:
    """Drives one backend call and translates it into protocol events.

    Failures never escape ``run``: they end the event series with an
    ``error`` event and are reported on ``outcome``.
    """

    def __init__(
        self,
        backend: StreamingBackend,
        emitter: ResponseEventEmitter,
        *,
        bounce: bool = False,
        suppressed_tools: Iterable[str] = (),
        native_tools: Iterable[str] = NATIVE_TOOL_NAMES,
        metrics: Optional[ToolCallCounters] = None,
        tool_prefix: str = "",
        request_title: bool = False,
    ) -> None:
        self.backend = backend
        self.emitter = emitter
        self.bounce = bounce
        self.request_title = request_title
        self._suppressed = frozenset(suppressed_tools)
        self._native_tools = frozenset(native_tools)
        self._tool_prefix = tool_prefix
        self._classifier = ToolCallClassifier(
            bounce,
            native_tools=self._native_tools,
            suppressed_tools=self._suppressed,
            metrics=metrics,
            tool_prefix=tool_prefix,
        )
        self._text_parts: list[str] = []
        self._title_parts: list[str] = []
        self.outcome: Optional[TranslationOutcome] = None

    @property
    def targets(self) -> tuple[str, ...]:
        if self.request_title:
            return (TARGET_MESSAGE, TARGET_TITLE)
        return (TARGET_MESSAGE,)

    async def run(self, turns: Sequence[Turn]) -> AsyncIterator[ProtocolEvent]:
        """Yield the protocol events of one response.

        ``message`` text is streamed as it arrives. When a misrouted tool call
        aborts the run, deltas already yielded stay with the client; a retry
        on the same emitter appends its own deltas, while
        ``output_text.done`` and ``response.completed`` carry only the text
        of the run that completed.
        """
        for event in self.emitter.start():
            yield event

        try:
            stream = await self.backend.open_stream(turns, targets=self.targets)
        except BackendError as exc:
            yield self._fail(exc.code, exc.message)
            return

        try:
            async for event in self._consume(stream):
                yield event
        finally:
            await stream.aclose()

    async def collect(self, turns: Sequence[Turn]) -> TranslationOutcome:
        """Run the same state machine without surfacing events."""
        async for _ in self.run(turns):
            pass
        if self.outcome is None:
            raise BridgeError("translator finished without an outcome")
        return self.outcome

    async def _consume(self, stream: MessageStream) -> AsyncIterator[ProtocolEvent]:
        try:
            async for message in stream:
                if message.type == TYPE_TOKEN_DATA:
                    delta = self._route_token(message)
                    if self.outcome is not None:
                        # Misrouted tool call: stop reading right away
                        await stream.aclose()
                        return
                    if delta:
                        yield self.emitter.emit_text_delta(delta)
                elif message.type == TYPE_INGESTING:
                    logger.debug("Backend is ingesting (target=%s)", message.target)
                elif message.type == TYPE_DONE:
                    for event in self._complete():
                        yield event
                    return
                elif message.is_terminal_failure:
                    code, default_message = MARKER_ERRORS[message.type]
                    yield self._fail(code, message.detail or default_message)
                    return
        except BackendError as exc:
            yield self._fail(exc.code, exc.message)
            return

        logger.warning("Backend stream ended without a done marker")
        yield self._fail(STREAM_ENDED_UNEXPECTEDLY, "Backend stream ended before the response was complete.")

    def _route_token(self, message: BackendMessage) -> str:
        """Apply one token_data message; return text to surface as a delta."""
        content = message.content
        if message.target == TARGET_MESSAGE:
            self._text_parts.append(content)
            return content
        if message.target == TARGET_TITLE:
            self._title_parts.append(content)
        elif message.target == TARGET_TOOL_CALL:
            if self._classifier.feed_tool_call(content):
                self._bounce()
        elif message.target == TARGET_TOOL_RESULT:
            self._classifier.feed_tool_result(content)
        else:
            logger.debug("Ignoring token_data for target=%s", message.target)
        return ""

    def _bounce(self) -> None:
        classification = self._classifier.get_result()
        tool_call = classification.tool_call
        if tool_call is None:
            raise BridgeError("bounce requested without a classified tool call")
        logger.info(
            "Aborting response %s: tool %s was routed through the native channel",
            self.emitter.response_id,
            tool_call.name,
        )
        self._text_parts.clear()
        self.outcome = TranslationOutcome(
            status="bounced",
            classification=classification,
            bounce=BounceSignal(
                tool_call=tool_call,
                suppressed_tools=self._suppressed | {tool_call.name},
            ),
        )

    def _complete(self) -> list[ProtocolEvent]:
        self._classifier.finalize()
        classification = self._classifier.get_result()
        text = "".join(self._text_parts)
        emitter = self.emitter

        message_item = build_message_item(emitter.item_id, text)
        events = [
            emitter.emit_text_done(text),
            emitter.emit_content_part_done(text),
            emitter.emit_output_item_done(message_item, MESSAGE_OUTPUT_INDEX),
        ]

        output: list[OutputItem] = [message_item]
        function_calls = self._client_tool_calls(text, classification)
        for output_index, tool_call in enumerate(function_calls, start=MESSAGE_OUTPUT_INDEX + 1):
            item = build_function_call_item(tool_call)
            events.append(emitter.emit_output_item_added(
                {**item, "status": "in_progress", "arguments": ""}, output_index
            ))
            events.append(emitter.emit_output_item_done(item, output_index))
            output.append(item)

        response = build_response_object(
            response_id=emitter.response_id,
            created_at=emitter.created_at,
            model=emitter.model,
            status="completed",
            output=output,
            output_text=text,
            classification=self._native_only(classification),
            conversation=emitter.conversation,
        )
        events.append(emitter.emit_completed(response))

        self.outcome = TranslationOutcome(
            status="completed",
            text=text,
            title=self._title(),
            classification=classification,
            response=response,
            function_calls=function_calls,
        )
        logger.debug(
            "Response %s completed (%d chars, %d function calls)",
            emitter.response_id,
            len(text),
            len(function_calls),
        )
        return events

    def _fail(self, code: str, message: str) -> ProtocolEvent:
        logger.warning("Response %s failed: %s (%s)", self.emitter.response_id, message, code)
        error: ResponseError = {"code": code, "message": message}
        text = "".join(self._text_parts)
        classification = self._classifier.get_result()
        self.outcome = TranslationOutcome(
            status="failed",
            text=text,
            title=self._title(),
            classification=classification,
            response=build_response_object(
                response_id=self.emitter.response_id,
                created_at=self.emitter.created_at,
                model=self.emitter.model,
                status="failed",
                output_text=text,
                classification=self._native_only(classification),
                error=error,
                conversation=self.emitter.conversation,
            ),
            error=error,
        )
        return self.emitter.emit_error(code, message)

    def _title(self) -> Optional[str]:
        title = "".join(self._title_parts).strip()
        return title or None

    def _native_only(self, classification: ToolClassification) -> Optional[ToolClassification]:
        """The classification if it describes a backend-native tool, else None."""
        tool_call = classification.tool_call
        if tool_call is not None and tool_call.name not in self._native_tools:
            return None
        return classification

    def _client_tool_calls(self, text: str, classification: ToolClassification) -> list[ToolCall]:
        """Client tool calls to surface as function_call items."""
        tool_call = classification.tool_call
        if tool_call is not None and tool_call.name not in self._native_tools:
            # Only reachable in bounce mode, where misroutes do not abort
            return [tool_call]
        if not self.bounce or not self._suppressed:
            return []

        for raw in IncrementalJsonExtractor().feed(text):
            parsed = parse_tool_call_json(raw)
            if parsed is not None and self._is_suppressed(parsed.name):
                return [parsed]
        return []

    def _is_suppressed(self, name: str) -> bool:
        stripped = strip_tool_prefix(name, self._tool_prefix)
        return any(
            stripped == strip_tool_prefix(suppressed, self._tool_prefix)
            for suppressed in self._suppressed
        )
