"""Sequenced event emission for one streamed response.

One emitter belongs to exactly one client response. A bounce retry reuses the
emitter of the aborted attempt, so the prefix events are emitted only once and
sequence numbers continue without gaps.
"""

import json
from typing import Any, Optional

from ..types.responses import (
    EVENT_CONTENT_PART_ADDED,
    EVENT_CONTENT_PART_DONE,
    EVENT_ERROR,
    EVENT_OUTPUT_ITEM_ADDED,
    EVENT_OUTPUT_ITEM_DONE,
    EVENT_OUTPUT_TEXT_DELTA,
    EVENT_OUTPUT_TEXT_DONE,
    EVENT_RESPONSE_COMPLETED,
    EVENT_RESPONSE_CREATED,
    EVENT_RESPONSE_IN_PROGRESS,
    OutputItem,
    ProtocolEvent,
    ResponseObject,
)
from .output import (
    build_message_item,
    build_response_object,
    generate_message_id,
    generate_response_id,
    now_seconds,
)

MESSAGE_OUTPUT_INDEX = 0
CONTENT_INDEX = 0


class ResponseEventEmitter:
    """Builds protocol events and stamps their sequence numbers."""

    def __init__(
        self,
        model: str,
        *,
        response_id: Optional[str] = None,
        conversation: Optional[str] = None,
    ) -> None:
        self.model = model
        self.response_id = response_id or generate_response_id()
        self.item_id = generate_message_id()
        self.created_at = now_seconds()
        self.conversation = conversation
        self.sequence_number = 0
        # Set once the created..content_part.added prefix has been emitted
        self.started = False
        self.finished = False

    def _emit(self, event_type: str, data: dict[str, Any]) -> ProtocolEvent:
        event = {
            "type": event_type,
            "sequence_number": self.sequence_number,
            **data,
        }
        self.sequence_number += 1
        return event  # type: ignore[return-value]

    def in_progress_response(self) -> ResponseObject:
        return build_response_object(
            response_id=self.response_id,
            created_at=self.created_at,
            model=self.model,
            status="in_progress",
            conversation=self.conversation,
        )

    def start(self) -> list[ProtocolEvent]:
        """Emit the four prefix events, or nothing if already started."""
        if self.started:
            return []
        self.started = True
        return [
            self.emit_created(),
            self.emit_in_progress(),
            self.emit_output_item_added(
                build_message_item(self.item_id, "", status="in_progress"),
                MESSAGE_OUTPUT_INDEX,
            ),
            self.emit_content_part_added(),
        ]

    def emit_created(self) -> ProtocolEvent:
        return self._emit(EVENT_RESPONSE_CREATED, {"response": self.in_progress_response()})

    def emit_in_progress(self) -> ProtocolEvent:
        return self._emit(EVENT_RESPONSE_IN_PROGRESS, {"response": self.in_progress_response()})

    def emit_output_item_added(self, item: OutputItem, output_index: int) -> ProtocolEvent:
        return self._emit(EVENT_OUTPUT_ITEM_ADDED, {
            "output_index": output_index,
            "item": item,
        })

    def emit_content_part_added(self) -> ProtocolEvent:
        return self._emit(EVENT_CONTENT_PART_ADDED, {
            "item_id": self.item_id,
            "output_index": MESSAGE_OUTPUT_INDEX,
            "content_index": CONTENT_INDEX,
            "part": {"type": "output_text", "text": "", "annotations": []},
        })

    def emit_text_delta(self, delta: str) -> ProtocolEvent:
        return self._emit(EVENT_OUTPUT_TEXT_DELTA, {
            "item_id": self.item_id,
            "output_index": MESSAGE_OUTPUT_INDEX,
            "content_index": CONTENT_INDEX,
            "delta": delta,
        })

    def emit_text_done(self, text: str) -> ProtocolEvent:
        return self._emit(EVENT_OUTPUT_TEXT_DONE, {
            "item_id": self.item_id,
            "output_index": MESSAGE_OUTPUT_INDEX,
            "content_index": CONTENT_INDEX,
            "text": text,
        })

    def emit_content_part_done(self, text: str) -> ProtocolEvent:
        return self._emit(EVENT_CONTENT_PART_DONE, {
            "item_id": self.item_id,
            "output_index": MESSAGE_OUTPUT_INDEX,
            "content_index": CONTENT_INDEX,
            "part": {"type": "output_text", "text": text, "annotations": []},
        })

    def emit_output_item_done(self, item: OutputItem, output_index: int) -> ProtocolEvent:
        return self._emit(EVENT_OUTPUT_ITEM_DONE, {
            "output_index": output_index,
            "item": item,
        })

    def emit_completed(self, response: ResponseObject) -> ProtocolEvent:
        self.finished = True
        return self._emit(EVENT_RESPONSE_COMPLETED, {"response": response})

    def emit_error(self, code: str, message: str, param: Optional[str] = None) -> ProtocolEvent:
        self.finished = True
        return self._emit(EVENT_ERROR, {
            "code": code,
            "message": message,
            "param": param,
        })


def encode_sse_event(event: ProtocolEvent) -> bytes:
    """Format one protocol event as an SSE frame."""
    json_str = json.dumps(event, ensure_ascii=False)
    return f"event: {event['type']}\ndata: {json_str}\n\n".encode("utf-8")
