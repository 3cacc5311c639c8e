"""Types for the client-facing Responses protocol.

These define the response object and the streaming events the bridge emits
for POST /v1/responses. Every event of one response carries a
``sequence_number`` that starts at 0 and increases by exactly one.
"""

from typing import Any, Literal, Optional, Union
from typing_extensions import TypedDict


# =============================================================================
# Status Types
# =============================================================================

ItemStatus = Literal["in_progress", "completed", "incomplete"]
"""Status lifecycle for output items."""

ResponseStatus = Literal["in_progress", "completed", "failed"]
"""Status lifecycle for the overall response."""


# =============================================================================
# Output Content / Item Types
# =============================================================================

class OutputText(TypedDict, total=False):
    """Text output content."""
    type: Literal["output_text"]
    text: str
    annotations: list[Any]


class MessageItem(TypedDict, total=False):
    """An assistant message item in output."""
    id: str
    type: Literal["message"]
    role: Literal["assistant"]
    status: ItemStatus
    content: list[OutputText]


class FunctionCallItem(TypedDict, total=False):
    """A call to a client-defined tool, surfaced for the client to execute."""
    id: str
    type: Literal["function_call"]
    call_id: str
    name: str
    arguments: str  # JSON string
    status: ItemStatus


OutputItem = Union[MessageItem, FunctionCallItem]
"""Union of all output item types."""


class NativeToolCallSummary(TypedDict):
    """A tool the backend executed itself while producing the response."""
    name: str
    arguments: dict[str, Any]
    status: Literal["completed", "failed"]


# =============================================================================
# Error Types
# =============================================================================

ErrorCode = Literal[
    "backend_error",
    "backend_timeout",
    "request_rejected",
    "content_rejected",
    "backend_unavailable",
    "stream_ended_unexpectedly",
    "server_error",
]


class ResponseError(TypedDict):
    """Error details carried by a failed response."""
    code: str
    message: str


# =============================================================================
# Response Types
# =============================================================================

class ResponseObject(TypedDict, total=False):
    """Full response object from POST /v1/responses."""
    # Identity
    id: str
    object: Literal["response"]

    # Timestamps
    created_at: int
    completed_at: Optional[int]

    # Status
    status: ResponseStatus
    model: str

    # Content
    output: list[OutputItem]
    output_text: str  # Convenience: concatenated output text
    native_tool_call: Optional[NativeToolCallSummary]

    # Error handling
    error: Optional[ResponseError]
    incomplete_details: Optional[dict[str, Any]]

    # Conversation bookkeeping
    conversation: Optional[str]
    metadata: dict[str, str]

    # Echo back configuration
    parallel_tool_calls: bool
    tool_choice: str
    tools: list[Any]
    usage: Optional[dict[str, int]]


# =============================================================================
# Streaming Event Types
# =============================================================================

class StreamEventBase(TypedDict):
    """Base fields for all streaming events."""
    type: str
    sequence_number: int


class ResponseLifecycleEvent(StreamEventBase):
    """response.created / response.in_progress / response.completed."""
    response: ResponseObject


class OutputItemEvent(StreamEventBase, total=False):
    """response.output_item.added / response.output_item.done."""
    output_index: int
    item: OutputItem


class ContentPartEvent(StreamEventBase, total=False):
    """response.content_part.added / response.content_part.done."""
    item_id: str
    output_index: int
    content_index: int
    part: OutputText


class OutputTextDeltaEvent(StreamEventBase, total=False):
    """response.output_text.delta - Only the newly generated text."""
    item_id: str
    output_index: int
    content_index: int
    delta: str


class OutputTextDoneEvent(StreamEventBase, total=False):
    """response.output_text.done - The full text of the content part."""
    item_id: str
    output_index: int
    content_index: int
    text: str


class ErrorEvent(StreamEventBase, total=False):
    """error - Terminal failure in place of the completion tail."""
    code: str
    message: str
    param: Optional[str]


ProtocolEvent = Union[
    ResponseLifecycleEvent,
    OutputItemEvent,
    ContentPartEvent,
    OutputTextDeltaEvent,
    OutputTextDoneEvent,
    ErrorEvent,
]
"""Union of all streaming event types."""


# =============================================================================
# Event Type Constants
# =============================================================================

# State machine events (lifecycle transitions)
EVENT_RESPONSE_CREATED = "response.created"
EVENT_RESPONSE_IN_PROGRESS = "response.in_progress"
EVENT_RESPONSE_COMPLETED = "response.completed"
EVENT_ERROR = "error"

# Delta events (incremental content)
EVENT_OUTPUT_ITEM_ADDED = "response.output_item.added"
EVENT_CONTENT_PART_ADDED = "response.content_part.added"
EVENT_OUTPUT_TEXT_DELTA = "response.output_text.delta"
EVENT_OUTPUT_TEXT_DONE = "response.output_text.done"
EVENT_CONTENT_PART_DONE = "response.content_part.done"
EVENT_OUTPUT_ITEM_DONE = "response.output_item.done"
