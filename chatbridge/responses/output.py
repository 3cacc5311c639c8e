"""Builders for response objects and output items."""

import time
from typing import Any, Optional, Sequence
from uuid import uuid4

from ..tools.classifier import ToolClassification
from ..tools.parser import ToolCall
from ..types.responses import (
    FunctionCallItem,
    MessageItem,
    NativeToolCallSummary,
    OutputItem,
    ResponseError,
    ResponseObject,
)


def generate_response_id() -> str:
    """Generate a unique response ID."""
    return f"resp_{uuid4().hex[:32]}"


def generate_message_id() -> str:
    """Generate a unique message ID."""
    return f"msg_{uuid4().hex[:24]}"


def generate_call_id() -> str:
    """Generate a unique call ID for function calls."""
    return f"call_{uuid4().hex[:24]}"


def now_seconds() -> int:
    return int(time.time())


def build_message_item(item_id: str, text: str, status: str = "completed") -> MessageItem:
    return {
        "id": item_id,
        "type": "message",
        "role": "assistant",
        "status": status,
        "content": [{
            "type": "output_text",
            "text": text,
            "annotations": [],
        }],
    }


def build_function_call_item(tool_call: ToolCall) -> FunctionCallItem:
    call_id = generate_call_id()
    return {
        "id": f"fc_{uuid4().hex[:24]}",
        "type": "function_call",
        "call_id": call_id,
        "name": tool_call.name,
        "arguments": tool_call.arguments_json(),
        "status": "completed",
    }


def summarize_native_tool_call(
    classification: Optional[ToolClassification],
) -> Optional[NativeToolCallSummary]:
    """Describe a tool the backend ran itself, or None if there was none."""
    if classification is None or classification.tool_call is None or classification.misrouted:
        return None
    return {
        "name": classification.tool_call.name,
        "arguments": dict(classification.tool_call.arguments),
        "status": "failed" if classification.failed else "completed",
    }


def build_response_object(
    *,
    response_id: str,
    created_at: int,
    model: str,
    status: str,
    output: Sequence[OutputItem] = (),
    output_text: str = "",
    classification: Optional[ToolClassification] = None,
    error: Optional[ResponseError] = None,
    conversation: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> ResponseObject:
    """Build the response object for lifecycle events and non-streaming replies."""
    finished = status in {"completed", "failed"}
    return {
        "id": response_id,
        "object": "response",
        "created_at": created_at,
        "completed_at": now_seconds() if finished else None,
        "status": status,
        "model": model,
        "output": list(output),
        "output_text": output_text,
        "native_tool_call": summarize_native_tool_call(classification),
        "error": error,
        "incomplete_details": None,
        "conversation": conversation,
        "metadata": dict(metadata or {}),
        "parallel_tool_calls": False,
        "tool_choice": "auto",
        "tools": [],
        "usage": None,
    }
