"""Conversion of Responses API ``input`` into backend turns.

The backend only knows user and assistant turns. Client tool traffic is
carried as JSON text: a ``function_call`` becomes an assistant turn and a
``function_call_output`` a user turn. System and developer messages, plus
the request's ``instructions``, are appended to the first user turn as
personal context.
"""

import json
import logging
from typing import Any, Optional

from ..core.exceptions import InvalidRequestError
from ..types.chat import Turn

logger = logging.getLogger("chatbridge")

INSTRUCTION_ROLES = ("system", "developer")


def _content_text(content: Any) -> str:
    """Flatten message content (string or list of text parts) to text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "".join(parts)
    raise InvalidRequestError("message content must be a string or a list of parts", param="input")


def _normalize_arguments(arguments: Any) -> str:
    if isinstance(arguments, str):
        try:
            return json.dumps(json.loads(arguments), ensure_ascii=False)
        except json.JSONDecodeError:
            return arguments
    return json.dumps(arguments if arguments is not None else {}, ensure_ascii=False)


def _item_to_turn(item: dict[str, Any]) -> Optional[Turn]:
    item_type = item.get("type")
    if item_type == "function_call":
        return Turn(role="assistant", content=json.dumps({
            "type": "function_call",
            "call_id": item.get("call_id"),
            "name": item.get("name"),
            "arguments": _normalize_arguments(item.get("arguments")),
        }, ensure_ascii=False))
    if item_type == "function_call_output":
        return Turn(role="user", content=json.dumps({
            "type": "function_call_output",
            "call_id": item.get("call_id"),
            "output": item.get("output"),
        }, ensure_ascii=False))

    role = item.get("role")
    if role in ("user", "assistant"):
        return Turn(role=role, content=_content_text(item.get("content")))
    if item_type not in (None, "message"):
        logger.debug("Skipping unsupported input item type=%s", item_type)
        return None
    raise InvalidRequestError(f"unsupported role: {role!r}", param="input")


def parse_input(raw_input: Any, instructions: Optional[str] = None) -> list[Turn]:
    """Convert a request's ``input`` (and ``instructions``) into turns.

    Raises:
        InvalidRequestError: input is missing, of the wrong type, or yields no turns
    """
    if raw_input is None:
        raise InvalidRequestError(
            "You must provide an input parameter", code="missing_parameter", param="input"
        )

    context: list[str] = [instructions] if instructions else []
    turns: list[Turn] = []

    if isinstance(raw_input, str):
        turns.append(Turn(role="user", content=raw_input))
    elif isinstance(raw_input, list):
        for item in raw_input:
            if not isinstance(item, dict):
                raise InvalidRequestError("input items must be objects", param="input")
            if item.get("role") in INSTRUCTION_ROLES:
                text = _content_text(item.get("content"))
                if text:
                    context.append(text)
                continue
            turn = _item_to_turn(item)
            if turn is not None:
                turns.append(turn)
    else:
        raise InvalidRequestError("input must be a string or a list of items", param="input")

    if not turns:
        raise InvalidRequestError("input contains no user or assistant messages", param="input")

    if context:
        turns = _inject_context(turns, "\n\n".join(context))
    return turns


def _inject_context(turns: list[Turn], context: str) -> list[Turn]:
    for index, turn in enumerate(turns):
        if turn.role == "user":
            updated = list(turns)
            updated[index] = Turn(role="user", content=f"{turn.content}\n\n[Personal context: {context}]")
            return updated
    return turns
