"""Parsing of native tool_call / tool_result JSON objects.

The backend sends tool calls on the ``tool_call`` target as
``{"name": "web_search", "parameters": {"search_term": "..."}}`` and results
on ``tool_result``, where ``{"error": true}`` marks a failure.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger("chatbridge")


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation parsed from one complete JSON object."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def arguments_json(self) -> str:
        return json.dumps(self.arguments, ensure_ascii=False)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "arguments": dict(self.arguments)}


def _normalize_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return {}
    if isinstance(raw, dict):
        return raw
    return {}


def parse_tool_call_json(text: str) -> Optional[ToolCall]:
    """Parse a complete JSON object string as a tool call.

    The backend's ``parameters`` key is accepted in place of ``arguments``,
    and arguments sent as a JSON-encoded string are decoded. Returns None when
    the text is not a JSON object with a string ``name``.
    """
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict) or not isinstance(parsed.get("name"), str):
        return None

    raw_args = parsed.get("arguments")
    if raw_args is None:
        raw_args = parsed.get("parameters")

    logger.debug("Parsed tool call: %s", parsed["name"])
    return ToolCall(name=parsed["name"], arguments=_normalize_arguments(raw_args))


def is_error_result(text: str) -> bool:
    """Whether a complete tool_result JSON string reports ``"error": true``."""
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return False
    return isinstance(parsed, dict) and parsed.get("error") is True
