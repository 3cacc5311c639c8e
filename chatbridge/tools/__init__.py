"""Tool call handling for the backend's native tool channel.

- json_extractor: incremental JSON object extraction from chunked text
- parser: tool_call / tool_result JSON parsing
- classifier: native vs. misrouted tool call classification
- prefix: client tool name prefix helpers
"""

from .classifier import NATIVE_TOOL_NAMES, ToolCallClassifier, ToolClassification
from .json_extractor import FeedResult, IncrementalJsonExtractor
from .parser import ToolCall, is_error_result, parse_tool_call_json
from .prefix import strip_tool_prefix

__all__ = [
    "FeedResult",
    "IncrementalJsonExtractor",
    "NATIVE_TOOL_NAMES",
    "ToolCall",
    "ToolCallClassifier",
    "ToolClassification",
    "is_error_result",
    "parse_tool_call_json",
    "strip_tool_prefix",
]
