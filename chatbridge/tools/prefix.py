"""Helpers for the prefix applied to client-defined tool names."""


def strip_tool_prefix(name: str, prefix: str) -> str:
    """Strip ``prefix`` from a tool name; names without it are returned unchanged."""
    if not prefix:
        return name
    return name[len(prefix):] if name.startswith(prefix) else name
