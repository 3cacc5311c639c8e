"""Typed view over the loaded configuration dictionary."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Optional

from .persistence.auto_sync import AutoSyncConfig

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3033
DEFAULT_MODEL_NAME = "chatbridge"
DEFAULT_MAX_IN_MEMORY = 100
DEFAULT_BOUNCE_INSTRUCTION = (
    "The tool '{tool_name}' is not available through your built-in tools. "
    "To call it, reply with only a JSON object of the form "
    '{{"name": "{tool_name}", "arguments": {{...}}}} in a ```json code block.'
)


def _section(config: dict[str, Any], key: str) -> dict[str, Any]:
    value = config.get(key)
    return value if isinstance(value, dict) else {}


def _get_int(config: dict[str, Any], key: str, default: int) -> int:
    """Get an integer value from config with fallback."""
    value = config.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def _get_float(config: dict[str, Any], key: str, default: float) -> float:
    value = config.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        return default


def _get_bool(config: dict[str, Any], key: str, default: bool) -> bool:
    value = config.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
        return default
    return bool(value)


def _get_str(config: dict[str, Any], key: str, default: Optional[str]) -> Optional[str]:
    value = config.get(key)
    if value is None or value == "":
        return default
    return str(value)


@dataclass(frozen=True)
class ServerSettings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass(frozen=True)
class BackendSettings:
    base_url: str = "http://127.0.0.1:8080/api"
    endpoint: str = "ai/v1/chat"
    token: Optional[str] = None
    timeout: float = 60.0
    model_name: str = DEFAULT_MODEL_NAME
    enable_web_search: bool = False


@dataclass(frozen=True)
class ToolSettings:
    prefix: str = ""
    bounce_instruction: str = DEFAULT_BOUNCE_INSTRUCTION


@dataclass(frozen=True)
class SyncSettings:
    auto_sync: bool = False
    debounce_ms: int = 5000
    min_interval_ms: int = 30000
    max_delay_ms: int = 60000
    url: Optional[str] = None
    token: Optional[str] = None

    def to_auto_sync_config(self) -> AutoSyncConfig:
        return AutoSyncConfig(
            enabled=self.auto_sync,
            debounce_ms=self.debounce_ms,
            min_interval_ms=self.min_interval_ms,
            max_delay_ms=self.max_delay_ms,
        )


@dataclass(frozen=True)
class ConversationSettings:
    max_in_memory: int = DEFAULT_MAX_IN_MEMORY
    sync: SyncSettings = field(default_factory=SyncSettings)


@dataclass(frozen=True)
class BridgeSettings:
    server: ServerSettings = field(default_factory=ServerSettings)
    backend: BackendSettings = field(default_factory=BackendSettings)
    tools: ToolSettings = field(default_factory=ToolSettings)
    conversations: ConversationSettings = field(default_factory=ConversationSettings)
    log_level: str = "INFO"

    @classmethod
    def from_config(cls, config: Optional[dict[str, Any]]) -> "BridgeSettings":
        config = config or {}
        server = _section(config, "server")
        backend = _section(config, "backend")
        tools = _section(config, "tools")
        conversations = _section(config, "conversations")
        sync = _section(conversations, "sync")
        log = _section(config, "log")

        host = os.getenv("CHATBRIDGE_HOST") or _get_str(server, "host", DEFAULT_HOST)
        port = _get_int({"port": os.getenv("CHATBRIDGE_PORT")}, "port", _get_int(server, "port", DEFAULT_PORT))

        return cls(
            server=ServerSettings(host=host or DEFAULT_HOST, port=port),
            backend=BackendSettings(
                base_url=_get_str(backend, "base_url", BackendSettings.base_url) or BackendSettings.base_url,
                endpoint=_get_str(backend, "endpoint", BackendSettings.endpoint) or BackendSettings.endpoint,
                token=_get_str(backend, "token", None),
                timeout=_get_float(backend, "timeout", BackendSettings.timeout),
                model_name=_get_str(backend, "model_name", DEFAULT_MODEL_NAME) or DEFAULT_MODEL_NAME,
                enable_web_search=_get_bool(backend, "enable_web_search", False),
            ),
            tools=ToolSettings(
                prefix=_get_str(tools, "prefix", "") or "",
                bounce_instruction=(
                    _get_str(tools, "bounce_instruction", DEFAULT_BOUNCE_INSTRUCTION)
                    or DEFAULT_BOUNCE_INSTRUCTION
                ),
            ),
            conversations=ConversationSettings(
                max_in_memory=max(1, _get_int(conversations, "max_in_memory", DEFAULT_MAX_IN_MEMORY)),
                sync=SyncSettings(
                    auto_sync=_get_bool(sync, "auto_sync", False),
                    debounce_ms=_get_int(sync, "debounce_ms", SyncSettings.debounce_ms),
                    min_interval_ms=_get_int(sync, "min_interval_ms", SyncSettings.min_interval_ms),
                    max_delay_ms=_get_int(sync, "max_delay_ms", SyncSettings.max_delay_ms),
                    url=_get_str(sync, "url", None),
                    token=_get_str(sync, "token", None),
                ),
            ),
            log_level=(_get_str(log, "level", "INFO") or "INFO").upper(),
        )
