"""chatbridge - Responses API bridge for a streaming conversational backend.

This package provides:
- StreamTranslator: backend SSE stream -> sequenced Responses API events
- ToolCallClassifier: native vs. misrouted tool call detection
- ConversationStore: bounded in-memory conversation cache
- RequestSerializer: one backend conversation at a time
- AutoSyncScheduler: debounced background persistence

Example:
    >>> from chatbridge.main import create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(), host="127.0.0.1", port=3033)
"""

from .bridge import ChatBridge
from .concurrency import RequestSerializer
from .config_loader import load_config
from .conversations import ConversationStore
from .logging import logger, setup_logging
from .persistence import AutoSyncConfig, AutoSyncScheduler
from .responses import StreamTranslator
from .settings import BridgeSettings
from .tools import IncrementalJsonExtractor, ToolCallClassifier

__all__ = [
    "AutoSyncConfig",
    "AutoSyncScheduler",
    "BridgeSettings",
    "ChatBridge",
    "ConversationStore",
    "IncrementalJsonExtractor",
    "RequestSerializer",
    "StreamTranslator",
    "ToolCallClassifier",
    "load_config",
    "logger",
    "setup_logging",
]
