"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

from typing import Any, Optional

import httpx
import pytest

from chatbridge.bridge import ChatBridge
from chatbridge.concurrency import RequestSerializer
from chatbridge.conversations import ConversationStore
from chatbridge.core.backend import BackendClient, static_token_auth
from chatbridge.settings import BridgeSettings
from chatbridge.testing import FakeBackend, ScriptedBackend
from chatbridge.usage_metrics import BridgeMetrics

BACKEND_BASE_URL = "http://backend.local/api"


# =============================================================================
# Backend Fixtures
# =============================================================================


@pytest.fixture
def scripted_backend() -> ScriptedBackend:
    """In-memory backend replaying queued message scripts."""
    return ScriptedBackend()


@pytest.fixture
def fake_backend() -> FakeBackend:
    """HTTP fake of the backend chat endpoint.

    Mount it with ``build_backend_client(fake_backend)``.
    """
    return FakeBackend(route="/api/ai/v1/chat")


def build_backend_client(
    fake: FakeBackend,
    *,
    token: str = "test-token",
    enable_web_search: bool = False,
    auth: Optional[Any] = None,
) -> BackendClient:
    """BackendClient talking to a FakeBackend through an in-process transport."""
    return BackendClient(
        BACKEND_BASE_URL,
        auth or static_token_auth(token),
        enable_web_search=enable_web_search,
        transport=httpx.ASGITransport(app=fake.app),
    )


# =============================================================================
# Bridge Fixtures
# =============================================================================


def build_bridge(
    backend: Any,
    *,
    max_conversations: int = 10,
    settings: Optional[BridgeSettings] = None,
    scheduler: Optional[Any] = None,
) -> ChatBridge:
    """ChatBridge over the given backend with fresh store, serializer and metrics."""
    return ChatBridge(
        backend,
        ConversationStore(max_conversations=max_conversations, retain_evicted=scheduler is not None),
        RequestSerializer(),
        scheduler,
        settings or BridgeSettings(),
        BridgeMetrics(),
    )


@pytest.fixture
def bridge(scripted_backend: ScriptedBackend) -> ChatBridge:
    return build_bridge(scripted_backend)
