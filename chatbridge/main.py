"""FastAPI application and entry point for the chat bridge."""

import logging
import socket
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .api.routes import health_endpoint, responses_endpoint
from .bridge import ChatBridge
from .concurrency.serializer import RequestSerializer
from .config_loader import load_config
from .conversations.store import ConversationStore
from .core.backend import BackendClient, static_token_auth
from .core.exceptions import ConfigurationError
from .logging import setup_logging
from .persistence.auto_sync import AutoSyncScheduler
from .persistence.sync import HttpPushSink, StoreSync
from .settings import BridgeSettings
from .usage_metrics import BridgeMetrics

logger = logging.getLogger("chatbridge")


def build_bridge(settings: BridgeSettings) -> ChatBridge:
    """Wire backend client, store, serializer and auto-sync from settings."""
    backend_cfg = settings.backend
    if not backend_cfg.token:
        raise ConfigurationError("backend.token is not configured")

    backend = BackendClient(
        backend_cfg.base_url,
        static_token_auth(backend_cfg.token),
        endpoint=backend_cfg.endpoint,
        timeout=backend_cfg.timeout,
        enable_web_search=backend_cfg.enable_web_search,
    )
    sync_cfg = settings.conversations.sync
    store = ConversationStore(
        max_conversations=settings.conversations.max_in_memory,
        retain_evicted=bool(sync_cfg.url),
    )

    scheduler: Optional[AutoSyncScheduler] = None
    if sync_cfg.url:
        push = HttpPushSink(sync_cfg.url, token=sync_cfg.token)
        scheduler = AutoSyncScheduler(StoreSync(store, push), sync_cfg.to_auto_sync_config())
    elif sync_cfg.auto_sync:
        logger.warning("conversations.sync.auto_sync is enabled but no sync url is configured; disabled")

    return ChatBridge(
        backend,
        store,
        RequestSerializer(),
        scheduler,
        settings,
        BridgeMetrics(),
    )


def create_app(settings: Optional[BridgeSettings] = None, bridge: Optional[ChatBridge] = None) -> FastAPI:
    """Factory function to create the FastAPI application.

    Args:
        settings: Typed settings; loaded from the config file when omitted.
        bridge: Prebuilt bridge (tests); built from settings when omitted.
    """
    if settings is None:
        settings = bridge.settings if bridge is not None else BridgeSettings.from_config(load_config())
    if bridge is None:
        bridge = build_bridge(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Chat bridge ready on %s:%s -> %s",
            settings.server.host,
            settings.server.port,
            settings.backend.base_url,
        )
        try:
            yield
        finally:
            await bridge.aclose()
            logger.info("Chat bridge stopped")

    app = FastAPI(title="chatbridge", lifespan=lifespan)
    app.state.settings = settings
    app.state.bridge = bridge

    app.post("/v1/responses")(responses_endpoint)
    app.get("/health")(health_endpoint)
    return app


def main() -> None:
    import uvicorn

    settings = BridgeSettings.from_config(load_config())
    setup_logging(settings.log_level)

    host, port = settings.server.host, settings.server.port
    logger.info("Configured bind address %s:%s", host, port)
    if host == "0.0.0.0":
        logger.info("Reachable on local network at http://%s:%s", socket.gethostname(), port)

    uvicorn.run(create_app(settings), host=host, port=port)


if __name__ == "__main__":
    main()
