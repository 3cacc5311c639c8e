"""Sync collaborators used by the auto-sync scheduler.

``StoreSync`` pushes the dirty conversations of a ConversationStore (plus any
dirty conversations the store had to evict) through an injected async push
callable, then marks them synced. ``HttpPushSink`` is such a callable that
POSTs each snapshot as JSON to a remote endpoint.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, Protocol

import httpx

from ..conversations.store import ConversationSnapshot, ConversationStore
from ..core.exceptions import BackendHTTPError, BackendUnavailableError

logger = logging.getLogger("chatbridge")

PushFn = Callable[[ConversationSnapshot], Awaitable[None]]

DEFAULT_PUSH_TIMEOUT = 30.0


class SyncBackend(Protocol):
    async def sync(self) -> int:
        """Persist pending changes; return the number of conversations synced."""
        ...


class StoreSync:
    """Sync pass over a ConversationStore."""

    def __init__(self, store: ConversationStore, push: PushFn) -> None:
        self.store = store
        self._push = push

    async def sync(self) -> int:
        evicted = self.store.take_evicted()
        synced = 0

        for index, snapshot in enumerate(evicted):
            try:
                await self._push(snapshot)
            except Exception:
                self.store.restore_evicted(evicted[index:])
                raise
            synced += 1

        for snapshot in self.store.get_dirty():
            await self._push(snapshot)
            self.store.mark_synced(snapshot.id, snapshot.revision)
            synced += 1

        if synced:
            logger.debug("Synced %d conversations (%d evicted)", synced, len(evicted))
        return synced


class HttpPushSink:
    """Push snapshots to a remote endpoint as JSON over HTTP."""

    def __init__(
        self,
        url: str,
        *,
        token: Optional[str] = None,
        timeout: float = DEFAULT_PUSH_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._token = token
        self._transport = transport

    async def __call__(self, snapshot: ConversationSnapshot) -> None:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            ) as client:
                resp = await client.post(self.url, json=snapshot.to_dict(), headers=headers)
        except httpx.HTTPError as exc:
            raise BackendUnavailableError(f"sync push failed: {exc}") from exc
        if resp.status_code >= 400:
            raise BackendHTTPError(resp.status_code, resp.content)
        logger.debug("Pushed conversation %s (rev %d)", snapshot.id, snapshot.revision)
