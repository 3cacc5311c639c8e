"""HTTP client for the conversational backend.

One generation request is answered by a long-lived SSE body. The body is read
by a producer task that decodes it into ``BackendMessage`` objects and pushes
them into a bounded queue; the consumer iterates the ``BackendStream``.
Closing the stream cancels the producer, which releases the httpx response
and client.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol, Sequence, Union

import httpx

from ..types.chat import Turn
from .exceptions import BackendHTTPError, BackendUnavailableError
from .sse import TARGET_MESSAGE, BackendMessage, BackendMessageDecoder

logger = logging.getLogger("chatbridge")

DEFAULT_TIMEOUT = 60.0
DEFAULT_ENDPOINT = "ai/v1/chat"
STREAM_QUEUE_SIZE = 256

INTERNAL_TOOLS: tuple[str, ...] = ("proton_info",)
EXTERNAL_TOOLS: tuple[str, ...] = ("web_search", "weather", "stock", "cryptocurrency")


@dataclass(frozen=True)
class AuthStrategy:
    """Credential source for backend requests.

    ``get_token`` returns the current bearer token; ``refresh`` is awaited once
    when the backend answers 401, after which the request is retried.
    """

    name: str
    get_token: Callable[[], Awaitable[str]]
    refresh: Optional[Callable[[], Awaitable[None]]] = None


def static_token_auth(token: str) -> AuthStrategy:
    """Auth strategy for a fixed token taken from configuration."""

    async def _get_token() -> str:
        return token

    return AuthStrategy(name="static", get_token=_get_token)


class MessageStream(Protocol):
    """What the translator consumes: an async iterator that can be closed early."""

    def __aiter__(self) -> AsyncIterator[BackendMessage]: ...

    async def aclose(self) -> None: ...


class StreamingBackend(Protocol):
    async def open_stream(
        self,
        turns: Sequence[Turn],
        *,
        targets: Sequence[str] = (TARGET_MESSAGE,),
    ) -> MessageStream: ...


_END = object()


class BackendStream:
    """Channel between the body-reading producer task and the consumer."""

    def __init__(
        self,
        response: httpx.Response,
        client: httpx.AsyncClient,
        max_buffered: int = STREAM_QUEUE_SIZE,
    ) -> None:
        self._response = response
        self._client = client
        self._queue: asyncio.Queue[Union[BackendMessage, BaseException, object]] = asyncio.Queue(
            maxsize=max_buffered
        )
        self._decoder = BackendMessageDecoder()
        self._producer: Optional[asyncio.Task] = None
        self._finished = False
        self._released = False

    def start(self) -> None:
        if self._producer is None:
            self._producer = asyncio.get_running_loop().create_task(self._produce())

    def __aiter__(self) -> "BackendStream":
        return self

    async def __anext__(self) -> BackendMessage:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            self._finished = True
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            self._finished = True
            raise item
        return item  # type: ignore[return-value]

    async def aclose(self) -> None:
        """Stop reading and release the connection (idempotent)."""
        self._finished = True
        producer = self._producer
        if producer is not None and not producer.done():
            producer.cancel()
            try:
                await producer
            except asyncio.CancelledError:
                pass
        await self._release()

    @property
    def is_released(self) -> bool:
        return self._released

    async def _produce(self) -> None:
        try:
            try:
                async for chunk in self._response.aiter_bytes():
                    for message in self._decoder.feed(chunk):
                        await self._queue.put(message)
                for message in self._decoder.flush():
                    await self._queue.put(message)
            except httpx.HTTPError as exc:
                logger.warning("Backend stream interrupted: %s (%s)", exc, exc.__class__.__name__)
                await self._queue.put(BackendUnavailableError(f"backend stream interrupted: {exc}"))
                return
            except Exception as exc:
                # Hand the failure to the consumer so it never waits on a dead producer
                await self._queue.put(exc)
                return
            await self._queue.put(_END)
        finally:
            await self._release()

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        logger.debug("Closing backend stream")
        await self._response.aclose()
        await self._client.aclose()


class BackendClient:
    """Opens generation streams against the backend chat endpoint."""

    def __init__(
        self,
        base_url: str,
        auth: AuthStrategy,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = DEFAULT_TIMEOUT,
        enable_web_search: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self.endpoint = endpoint
        self.timeout = timeout
        self.enable_web_search = enable_web_search
        self._auth = auth
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.endpoint.lstrip('/')}"

    @property
    def tools(self) -> list[str]:
        if self.enable_web_search:
            return [*INTERNAL_TOOLS, *EXTERNAL_TOOLS]
        return list(INTERNAL_TOOLS)

    def build_payload(self, turns: Sequence[Turn], targets: Sequence[str]) -> dict[str, Any]:
        return {
            "Prompt": {
                "type": "generation_request",
                "turns": [turn.to_dict() for turn in turns],
                "options": {"tools": self.tools},
                "targets": list(targets),
            }
        }

    async def open_stream(
        self,
        turns: Sequence[Turn],
        *,
        targets: Sequence[str] = (TARGET_MESSAGE,),
    ) -> BackendStream:
        """Send a generation request and return the started message stream.

        Raises:
            BackendHTTPError: the backend answered with status >= 400
            BackendUnavailableError: the request could not be sent
        """
        payload = self.build_payload(turns, targets)
        refreshed = False

        while True:
            token = await self._auth.get_token()
            client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
                follow_redirects=True,
            )
            headers = {
                "Authorization": f"Bearer {token}",
                "Accept": "text/event-stream",
            }
            request = client.build_request("POST", self.url, json=payload, headers=headers)
            logger.debug("Sending generation request to %s (%d turns)", self.url, len(turns))
            try:
                resp = await client.send(request, stream=True)
            except httpx.HTTPError as exc:
                await client.aclose()
                logger.error(
                    "Failed to send generation request to %s: %s (type: %s)",
                    self.url,
                    exc,
                    exc.__class__.__name__,
                )
                raise BackendUnavailableError(f"backend request failed: {exc}") from exc

            if resp.status_code == 401 and not refreshed and self._auth.refresh is not None:
                await resp.aclose()
                await client.aclose()
                logger.info("Backend returned 401, refreshing credentials (auth=%s)", self._auth.name)
                await self._auth.refresh()
                refreshed = True
                continue

            if resp.status_code >= 400:
                data = await resp.aread()
                await resp.aclose()
                await client.aclose()
                logger.warning("Generation request to %s returned status %s", self.url, resp.status_code)
                raise BackendHTTPError(resp.status_code, data)

            stream = BackendStream(resp, client)
            stream.start()
            return stream
