"""Request orchestration: one client turn through store, serializer and translator.

Flow of a turn::

    RequestSerializer -> ConversationStore (append incoming, read turns)
      -> StreamTranslator (backend call, bounce retry) -> protocol events
      -> ConversationStore (assistant turn, title) -> AutoSyncScheduler
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Sequence
from uuid import uuid4

from .concurrency.serializer import RequestSerializer
from .conversations.store import ConversationStore
from .core.backend import StreamingBackend
from .core.exceptions import BridgeError
from .persistence.auto_sync import AutoSyncScheduler
from .responses.events import ResponseEventEmitter
from .responses.translator import BounceSignal, StreamTranslator, TranslationOutcome
from .settings import BridgeSettings
from .tools.classifier import NATIVE_TOOL_NAMES
from .types.chat import Turn
from .types.responses import ProtocolEvent, ResponseObject
from .usage_metrics import BridgeMetrics

logger = logging.getLogger("chatbridge")

MAX_BOUNCES = 1

_END = object()


def generate_conversation_id() -> str:
    return f"conv_{uuid4().hex[:24]}"


@dataclass
class _TurnState:
    conversation_id: str
    outcome: Optional[TranslationOutcome] = None


class ChatBridge:
    """Serves client turns against one backend, one at a time."""

    def __init__(
        self,
        backend: StreamingBackend,
        store: ConversationStore,
        serializer: Optional[RequestSerializer] = None,
        scheduler: Optional[AutoSyncScheduler] = None,
        settings: Optional[BridgeSettings] = None,
        metrics: Optional[BridgeMetrics] = None,
    ) -> None:
        self.backend = backend
        self.store = store
        self.serializer = serializer or RequestSerializer()
        self.scheduler = scheduler
        self.settings = settings or BridgeSettings()
        self.metrics = metrics or BridgeMetrics()
        self.native_tools = NATIVE_TOOL_NAMES

        if scheduler is not None and store.on_change is None:
            store.on_change = scheduler.notify_dirty

    async def stream_response(
        self,
        conversation_id: Optional[str],
        turns: Sequence[Turn],
        *,
        model: Optional[str] = None,
    ) -> AsyncIterator[ProtocolEvent]:
        """Yield the protocol events of one response.

        The serialized task pushes events into a queue drained here; closing
        this generator cancels the task and releases its backend stream.
        """
        state = _TurnState(conversation_id or generate_conversation_id())
        emitter = ResponseEventEmitter(
            model or self.settings.backend.model_name,
            conversation=state.conversation_id,
        )
        queue: asyncio.Queue = asyncio.Queue()
        tracker = self.metrics.responses.start_request()

        async def task() -> None:
            async for event in self._run_turn(state, turns, emitter):
                await queue.put(event)

        submitted = asyncio.ensure_future(self.serializer.submit(task))
        submitted.add_done_callback(lambda _: queue.put_nowait(_END))

        try:
            while True:
                item = await queue.get()
                if item is _END:
                    break
                yield item
            await submitted
        finally:
            if not submitted.done():
                submitted.cancel()
                await asyncio.wait({submitted})
            tracker.finish(self._status(state, submitted))

    async def create_response(
        self,
        conversation_id: Optional[str],
        turns: Sequence[Turn],
        *,
        model: Optional[str] = None,
    ) -> ResponseObject:
        """Run one turn to completion and return the final response object."""
        state = _TurnState(conversation_id or generate_conversation_id())
        emitter = ResponseEventEmitter(
            model or self.settings.backend.model_name,
            conversation=state.conversation_id,
        )
        tracker = self.metrics.responses.start_request()

        async def task() -> None:
            async for _ in self._run_turn(state, turns, emitter):
                pass

        try:
            await self.serializer.submit(task)
        finally:
            tracker.finish(self._status(state))

        if state.outcome is None or state.outcome.response is None:
            raise BridgeError(f"turn for {state.conversation_id} produced no response")
        return state.outcome.response

    async def aclose(self) -> None:
        """Stop accepting work and flush pending conversations once."""
        await self.serializer.close()
        if self.scheduler is not None:
            await self.scheduler.aclose()
            if self.scheduler.config.enabled:
                try:
                    await self.scheduler.sync_now()
                except Exception as exc:
                    logger.error("Final sync on shutdown failed: %s", exc)

    def get_stats(self) -> dict[str, Any]:
        return {
            "conversations": self.store.get_stats(),
            "queue": self.serializer.get_stats(),
            "auto_sync": self.scheduler.get_stats() if self.scheduler is not None else None,
            "metrics": self.metrics.snapshot(),
        }

    # ------------------------------------------------------------------
    # Turn execution (runs inside the serializer)
    # ------------------------------------------------------------------

    async def _run_turn(
        self,
        state: _TurnState,
        incoming: Sequence[Turn],
        emitter: ResponseEventEmitter,
    ) -> AsyncIterator[ProtocolEvent]:
        conversation_id = state.conversation_id
        is_new = not self.store.has(conversation_id)

        appended = self.store.append_history(conversation_id, incoming)
        turns = self.store.get_turns(conversation_id)
        logger.info(
            "Turn for %s: %d new turns, %d total%s",
            conversation_id,
            len(appended),
            len(turns),
            " (new conversation)" if is_new else "",
        )

        translator = self._translator(emitter, request_title=is_new)
        async for event in translator.run(turns):
            yield event
        outcome = translator.outcome

        bounces = 0
        while outcome is not None and outcome.status == "bounced" and bounces < MAX_BOUNCES:
            bounces += 1
            if outcome.bounce is None:
                raise BridgeError("bounced outcome is missing its bounce signal")
            retry_turns = self._with_bounce_instruction(turns, outcome.bounce)
            logger.info(
                "Retrying %s with %s suppressed (bounce %d/%d)",
                conversation_id,
                ", ".join(sorted(outcome.bounce.suppressed_tools)),
                bounces,
                MAX_BOUNCES,
            )
            translator = self._translator(
                emitter,
                bounce=True,
                suppressed_tools=outcome.bounce.suppressed_tools,
                request_title=is_new,
            )
            async for event in translator.run(retry_turns):
                yield event
            outcome = translator.outcome

        state.outcome = outcome
        if outcome is None or outcome.status != "completed":
            return

        self.store.append_assistant_response(conversation_id, outcome.text)
        if is_new and outcome.title:
            self.store.set_title(conversation_id, outcome.title)

    def _translator(
        self,
        emitter: ResponseEventEmitter,
        *,
        bounce: bool = False,
        suppressed_tools: Sequence[str] = (),
        request_title: bool = False,
    ) -> StreamTranslator:
        return StreamTranslator(
            self.backend,
            emitter,
            bounce=bounce,
            suppressed_tools=suppressed_tools,
            native_tools=self.native_tools,
            metrics=self.metrics.tool_calls,
            tool_prefix=self.settings.tools.prefix,
            request_title=request_title,
        )

    def _with_bounce_instruction(self, turns: Sequence[Turn], signal: BounceSignal) -> list[Turn]:
        instruction = self.settings.tools.bounce_instruction.format(tool_name=signal.tool_call.name)
        retry = list(turns)
        for index in range(len(retry) - 1, -1, -1):
            if retry[index].role == "user":
                retry[index] = Turn(role="user", content=f"{retry[index].content}\n\n{instruction}")
                return retry
        retry.append(Turn(role="user", content=instruction))
        return retry

    @staticmethod
    def _status(state: _TurnState, submitted: Optional[asyncio.Future] = None) -> str:
        if submitted is not None and submitted.cancelled():
            return "cancelled"
        if state.outcome is None:
            return "error"
        return state.outcome.status

