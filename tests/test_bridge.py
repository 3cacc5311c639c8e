"""Tests for ChatBridge turn orchestration."""

import asyncio

import pytest

from chatbridge.core.exceptions import BridgeError
from chatbridge.persistence import AutoSyncConfig, AutoSyncScheduler, StoreSync
from chatbridge.settings import BridgeSettings, ToolSettings
from chatbridge.testing import assert_responses_sse_valid, collect_text_deltas, marker, token, done
from chatbridge.types.chat import Turn

from conftest import build_bridge


def user(content):
    return Turn(role="user", content=content)


async def _stream(bridge, conversation_id, turns):
    return [event async for event in bridge.stream_response(conversation_id, turns)]


class TestStreamResponse:
    @pytest.mark.asyncio
    async def test_streams_events_and_stores_turns(self, bridge, scripted_backend):
        scripted_backend.enqueue_text(["Hi ", "there"], title="Greetings")

        events = await _stream(bridge, "conv_a", [user("Hello")])

        assert_responses_sse_valid(events)
        assert collect_text_deltas(events) == "Hi there"
        assert events[-1]["response"]["conversation"] == "conv_a"
        assert bridge.store.get_turns("conv_a") == [user("Hello"), Turn(role="assistant", content="Hi there")]
        assert bridge.store.get("conv_a").title == "Greetings"

    @pytest.mark.asyncio
    async def test_new_conversation_id_is_generated(self, bridge, scripted_backend):
        scripted_backend.enqueue_text(["ok"])
        events = await _stream(bridge, None, [user("Hello")])
        conversation_id = events[-1]["response"]["conversation"]
        assert conversation_id.startswith("conv_")
        assert bridge.store.has(conversation_id)

    @pytest.mark.asyncio
    async def test_title_requested_only_for_new_conversations(self, bridge, scripted_backend):
        scripted_backend.enqueue_text(["one"], title="First")
        scripted_backend.enqueue_text(["two"])

        await _stream(bridge, "conv_a", [user("a")])
        await _stream(bridge, "conv_a", [user("a"), Turn(role="assistant", content="one"), user("b")])

        assert scripted_backend.requests[0]["targets"] == ["message", "title"]
        assert scripted_backend.requests[1]["targets"] == ["message"]
        assert [t.content for t in scripted_backend.requests[1]["turns"]] == ["a", "one", "b"]
        assert bridge.store.get("conv_a").title == "First"

    @pytest.mark.asyncio
    async def test_failed_turn_does_not_store_assistant_reply(self, bridge, scripted_backend):
        scripted_backend.enqueue([token("message", "par"), marker("timeout")])

        events = await _stream(bridge, "conv_a", [user("Hello")])

        assert events[-1]["type"] == "error"
        assert events[-1]["code"] == "backend_timeout"
        assert bridge.store.get_turns("conv_a") == [user("Hello")]
        assert bridge.metrics.responses.snapshot()["by_status"] == {"failed": 1}

    @pytest.mark.asyncio
    async def test_concurrent_turns_run_one_at_a_time(self, bridge, scripted_backend):
        scripted_backend.enqueue_text(["first"], delay_s=0.01)
        scripted_backend.enqueue_text(["second"], delay_s=0.01)

        first, second = await asyncio.gather(
            _stream(bridge, "conv_a", [user("1")]),
            _stream(bridge, "conv_b", [user("2")]),
        )

        assert collect_text_deltas(first) == "first"
        assert collect_text_deltas(second) == "second"
        assert [r["turns"][0].content for r in scripted_backend.requests] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_closing_the_stream_early_releases_backend(self, bridge, scripted_backend):
        scripted_backend.enqueue_text(["a", "b", "c", "d"], delay_s=0.01)
        scripted_backend.enqueue_text(["next"])

        agen = bridge.stream_response("conv_a", [user("Hello")])
        async for event in agen:
            if event["type"] == "response.output_text.delta":
                break
        await agen.aclose()

        assert scripted_backend.streams[0].closed
        events = await _stream(bridge, "conv_b", [user("again")])
        assert collect_text_deltas(events) == "next"
        assert bridge.metrics.responses.snapshot()["by_status"]["cancelled"] == 1


class TestBounceRetry:
    @pytest.mark.asyncio
    async def test_misrouted_call_is_retried_with_instruction(self, scripted_backend):
        settings = BridgeSettings(tools=ToolSettings(bounce_instruction="Use {tool_name} as JSON."))
        bridge = build_bridge(scripted_backend, settings=settings)
        scripted_backend.enqueue([token("tool_call", '{"name": "do_homework", "parameters": {}}'), done()])
        scripted_backend.enqueue_text(['{"name": "do_homework", "arguments": {"subject": "math"}}'])

        events = await _stream(bridge, "conv_a", [user("Help with math")])

        assert_responses_sse_valid(events)
        retry_turns = scripted_backend.requests[1]["turns"]
        assert retry_turns[-1].content == "Help with math\n\nUse do_homework as JSON."
        response = events[-1]["response"]
        assert [item["type"] for item in response["output"]] == ["message", "function_call"]
        assert bridge.metrics.tool_calls.get("custom", "misrouted", "do_homework") == 1
        assert bridge.store.get_turns("conv_a")[0] == user("Help with math")

    @pytest.mark.asyncio
    async def test_retry_is_attempted_only_once(self, bridge, scripted_backend):
        scripted_backend.enqueue([token("tool_call", '{"name": "do_homework"}'), done()])
        scripted_backend.enqueue_text(["plain answer"], tool_call='{"name": "other_tool"}')

        events = await _stream(bridge, "conv_a", [user("Hi")])

        assert len(scripted_backend.requests) == 2
        assert events[-1]["type"] == "response.completed"


class TestCreateResponse:
    @pytest.mark.asyncio
    async def test_returns_final_response_object(self, bridge, scripted_backend):
        scripted_backend.enqueue_text(["Done."])

        response = await bridge.create_response("conv_a", [user("Hello")])

        assert response["status"] == "completed"
        assert response["output_text"] == "Done."
        assert bridge.store.get_turns("conv_a")[-1] == Turn(role="assistant", content="Done.")

    @pytest.mark.asyncio
    async def test_failure_returns_failed_response(self, bridge, scripted_backend):
        scripted_backend.enqueue([marker("harmful")])

        response = await bridge.create_response("conv_a", [user("Hello")])

        assert response["status"] == "failed"
        assert response["error"]["code"] == "content_rejected"

    @pytest.mark.asyncio
    async def test_turn_without_outcome_raises_bridge_error(self, bridge):
        async def no_events(state, turns, emitter):
            return
            yield

        bridge._run_turn = no_events

        with pytest.raises(BridgeError, match="produced no response"):
            await bridge.create_response("conv_a", [user("Hello")])


class TestAutoSyncWiring:
    @pytest.mark.asyncio
    async def test_store_changes_notify_scheduler_and_flush_on_close(self, scripted_backend):
        pushed = []

        async def push(snapshot):
            pushed.append(snapshot.id)

        bridge = build_bridge(scripted_backend)
        scheduler = AutoSyncScheduler(
            StoreSync(bridge.store, push),
            AutoSyncConfig(enabled=True, debounce_ms=5000, min_interval_ms=5000, max_delay_ms=5000),
        )
        bridge.scheduler = scheduler
        bridge.store.on_change = scheduler.notify_dirty
        scripted_backend.enqueue_text(["ok"])

        await _stream(bridge, "conv_a", [user("Hello")])
        assert scheduler.get_stats()["pending_sync"] is True

        await bridge.aclose()

        assert pushed == ["conv_a"]
        assert bridge.store.get_dirty() == []

    @pytest.mark.asyncio
    async def test_get_stats(self, bridge, scripted_backend):
        scripted_backend.enqueue_text(["ok"])
        await _stream(bridge, "conv_a", [user("Hello")])

        stats = bridge.get_stats()

        assert stats["conversations"]["total"] == 1
        assert stats["queue"]["completed"] == 1
        assert stats["auto_sync"] is None
        assert stats["metrics"]["responses"]["by_status"] == {"completed": 1}
