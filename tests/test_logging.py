"""Tests for logging setup and the metrics counters."""

import logging

from chatbridge.conversations import ConversationStore
from chatbridge.logging import LOGGER_NAME, setup_logging
from chatbridge.types.chat import Turn
from chatbridge.usage_metrics import BridgeMetrics


def test_setup_logging_accepts_level_names():
    logger = setup_logging("debug")
    assert logger.name == LOGGER_NAME
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1

    assert setup_logging("nonsense").level == logging.INFO
    setup_logging(logging.INFO)


def test_forced_eviction_is_logged(caplog):
    store = ConversationStore(max_conversations=1)
    with caplog.at_level(logging.WARNING, logger=LOGGER_NAME):
        store.append_messages("c1", [Turn(role="user", content="1")])
        store.append_messages("c2", [Turn(role="user", content="2")])
    assert any("Force-evicted dirty conversation c1" in r.getMessage() for r in caplog.records)


def test_response_counters_track_lifecycle():
    metrics = BridgeMetrics()
    tracker = metrics.responses.start_request()
    assert metrics.responses.snapshot()["ongoing"] == 1

    tracker.finish("completed")
    tracker.finish("completed")

    snapshot = metrics.snapshot()
    assert snapshot["responses"]["ongoing"] == 0
    assert snapshot["responses"]["received"] == 1
    assert snapshot["responses"]["by_status"] == {"completed": 1}
    assert snapshot["tool_calls"] == []
