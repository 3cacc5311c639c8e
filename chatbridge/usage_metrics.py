"""In-memory counters for tool calls and served responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any


class RequestTracker:
    """Track a single response lifecycle for in-memory counters."""

    def __init__(self, counters: "ResponseCounters") -> None:
        self._counters = counters
        self._finished = False

    def finish(self, status: str) -> None:
        if self._finished:
            return
        self._finished = True
        self._counters.finish_request(status)


@dataclass
class ResponseCounters:
    """Thread-safe counters for response lifecycle tracking."""

    _lock: Lock = field(default_factory=Lock, repr=False)
    _started_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    _received: int = 0
    _ongoing: int = 0
    _by_status: dict[str, int] = field(default_factory=dict)

    def start_request(self) -> RequestTracker:
        with self._lock:
            self._received += 1
            self._ongoing += 1
        return RequestTracker(self)

    def finish_request(self, status: str) -> None:
        with self._lock:
            self._by_status[status] = self._by_status.get(status, 0) + 1
            self._ongoing = max(0, self._ongoing - 1)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "started_at": self._started_at,
                "received": self._received,
                "ongoing": self._ongoing,
                "by_status": dict(self._by_status),
            }


@dataclass
class ToolCallCounters:
    """Thread-safe tool call counters keyed by (type, status, tool_name).

    ``type`` is ``native`` for backend-native tools and ``custom`` for
    client-defined tools; ``status`` is one of success, failed, misrouted.
    """

    _lock: Lock = field(default_factory=Lock, repr=False)
    _counts: dict[tuple[str, str, str], int] = field(default_factory=dict)

    def record(self, type: str, status: str, tool_name: str) -> None:
        key = (type, status, tool_name)
        with self._lock:
            self._counts[key] = self._counts.get(key, 0) + 1

    def get(self, type: str, status: str, tool_name: str) -> int:
        with self._lock:
            return self._counts.get((type, status, tool_name), 0)

    def snapshot(self) -> list[dict[str, Any]]:
        with self._lock:
            return [
                {"type": t, "status": s, "tool_name": n, "count": count}
                for (t, s, n), count in sorted(self._counts.items())
            ]


@dataclass
class BridgeMetrics:
    """Metrics context passed explicitly to the components that record into it."""

    tool_calls: ToolCallCounters = field(default_factory=ToolCallCounters)
    responses: ResponseCounters = field(default_factory=ResponseCounters)

    def snapshot(self) -> dict[str, Any]:
        return {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "responses": self.responses.snapshot(),
            "tool_calls": self.tool_calls.snapshot(),
        }
