"""Debounced, throttled background sync of dirty conversations.

Scheduling discipline:

- Debounce: every dirty notification pushes the sync back by ``debounce_ms``.
- Throttle: two sync executions are never closer than ``min_interval_ms``.
- Max delay: a sync always runs within ``max_delay_ms`` of the first dirty
  notification, however busy the store stays.

Timers run on the event loop via ``loop.call_later``; the sync itself runs as
a task, one at a time.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from .sync import SyncBackend

logger = logging.getLogger("chatbridge")


@dataclass(frozen=True)
class AutoSyncConfig:
    enabled: bool = False
    debounce_ms: int = 5000
    min_interval_ms: int = 30000
    max_delay_ms: int = 60000

    def normalized(self) -> "AutoSyncConfig":
        """Raise ``max_delay_ms`` to ``min_interval_ms`` when it is lower."""
        if self.max_delay_ms < self.min_interval_ms:
            logger.info(
                "Auto-sync max_delay_ms=%d is below min_interval_ms=%d, using %d",
                self.max_delay_ms,
                self.min_interval_ms,
                self.min_interval_ms,
            )
            return replace(self, max_delay_ms=self.min_interval_ms)
        return self


class AutoSyncScheduler:
    """Runs ``SyncBackend.sync`` when the store reports dirty state."""

    def __init__(
        self,
        backend: SyncBackend,
        config: Optional[AutoSyncConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = (config or AutoSyncConfig()).normalized()
        self._backend = backend
        self._clock = clock

        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._max_delay_handle: Optional[asyncio.TimerHandle] = None
        self._sync_task: Optional[asyncio.Task] = None
        self._first_dirty_at: Optional[float] = None
        self._last_attempt_at: Optional[float] = None
        self._pending_sync = False
        self._is_syncing = False
        self._dirty_during_sync = False
        self._stopped = False

        # Stats
        self.sync_count = 0
        self.last_sync_time: Optional[float] = None
        self.last_error: Optional[str] = None

        if self.config.enabled:
            logger.info(
                "Auto-sync enabled (debounce=%dms, min_interval=%dms, max_delay=%dms)",
                self.config.debounce_ms,
                self.config.min_interval_ms,
                self.config.max_delay_ms,
            )

    def notify_dirty(self, conversation_id: Optional[str] = None) -> None:
        """Record that the store changed. Never raises sync failures."""
        if not self.config.enabled or self._stopped:
            return
        if self._is_syncing:
            self._dirty_during_sync = True
            return
        if self._first_dirty_at is None:
            self._first_dirty_at = self._clock()
            self._start_max_delay_timer()
        self._schedule_sync()

    async def sync_now(self) -> int:
        """Sync immediately, after any sync already in flight. Errors propagate."""
        self._cancel_timers()
        self._pending_sync = False
        self._first_dirty_at = None
        in_flight = self._sync_task
        if in_flight is not None and not in_flight.done():
            await asyncio.wait({in_flight})
        return await self._execute(raise_errors=True)

    def stop(self) -> None:
        """Cancel timers and ignore further notifications."""
        self._stopped = True
        self._cancel_timers()
        self._pending_sync = False
        self._first_dirty_at = None
        logger.info("Auto-sync stopped")

    async def aclose(self) -> None:
        """Stop and wait for an in-flight sync to finish."""
        self.stop()
        task = self._sync_task
        if task is not None and not task.done():
            await asyncio.wait({task})

    def get_stats(self) -> dict[str, Any]:
        return {
            "enabled": self.config.enabled,
            "sync_count": self.sync_count,
            "last_sync_time": self.last_sync_time,
            "pending_sync": self._pending_sync,
            "is_syncing": self._is_syncing,
            "last_error": self.last_error,
        }

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _schedule_sync(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

        throttle_ms = 0.0
        if self._last_attempt_at is not None:
            since_last_ms = (self._clock() - self._last_attempt_at) * 1000
            throttle_ms = max(0.0, self.config.min_interval_ms - since_last_ms)
        delay_ms = max(float(self.config.debounce_ms), throttle_ms)

        logger.debug("Scheduling auto-sync in %.0fms (throttle=%.0fms)", delay_ms, throttle_ms)
        self._pending_sync = True
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(delay_ms / 1000, self._on_debounce)

    def _start_max_delay_timer(self) -> None:
        if self._max_delay_handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._max_delay_handle = loop.call_later(
            self.config.max_delay_ms / 1000, self._on_max_delay
        )

    def _on_debounce(self) -> None:
        self._debounce_handle = None
        self._start_sync_task()

    def _on_max_delay(self) -> None:
        self._max_delay_handle = None
        if self._pending_sync:
            logger.info("Auto-sync max delay reached, forcing sync")
            self._start_sync_task()

    def _start_sync_task(self) -> None:
        if self._is_syncing or self._stopped:
            return
        if self._sync_task is not None and not self._sync_task.done():
            return
        # Claimed before the task first runs; timers firing in the same loop
        # iteration must see the sync as in flight.
        self._is_syncing = True
        self._pending_sync = False
        self._cancel_timers()
        self._sync_task = asyncio.get_running_loop().create_task(self._execute())
        self._sync_task.add_done_callback(self._on_sync_task_done)

    def _on_sync_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled() and task is self._sync_task:
            self._is_syncing = False

    def _cancel_timers(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        if self._max_delay_handle is not None:
            self._max_delay_handle.cancel()
            self._max_delay_handle = None

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute(self, raise_errors: bool = False) -> int:
        self._is_syncing = True
        self._pending_sync = False
        self._cancel_timers()
        self._last_attempt_at = self._clock()
        started = self._last_attempt_at
        failed = False

        try:
            synced = await self._backend.sync()
        except Exception as exc:
            failed = True
            self.last_error = str(exc) or exc.__class__.__name__
            logger.error("Auto-sync failed: %s (%s)", exc, exc.__class__.__name__)
            if raise_errors:
                raise
            synced = 0
        else:
            self.sync_count += 1
            self.last_sync_time = time.time()
            self.last_error = None
            self._first_dirty_at = None
            duration_ms = (self._clock() - started) * 1000
            if synced > 0:
                logger.info(
                    "Auto-sync completed: %d conversations in %.0fms (total syncs: %d)",
                    synced,
                    duration_ms,
                    self.sync_count,
                )
            else:
                logger.debug("Auto-sync: no dirty conversations")
        finally:
            self._is_syncing = False
            if failed or self._dirty_during_sync:
                self._reschedule()

        return synced

    def _reschedule(self) -> None:
        self._dirty_during_sync = False
        if self._stopped or not self.config.enabled:
            return
        self._first_dirty_at = None
        self.notify_dirty()
