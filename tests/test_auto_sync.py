"""Tests for the debounced auto-sync scheduler (timings scaled to milliseconds)."""

import asyncio
import time

import pytest

from chatbridge.persistence import AutoSyncConfig, AutoSyncScheduler


class RecordingSync:
    """SyncBackend that records call times and can fail or block on demand."""

    def __init__(self, failures=0, duration_s=0.0):
        self.calls = []
        self.failures = failures
        self.duration_s = duration_s
        self.active = 0
        self.max_active = 0

    async def sync(self):
        self.calls.append(time.monotonic())
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.duration_s:
                await asyncio.sleep(self.duration_s)
            if self.failures:
                self.failures -= 1
                raise RuntimeError("push failed")
            return 1
        finally:
            self.active -= 1


def _config(**overrides):
    values = {"enabled": True, "debounce_ms": 20, "min_interval_ms": 0, "max_delay_ms": 1000}
    values.update(overrides)
    return AutoSyncConfig(**values)


class TestAutoSyncConfig:
    def test_max_delay_raised_to_min_interval(self):
        config = AutoSyncConfig(enabled=True, min_interval_ms=500, max_delay_ms=100).normalized()
        assert config.max_delay_ms == 500

    def test_valid_config_unchanged(self):
        config = AutoSyncConfig(enabled=True)
        assert config.normalized() is config


class TestAutoSyncScheduler:
    @pytest.mark.asyncio
    async def test_notifications_are_debounced(self):
        backend = RecordingSync()
        scheduler = AutoSyncScheduler(backend, _config(debounce_ms=30))
        for _ in range(3):
            scheduler.notify_dirty("c1")
            await asyncio.sleep(0.01)

        await asyncio.sleep(0.12)

        assert len(backend.calls) == 1
        assert scheduler.sync_count == 1
        assert scheduler.get_stats()["pending_sync"] is False
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_max_delay_forces_sync_under_constant_changes(self):
        backend = RecordingSync()
        scheduler = AutoSyncScheduler(backend, _config(debounce_ms=50, max_delay_ms=120))
        started = time.monotonic()
        while time.monotonic() - started < 0.2 and not backend.calls:
            scheduler.notify_dirty("c1")
            await asyncio.sleep(0.02)

        assert backend.calls, "max delay never forced a sync"
        assert 0.1 <= backend.calls[0] - started < 0.2
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_min_interval_between_syncs(self):
        backend = RecordingSync()
        scheduler = AutoSyncScheduler(backend, _config(debounce_ms=10, min_interval_ms=150, max_delay_ms=150))
        scheduler.notify_dirty("c1")
        await asyncio.sleep(0.05)
        assert len(backend.calls) == 1

        scheduler.notify_dirty("c1")
        await asyncio.sleep(0.25)

        assert len(backend.calls) == 2
        assert backend.calls[1] - backend.calls[0] >= 0.14
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_failure_is_recorded_and_rescheduled(self):
        backend = RecordingSync(failures=1)
        scheduler = AutoSyncScheduler(backend, _config(debounce_ms=10, min_interval_ms=80, max_delay_ms=200))
        scheduler.notify_dirty("c1")
        await asyncio.sleep(0.04)

        assert len(backend.calls) == 1
        assert scheduler.last_error == "push failed"

        await asyncio.sleep(0.15)
        assert len(backend.calls) == 2
        assert scheduler.last_error is None
        assert scheduler.sync_count == 1
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_change_during_sync_schedules_another(self):
        backend = RecordingSync(duration_s=0.03)
        scheduler = AutoSyncScheduler(backend, _config(debounce_ms=10))
        scheduler.notify_dirty("c1")
        await asyncio.sleep(0.02)
        assert scheduler.get_stats()["is_syncing"] is True

        scheduler.notify_dirty("c2")
        await asyncio.sleep(0.1)

        assert len(backend.calls) == 2
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_disabled_scheduler_ignores_notifications(self):
        backend = RecordingSync()
        scheduler = AutoSyncScheduler(backend, _config(enabled=False))
        scheduler.notify_dirty("c1")
        await asyncio.sleep(0.05)
        assert backend.calls == []
        assert scheduler.get_stats()["enabled"] is False

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_sync(self):
        backend = RecordingSync()
        scheduler = AutoSyncScheduler(backend, _config(debounce_ms=20))
        scheduler.notify_dirty("c1")
        scheduler.stop()
        scheduler.notify_dirty("c1")
        await asyncio.sleep(0.05)
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_sync_now_runs_immediately_and_raises(self):
        backend = RecordingSync(failures=1)
        scheduler = AutoSyncScheduler(backend, _config(debounce_ms=1000))
        scheduler.notify_dirty("c1")

        with pytest.raises(RuntimeError):
            await scheduler.sync_now()
        scheduler.stop()
        assert await scheduler.sync_now() == 1
        assert len(backend.calls) == 2
        assert scheduler.sync_count == 1

    @pytest.mark.asyncio
    async def test_coinciding_debounce_and_max_delay_run_one_sync(self):
        backend = RecordingSync(duration_s=0.03)
        scheduler = AutoSyncScheduler(
            backend, _config(debounce_ms=60, min_interval_ms=30, max_delay_ms=60)
        )
        scheduler.notify_dirty("c1")

        await asyncio.sleep(0.2)

        assert len(backend.calls) == 1
        assert backend.max_active == 1
        assert scheduler.get_stats()["is_syncing"] is False
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_timers_firing_together_before_task_starts(self):
        backend = RecordingSync()
        scheduler = AutoSyncScheduler(backend, _config(debounce_ms=30))
        scheduler.notify_dirty("c1")
        scheduler._cancel_timers()

        # both timer callbacks in one loop iteration, before the task runs
        scheduler._on_debounce()
        scheduler._on_max_delay()
        assert scheduler.get_stats()["is_syncing"] is True
        scheduler.notify_dirty("c2")

        await asyncio.sleep(0.15)

        assert len(backend.calls) == 2
        assert backend.max_active == 1
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_constant_changes_sync_once_at_max_delay(self):
        # 1:5 scale of debounce=100ms, min_interval=500ms, max_delay=1000ms,
        # with a change every 50ms
        backend = RecordingSync()
        scheduler = AutoSyncScheduler(
            backend, _config(debounce_ms=20, min_interval_ms=100, max_delay_ms=200)
        )
        started = time.monotonic()
        while time.monotonic() - started < 0.3:
            scheduler.notify_dirty("c1")
            await asyncio.sleep(0.01)

        assert len(backend.calls) == 1
        assert 0.19 <= backend.calls[0] - started < 0.28
        await scheduler.aclose()
