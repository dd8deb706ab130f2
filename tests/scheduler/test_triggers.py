"""Tests for promptcron/scheduler/triggers.py"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from promptcron.scheduler import triggers
from promptcron.scheduler.cadence import next_fire_time
from promptcron.scheduler.triggers import CronTrigger, seconds_until

NEW_YORK = ZoneInfo("America/New_York")

EVERY_SECOND = "* * * * * *"


async def _wait_for(predicate, timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.02)


# ── Lifecycle ────────────────────────────────────────────────────────────────

class TestCronTriggerLifecycle:
    @pytest.mark.asyncio
    async def test_next_run_known_after_start(self):
        fixed = datetime(2024, 1, 15, 2, 59, 0, tzinfo=timezone.utc)
        trigger = CronTrigger("0 3 * * *", lambda: None, clock=lambda tz: fixed)

        assert trigger.next_run is None
        trigger.start()
        try:
            assert trigger.running
            assert trigger.next_run == datetime(2024, 1, 15, 3, 0, tzinfo=timezone.utc)
        finally:
            trigger.stop()

    @pytest.mark.asyncio
    async def test_stop_clears_next_run(self):
        trigger = CronTrigger("0 3 * * *", lambda: None)
        trigger.start()
        trigger.stop()
        await asyncio.sleep(0.01)

        assert trigger.stopped
        assert trigger.next_run is None
        assert not trigger.running

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        trigger = CronTrigger("0 3 * * *", lambda: None)
        trigger.start()
        trigger.stop()
        trigger.stop()

    @pytest.mark.asyncio
    async def test_stopped_trigger_cannot_restart(self):
        trigger = CronTrigger("0 3 * * *", lambda: None)
        trigger.start()
        trigger.stop()

        with pytest.raises(RuntimeError):
            trigger.start()


# ── Firing ───────────────────────────────────────────────────────────────────

class TestCronTriggerFiring:
    @pytest.mark.asyncio
    async def test_fires_repeatedly(self):
        fired: list[datetime] = []
        trigger = CronTrigger(EVERY_SECOND, lambda: fired.append(datetime.now(timezone.utc)))
        trigger.start()
        try:
            await _wait_for(lambda: len(fired) >= 2)
        finally:
            trigger.stop()

        # Two firings land in different seconds
        assert fired[0].replace(microsecond=0) != fired[1].replace(microsecond=0)

    @pytest.mark.asyncio
    async def test_no_firing_after_stop(self):
        fired = []
        trigger = CronTrigger(EVERY_SECOND, lambda: fired.append(1))
        trigger.start()
        await _wait_for(lambda: len(fired) >= 1)
        trigger.stop()

        count = len(fired)
        await asyncio.sleep(1.5)
        assert len(fired) == count

    @pytest.mark.asyncio
    async def test_callback_error_keeps_trigger_alive(self):
        calls = []

        def boom():
            calls.append(1)
            raise RuntimeError("callback failed")

        trigger = CronTrigger(EVERY_SECOND, boom, name="boom")
        trigger.start()
        try:
            await _wait_for(lambda: len(calls) >= 2)
            assert trigger.running
        finally:
            trigger.stop()

    @pytest.mark.asyncio
    async def test_next_run_advances_after_firing(self):
        fired = []
        trigger = CronTrigger(EVERY_SECOND, lambda: fired.append(trigger.next_run))
        trigger.start()
        first = trigger.next_run
        try:
            await _wait_for(lambda: len(fired) >= 1)
        finally:
            trigger.stop()

        # By the time the callback runs, next_run already points past the fired slot
        assert fired[0] > first


# ── DST ──────────────────────────────────────────────────────────────────────

class TestDaylightSaving:
    def test_spring_forward_delay_is_real_time(self):
        # 01:30 EST to 03:00 EDT is half an hour, not ninety minutes
        now = datetime(2024, 3, 10, 1, 30, tzinfo=NEW_YORK)
        scheduled = next_fire_time("0 3 * * *", now)

        assert scheduled.utcoffset().total_seconds() == -4 * 3600
        assert seconds_until(scheduled, now) == 1800

    def test_fall_back_delay_is_real_time(self):
        # 00:30 EDT to 03:00 EST spans the repeated hour
        now = datetime(2024, 11, 3, 0, 30, tzinfo=NEW_YORK)
        scheduled = next_fire_time("0 3 * * *", now)

        assert seconds_until(scheduled, now) == 3.5 * 3600

    @pytest.mark.asyncio
    async def test_trigger_sleeps_real_time_across_spring_forward(self, monkeypatch):
        now = datetime(2024, 3, 10, 1, 30, tzinfo=NEW_YORK)
        real_sleep = asyncio.sleep
        delays: list[float] = []

        trigger = CronTrigger("0 3 * * *", lambda: None, tz=NEW_YORK, clock=lambda tz: now)

        async def recording_sleep(delay):
            delays.append(delay)
            trigger.stop()

        monkeypatch.setattr(triggers.asyncio, "sleep", recording_sleep)
        trigger.start()
        try:
            await real_sleep(0.01)
        finally:
            trigger.stop()
            monkeypatch.undo()

        assert delays == [1800]
