"""
Unit tests for the named timer scheduler.
"""

import asyncio

import pytest

from core.scheduler import TimerScheduler


class TestSchedule:
    """Test one-shot timers."""

    @pytest.mark.asyncio
    async def test_timer_fires_and_forgets_itself(self):
        timers = TimerScheduler()
        fired = []

        async def callback():
            fired.append(True)

        timers.schedule("probe", 0, callback)
        await asyncio.sleep(0.01)

        assert fired == [True]
        assert timers.pending() == []

    @pytest.mark.asyncio
    async def test_same_name_replaces_pending_timer(self):
        timers = TimerScheduler()
        fired = []

        async def first():
            fired.append("first")

        async def second():
            fired.append("second")

        timers.schedule("poll", 0.05, first)
        timers.schedule("poll", 0, second)
        await asyncio.sleep(0.1)

        assert fired == ["second"]

    @pytest.mark.asyncio
    async def test_callback_can_reschedule_its_own_name(self):
        timers = TimerScheduler()
        runs = []

        async def callback():
            runs.append(len(runs))
            if len(runs) < 3:
                timers.schedule("poll", 0, callback)

        timers.schedule("poll", 0, callback)
        await asyncio.sleep(0.05)

        assert runs == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_failing_callback_is_contained(self):
        timers = TimerScheduler()

        async def boom():
            raise RuntimeError("boom")

        task = timers.schedule("probe", 0, boom)
        await asyncio.sleep(0.01)

        assert task.done()
        assert task.exception() is None

    @pytest.mark.asyncio
    async def test_cancel(self):
        timers = TimerScheduler()
        fired = []

        async def callback():
            fired.append(True)

        timers.schedule("probe", 0.02, callback)
        timers.cancel("probe")
        await asyncio.sleep(0.05)

        assert fired == []


class TestEvery:
    """Test recurring timers."""

    @pytest.mark.asyncio
    async def test_every_repeats_after_errors(self):
        timers = TimerScheduler()
        runs = []

        async def flaky():
            runs.append(True)
            raise ValueError("flaky")

        timers.every("sweep", 0.005, flaky)
        await asyncio.sleep(0.1)
        timers.close()

        assert len(runs) >= 2


class TestClose:
    """Test closing the scheduler."""

    @pytest.mark.asyncio
    async def test_close_cancels_and_refuses_new_timers(self):
        timers = TimerScheduler()
        fired = []

        async def callback():
            fired.append(True)

        timers.schedule("probe", 0.02, callback)
        timers.close()

        assert timers.closed is True
        assert timers.schedule("poll", 0, callback) is None
        await asyncio.sleep(0.05)
        assert fired == []

    @pytest.mark.asyncio
    async def test_cancel_all_by_name(self):
        timers = TimerScheduler()

        async def callback():
            await asyncio.sleep(1)

        timers.schedule("probe", 1, callback)
        timers.schedule("poll", 1, callback)
        timers.schedule("sweep", 1, callback)
        timers.cancel_all(("probe", "poll"))
        await asyncio.sleep(0)

        assert timers.pending() == ["sweep"]
        timers.close()
        await timers.drain()
