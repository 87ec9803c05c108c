"""Tests for tick sources."""

from roundhouse.core.clock import CLOCK_JOB_ID, Clock, IntervalClock, ManualClock


class TestClock:
    async def test_handlers_run_in_subscription_order(self):
        clock = Clock()
        seen: list[str] = []

        async def first():
            seen.append("first")

        async def second():
            seen.append("second")

        clock.subscribe(first)
        clock.subscribe(second)
        await clock.tick()
        assert seen == ["first", "second"]

    async def test_subscribe_is_idempotent(self):
        clock = Clock()

        async def handler():
            pass

        clock.subscribe(handler)
        clock.subscribe(handler)
        assert clock.handler_count == 1
        clock.unsubscribe(handler)
        assert clock.handler_count == 0

    async def test_failing_handler_does_not_stop_others(self):
        clock = Clock()
        seen: list[int] = []

        async def broken():
            raise RuntimeError("boom")

        async def healthy():
            seen.append(clock.ticks)

        clock.subscribe(broken)
        clock.subscribe(healthy)
        await clock.tick()
        await clock.tick()
        assert seen == [1, 2]


class TestManualClock:
    async def test_advance_counts_ticks(self):
        clock = ManualClock()
        assert await clock.advance(5) == 5
        assert clock.ticks == 5


class TestIntervalClock:
    async def test_start_registers_single_job(self):
        clock = IntervalClock(interval_seconds=60)
        clock.start()
        try:
            assert clock.running
            clock.start()
            jobs = clock._scheduler.get_jobs()
            assert [job.id for job in jobs] == [CLOCK_JOB_ID]
        finally:
            clock.shutdown()
        assert not clock.running

    async def test_shutdown_without_start_is_noop(self):
        clock = IntervalClock()
        clock.shutdown()
        assert not clock.running
