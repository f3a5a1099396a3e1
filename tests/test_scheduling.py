"""
Tests for the cooperative schedulers
"""

import asyncio

import pytest

from examroom.proctor.scheduling import AsyncioScheduler, VirtualScheduler


def recorder():
    results = []

    def on_done(result, error):
        results.append((result, error))

    return results, on_done


class TestVirtualSpawn:
    """Tests for running coroutines on virtual time"""

    def test_runs_to_completion_immediately(self):
        results, on_done = recorder()

        async def work():
            await asyncio.sleep(0)
            return "done"

        VirtualScheduler().spawn(work(), on_done)

        assert results == [("done", None)]

    def test_reports_errors(self):
        results, on_done = recorder()

        async def broken():
            raise ValueError("nope")

        VirtualScheduler().spawn(broken(), on_done)

        result, error = results[0]
        assert result is None
        assert isinstance(error, ValueError)

    def test_coroutine_needing_a_loop_is_an_error(self):
        results, on_done = recorder()

        async def waits():
            await asyncio.sleep(1.0)

        VirtualScheduler().spawn(waits(), on_done)

        assert len(results) == 1
        assert isinstance(results[0][1], RuntimeError)


class TestAsyncioSpawn:
    """Tests for running coroutines as event loop tasks"""

    @pytest.mark.asyncio
    async def test_task_reports_result(self):
        results, on_done = recorder()

        async def work():
            await asyncio.sleep(0.01)
            return 42

        task = AsyncioScheduler().spawn(work(), on_done)
        assert results == []

        await asyncio.wait({task})
        await asyncio.sleep(0)

        assert results == [(42, None)]

    @pytest.mark.asyncio
    async def test_timers_keep_running_during_task(self):
        scheduler = AsyncioScheduler()
        ticks = []
        results, on_done = recorder()

        async def slow():
            await asyncio.sleep(0.1)
            return True

        scheduler.spawn(slow(), on_done)
        scheduler.call_later(0.02, ticks.append, "tick")

        await asyncio.sleep(0.05)
        assert ticks == ["tick"]
        assert results == []

        await asyncio.sleep(0.1)
        assert results == [(True, None)]
