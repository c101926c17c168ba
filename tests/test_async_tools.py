"""
Async Tools Tests
Cancellation token semantics and the supervised task registry.
"""

import asyncio

import pytest

from slotwatch.util.async_tools import (
    CancellationToken, create_supervised_task,
)


class TestCancellationToken:

    def test_callbacks_run_once(self):
        token = CancellationToken()
        calls = []
        token.add_callback(lambda: calls.append("a"))
        remove = token.add_callback(lambda: calls.append("b"))
        remove()

        token.cancel()
        token.cancel()

        assert calls == ["a"]
        assert token.cancelled is True

    def test_late_callback_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []
        token.add_callback(lambda: calls.append(1))
        assert calls == [1]

    def test_failing_callback_does_not_block_others(self):
        token = CancellationToken()
        calls = []

        def broken():
            raise RuntimeError("boom")

        token.add_callback(broken)
        token.add_callback(lambda: calls.append("ok"))
        token.cancel()
        assert calls == ["ok"]

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        with pytest.raises(asyncio.CancelledError):
            token.raise_if_cancelled()


@pytest.mark.asyncio
class TestGuard:

    async def test_guard_returns_result(self):
        token = CancellationToken()

        async def work():
            return 42

        assert await token.guard(work()) == 42

    async def test_guard_cancels_inner_work(self):
        token = CancellationToken()
        started = asyncio.Event()

        async def slow():
            started.set()
            await asyncio.sleep(10)

        guarded = asyncio.ensure_future(token.guard(slow()))
        await started.wait()
        token.cancel()

        with pytest.raises(asyncio.CancelledError):
            await guarded

    async def test_wait_wakes_on_cancel(self):
        token = CancellationToken()
        waiter = asyncio.ensure_future(token.wait())
        await asyncio.sleep(0)
        token.cancel()
        await asyncio.wait_for(waiter, 1)


@pytest.mark.asyncio
class TestSupervisedTasks:

    async def test_duplicate_live_name_rejected(self):
        task = create_supervised_task(asyncio.sleep(10), name="watcher:dup")
        try:
            with pytest.raises(ValueError):
                create_supervised_task(asyncio.sleep(0), name="watcher:dup")
        finally:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def test_name_reusable_after_task_finishes(self):
        first = create_supervised_task(asyncio.sleep(0), name="watcher:short")
        await first
        await asyncio.sleep(0)

        second = create_supervised_task(asyncio.sleep(0), name="watcher:short")
        await second
