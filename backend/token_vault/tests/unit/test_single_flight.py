"""Tests for per-key coalescing of concurrent calls."""

import asyncio

import pytest

from token_vault.credentials.single_flight import SingleFlight


class TestSingleFlight:

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_execution(self):
        flights = SingleFlight()
        release = asyncio.Event()
        calls = 0

        async def work():
            nonlocal calls
            calls += 1
            await release.wait()
            return "result"

        tasks = [asyncio.create_task(flights.do("acct-1", work)) for _ in range(5)]
        await asyncio.sleep(0)
        assert flights.in_flight("acct-1")

        release.set()
        results = await asyncio.gather(*tasks)

        assert calls == 1
        assert results == ["result"] * 5
        assert not flights.in_flight("acct-1")

    @pytest.mark.asyncio
    async def test_exception_shared_with_waiters(self):
        flights = SingleFlight()
        release = asyncio.Event()

        async def work():
            await release.wait()
            raise RuntimeError("upstream failed")

        tasks = [asyncio.create_task(flights.do("acct-1", work)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(r, RuntimeError) for r in results)
        assert not flights.in_flight("acct-1")

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        flights = SingleFlight()
        release_a = asyncio.Event()
        calls = []

        async def slow():
            calls.append("a")
            await release_a.wait()
            return "a"

        async def fast():
            calls.append("b")
            return "b"

        task_a = asyncio.create_task(flights.do("acct-a", slow))
        await asyncio.sleep(0)

        assert await flights.do("acct-b", fast) == "b"
        assert not task_a.done()

        release_a.set()
        assert await task_a == "a"
        assert calls == ["a", "b"]

    @pytest.mark.asyncio
    async def test_sequential_calls_run_again(self):
        flights = SingleFlight()
        calls = 0

        async def work():
            nonlocal calls
            calls += 1
            return calls

        assert await flights.do("acct-1", work) == 1
        assert await flights.do("acct-1", work) == 2

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_leader(self):
        flights = SingleFlight()
        release = asyncio.Event()

        async def work():
            await release.wait()
            return "done"

        leader = asyncio.create_task(flights.do("acct-1", work))
        await asyncio.sleep(0)
        waiter = asyncio.create_task(flights.do("acct-1", work))
        await asyncio.sleep(0)

        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        release.set()
        assert await leader == "done"

    @pytest.mark.asyncio
    async def test_cancelled_leader_does_not_cancel_waiters(self):
        flights = SingleFlight()
        release = asyncio.Event()
        calls = 0

        async def work():
            nonlocal calls
            calls += 1
            await release.wait()
            return "done"

        leader = asyncio.create_task(flights.do("acct-1", work))
        await asyncio.sleep(0)
        waiter = asyncio.create_task(flights.do("acct-1", work))
        await asyncio.sleep(0)

        leader.cancel()
        with pytest.raises(asyncio.CancelledError):
            await leader
        assert flights.in_flight("acct-1")

        release.set()
        assert await waiter == "done"
        assert calls == 1
        assert not flights.in_flight("acct-1")

    @pytest.mark.asyncio
    async def test_shared_call_finishes_when_every_caller_cancelled(self):
        flights = SingleFlight()
        release = asyncio.Event()
        finished = asyncio.Event()

        async def work():
            await release.wait()
            finished.set()
            return "done"

        callers = [asyncio.create_task(flights.do("acct-1", work)) for _ in range(2)]
        await asyncio.sleep(0)
        for caller in callers:
            caller.cancel()
        await asyncio.gather(*callers, return_exceptions=True)

        release.set()
        await asyncio.wait_for(finished.wait(), timeout=1)
        await asyncio.sleep(0.01)
        assert not flights.in_flight("acct-1")
