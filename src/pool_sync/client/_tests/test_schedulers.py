from __future__ import annotations

import asyncio
from typing import Any, Callable, List

from pool_sync.client.context import ConnectionStatus, SyncContext
from pool_sync.client.errors import NetworkError
from pool_sync.client.messages import ORIGIN_REFRESH
from pool_sync.client.schedulers import ConsistencyRefresh, FallbackPoller
from pool_sync.client.synchronizer import StateSynchronizer

DOC = {"circuits": [], "features": [], "pumps": [], "schedules": [], "bodies": []}


class CountingFetch:
    def __init__(self, result: Any = None) -> None:
        self.result = DOC if result is None else result
        self.calls = 0

    async def __call__(self) -> Any:
        self.calls += 1
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


async def _until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


def test_consistency_refresh_fetches_on_interval() -> None:
    async def runner():
        ctx = SyncContext()
        fetch = CountingFetch()
        refresh = ConsistencyRefresh(StateSynchronizer(ctx, fetch), interval_s=0.01)
        refresh.start()
        await _until(lambda: fetch.calls >= 2)
        refresh.stop()
        await asyncio.sleep(0.02)
        calls = fetch.calls
        await asyncio.sleep(0.03)
        return ctx, refresh, calls, fetch.calls

    ctx, refresh, calls, later = asyncio.run(runner())

    assert not refresh.running
    assert later == calls
    assert ctx.snapshot is not None
    assert ctx.snapshot.origin == ORIGIN_REFRESH


def test_fallback_poller_marks_server_reachable() -> None:
    async def runner():
        ctx = SyncContext()
        fetch = CountingFetch()
        poller = FallbackPoller(
            StateSynchronizer(ctx, fetch),
            lambda: ConnectionStatus.DISCONNECTED,
            interval_s=0.01,
            start_delay_s=0.01,
        )
        poller.arm()
        assert poller.armed
        await _until(lambda: ctx.polling_reachable)
        poller.stop()
        return ctx, poller

    ctx, poller = asyncio.run(runner())

    assert ctx.is_connected
    assert ctx.status is ConnectionStatus.DISCONNECTED
    assert not poller.running
    assert not poller.armed


def test_fallback_poller_failure_clears_reachability() -> None:
    async def runner():
        ctx = SyncContext()
        ctx.set_polling_reachable(True)
        poller = FallbackPoller(
            StateSynchronizer(ctx, CountingFetch(NetworkError(status=500))),
            lambda: ConnectionStatus.CONNECTING,
            interval_s=0.01,
            start_delay_s=0,
        )
        poller.arm()
        await _until(lambda: not ctx.polling_reachable)
        poller.stop()
        return ctx

    ctx = asyncio.run(runner())

    assert isinstance(ctx.last_error, NetworkError)


def test_fallback_poller_stands_by_while_stream_connected() -> None:
    async def runner():
        status: List[ConnectionStatus] = [ConnectionStatus.CONNECTED]
        fetch = CountingFetch()
        poller = FallbackPoller(
            StateSynchronizer(SyncContext(), fetch),
            lambda: status[0],
            interval_s=0.01,
            start_delay_s=0.01,
        )
        poller.arm()
        await asyncio.sleep(0.06)
        idle_calls = fetch.calls
        running = poller.running

        status[0] = ConnectionStatus.DISCONNECTED
        await _until(lambda: fetch.calls >= 1)
        poller.stop()
        return idle_calls, running

    idle_calls, running = asyncio.run(runner())

    assert idle_calls == 0
    assert running


def test_fallback_poller_stopped_before_delay_never_polls() -> None:
    async def runner():
        fetch = CountingFetch()
        poller = FallbackPoller(
            StateSynchronizer(SyncContext(), fetch),
            lambda: ConnectionStatus.DISCONNECTED,
            interval_s=0.01,
            start_delay_s=0.02,
        )
        poller.arm()
        await asyncio.sleep(0)
        poller.stop()
        await asyncio.sleep(0.06)
        return fetch, poller

    fetch, poller = asyncio.run(runner())

    assert fetch.calls == 0
    assert not poller.running
