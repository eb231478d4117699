from __future__ import annotations

import asyncio

import pytest

from reqflow.core.metrics import MetricsRegistry
from reqflow.orchestration.coalescer import RequestCoalescer
from tests.unit._clock import settle


@pytest.mark.anyio
async def test_concurrent_callers_share_one_call() -> None:
    metrics = MetricsRegistry()
    coalescer = RequestCoalescer(metrics=metrics)
    gate = asyncio.Event()
    calls: list[int] = []

    async def fetch() -> str:
        calls.append(1)
        await gate.wait()
        return "payload"

    tasks = [asyncio.create_task(coalescer.run("todos:", fetch)) for _ in range(3)]
    await settle()
    assert coalescer.get_stats() == {"active_requests": 1, "active_keys": ["todos:"]}

    gate.set()
    assert await asyncio.gather(*tasks) == ["payload"] * 3
    assert calls == [1]
    assert metrics.value("coalescer.joined") == 2
    assert coalescer.active_requests == 0


@pytest.mark.anyio
async def test_errors_are_shared_and_slot_is_freed() -> None:
    coalescer = RequestCoalescer()
    calls: list[int] = []

    async def fetch() -> str:
        calls.append(1)
        await asyncio.sleep(0)
        raise RuntimeError("upstream 500")

    results = await asyncio.gather(
        coalescer.run("k", fetch),
        coalescer.run("k", fetch),
        return_exceptions=True,
    )
    assert calls == [1]
    assert all(isinstance(r, RuntimeError) for r in results)

    # next caller starts a fresh call
    with pytest.raises(RuntimeError):
        await coalescer.run("k", fetch)
    assert calls == [1, 1]


@pytest.mark.anyio
async def test_cancelled_caller_does_not_cancel_others() -> None:
    coalescer = RequestCoalescer()
    gate = asyncio.Event()

    async def fetch() -> str:
        await gate.wait()
        return "v"

    first = asyncio.create_task(coalescer.run("k", fetch))
    second = asyncio.create_task(coalescer.run("k", fetch))
    await settle()

    first.cancel()
    await settle()
    gate.set()
    assert await second == "v"
    assert first.cancelled()


@pytest.mark.anyio
async def test_different_keys_do_not_share() -> None:
    coalescer = RequestCoalescer()
    calls: list[str] = []

    async def fetch_a() -> str:
        calls.append("a")
        return "a"

    async def fetch_b() -> str:
        calls.append("b")
        return "b"

    assert await asyncio.gather(coalescer.run("a", fetch_a), coalescer.run("b", fetch_b)) == ["a", "b"]
    assert sorted(calls) == ["a", "b"]


@pytest.mark.anyio
async def test_active_gauge_tracks_in_flight_keys() -> None:
    metrics = MetricsRegistry()
    coalescer = RequestCoalescer(metrics=metrics)
    gate = asyncio.Event()

    async def fetch() -> str:
        await gate.wait()
        return "v"

    tasks = [asyncio.create_task(coalescer.run(k, fetch)) for k in ("a", "b", "a")]
    await settle()
    assert metrics.gauge("coalescer.active").value == 2.0

    gate.set()
    await asyncio.gather(*tasks)
    assert metrics.gauge("coalescer.active").value == 0.0
