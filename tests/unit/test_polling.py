from __future__ import annotations

import logging

import pytest

from reqflow.orchestration.polling import PollingScheduler
from tests.unit._clock import ManualClock, settle


@pytest.mark.anyio
async def test_first_tick_lands_one_interval_after_start(clock: ManualClock) -> None:
    sched = PollingScheduler(clock=clock)
    ticks: list[float] = []

    sched.start(lambda: ticks.append(clock.now()), 5)
    await clock.advance(4)
    assert ticks == []

    await clock.advance(1)
    assert ticks == [5.0]

    await clock.advance(10)
    assert ticks == [5.0, 10.0, 15.0]
    assert sched.tick_count == 3
    sched.stop()


@pytest.mark.anyio
async def test_start_while_active_does_not_restart(clock: ManualClock) -> None:
    sched = PollingScheduler(clock=clock)
    ticks: list[float] = []

    sched.start(lambda: ticks.append(clock.now()), 5)
    await clock.advance(3)
    sched.start(lambda: ticks.append(-1.0), 1)
    assert sched.interval_s == 5.0

    await clock.advance(7)
    assert ticks == [5.0, 10.0]
    sched.stop()


@pytest.mark.anyio
async def test_stop_halts_ticks_and_is_idempotent(clock: ManualClock) -> None:
    sched = PollingScheduler(clock=clock)
    ticks: list[float] = []

    sched.stop()  # not active yet
    sched.start(lambda: ticks.append(clock.now()), 2)
    await clock.advance(2)
    sched.stop()
    sched.stop()
    assert not sched.is_active()

    await clock.advance(20)
    assert ticks == [2.0]


@pytest.mark.anyio
async def test_failing_tick_does_not_kill_the_timer(clock: ManualClock, caplog: pytest.LogCaptureFixture) -> None:
    sched = PollingScheduler(clock=clock)
    ticks: list[int] = []

    def tick() -> None:
        ticks.append(1)
        raise RuntimeError("upstream down")

    with caplog.at_level(logging.ERROR):
        sched.start(tick, 1)
        await clock.advance(3)

    assert len(ticks) == 3
    assert sched.is_active()
    assert any(r.getMessage() == "polling_tick_failed" for r in caplog.records)
    sched.stop()


@pytest.mark.anyio
async def test_async_tick_failures_are_logged(clock: ManualClock, caplog: pytest.LogCaptureFixture) -> None:
    sched = PollingScheduler(clock=clock)

    async def tick() -> None:
        raise RuntimeError("boom")

    with caplog.at_level(logging.ERROR):
        sched.start(tick, 1)
        await clock.advance(2)
        await settle()

    failures = [r for r in caplog.records if r.getMessage() == "polling_tick_failed"]
    assert len(failures) == 2
    assert sched.is_active()
    sched.stop()


@pytest.mark.anyio
async def test_drift_free_cadence(clock: ManualClock) -> None:
    sched = PollingScheduler(clock=clock)
    ticks: list[float] = []

    await clock.advance(0.25)
    sched.start(lambda: ticks.append(clock.now()), 1)
    await clock.advance(3)
    assert ticks == [1.25, 2.25, 3.25]
    sched.stop()


@pytest.mark.anyio
async def test_invalid_intervals_rejected(clock: ManualClock) -> None:
    sched = PollingScheduler(clock=clock, min_interval_s=1.0)
    with pytest.raises(ValueError):
        sched.start(lambda: None, 0)
    with pytest.raises(ValueError):
        sched.start(lambda: None, -3)
    with pytest.raises(ValueError):
        sched.start(lambda: None, 0.5)
    assert not sched.is_active()
