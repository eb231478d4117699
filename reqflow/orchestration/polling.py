"""reqflow.orchestration.polling

Fixed-cadence re-execution.

One timer per scheduler, always. Polling is additive: the first tick lands one
full interval after ``start``, never immediately.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from reqflow.core.time import SYSTEM_CLOCK, Clock

_default_logger = logging.getLogger(__name__)


class PollingScheduler:
    def __init__(
        self,
        *,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
        min_interval_s: float = 0.0,
    ) -> None:
        self._clock = clock or SYSTEM_CLOCK
        self._log = logger or _default_logger
        self._min_interval_s = float(min_interval_s)
        self._task: asyncio.Task[None] | None = None
        self._ticks: set[asyncio.Future[Any]] = set()
        self.interval_s: float | None = None
        self.tick_count = 0

    def start(self, callback: Callable[[], Any], interval_s: float) -> None:
        """Begin ticking. A no-op while already active (it does not restart)."""

        if self.is_active():
            self._log.debug("polling_already_active", extra={"interval_s": self.interval_s})
            return

        interval = float(interval_s)
        if interval <= 0:
            raise ValueError(f"interval_s must be > 0, got {interval_s!r}")
        if interval < self._min_interval_s:
            raise ValueError(f"interval_s {interval} is below the configured minimum {self._min_interval_s}")

        self.interval_s = interval
        anchor = self._clock.now()
        self._task = asyncio.get_running_loop().create_task(self._run(callback, interval, anchor))

    def stop(self) -> None:
        """Always safe, including when not active. In-flight ticks keep running."""

        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self, callback: Callable[[], Any], interval: float, anchor: float) -> None:
        # Deadlines are anchored to start so slow ticks do not accumulate drift.
        next_at = anchor
        while True:
            next_at += interval
            await self._clock.sleep(next_at - self._clock.now())
            self._fire(callback)

    def _fire(self, callback: Callable[[], Any]) -> None:
        self.tick_count += 1
        try:
            result = callback()
        except Exception:  # noqa: BLE001 - one failed tick must not kill the timer
            self._log.exception("polling_tick_failed", extra={"tick": self.tick_count})
            return

        if inspect.isawaitable(result):
            fut = asyncio.ensure_future(result)
            self._ticks.add(fut)
            fut.add_done_callback(self._tick_done)

    def _tick_done(self, fut: asyncio.Future[Any]) -> None:
        self._ticks.discard(fut)
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            self._log.error("polling_tick_failed", exc_info=exc, extra={"tick": self.tick_count})
