"""reqflow.orchestration.coalescer

Single-flight for identical requests.

When several engines ask for the same key while a fetch is in flight, only one
upstream call is made and every caller shares its result (or its error).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from reqflow.core.metrics import MetricsRegistry
from reqflow.request.executor import call_operation

logger = logging.getLogger(__name__)


class RequestCoalescer:
    """Key -> in-flight task map.

    Callers await the shared task through ``asyncio.shield``: one caller being
    cancelled (abort, timeout) never cancels the fetch for the others.
    """

    def __init__(self, *, metrics: MetricsRegistry | None = None) -> None:
        self._in_flight: dict[str, asyncio.Future[Any]] = {}
        self._metrics = metrics

    async def run(self, key: str, fetch_fn: Callable[[], Awaitable[Any] | Any]) -> Any:
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(call_operation(fetch_fn))
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
            self._track_active()
            logger.debug("coalescer_initiated", extra={"cache_key": key})
        else:
            if self._metrics is not None:
                self._metrics.counter("coalescer.joined").inc()
            logger.debug("coalescer_joined", extra={"cache_key": key})
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Future[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        self._track_active()
        if not task.cancelled() and task.exception() is not None:
            logger.warning("coalesced_fetch_failed", extra={"cache_key": key})

    def _track_active(self) -> None:
        if self._metrics is not None:
            self._metrics.gauge("coalescer.active").set(len(self._in_flight))

    @property
    def active_requests(self) -> int:
        return len(self._in_flight)

    def get_stats(self) -> dict[str, Any]:
        return {
            "active_requests": len(self._in_flight),
            "active_keys": list(self._in_flight),
        }
