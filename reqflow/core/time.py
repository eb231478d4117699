"""reqflow.core.time

This module is the *only* time surface in the codebase.

Anything that waits or measures age takes a :class:`Clock`, so tests can drive
TTLs, timeouts, retry delays and polling without sleeping for real.
"""

from __future__ import annotations

import asyncio
import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    def now(self) -> float: ...

    async def sleep(self, delay_s: float) -> None: ...


class SystemClock:
    """Monotonic wall time plus ``asyncio.sleep``."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, delay_s: float) -> None:
        await asyncio.sleep(max(0.0, float(delay_s)))


SYSTEM_CLOCK = SystemClock()

