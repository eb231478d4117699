"""reqflow.request.executor

Runs one operation to completion or cancellation.

The envelope:
- a timeout is just another cancel source racing the operation
- an external token (caller abort) is merged with it; first to fire wins
- an operation that settles first keeps its result, even if a cancel lands a
  moment later
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any, Final, TypeVar

from reqflow.core.exceptions import AbortError
from reqflow.core.time import SYSTEM_CLOCK, Clock
from reqflow.request.cancel import CancelToken

T = TypeVar("T")

DEFAULT_TIMEOUT_S: Final[float] = 30.0
_UNSET: Final = object()


def _consume_result(task: asyncio.Future[Any]) -> None:
    # Abandoned operations may still fail; retrieve so asyncio does not warn.
    if not task.cancelled():
        task.exception()


class RequestExecutor:
    def __init__(self, *, timeout_s: float | None = DEFAULT_TIMEOUT_S, clock: Clock | None = None) -> None:
        self.timeout_s = _check_timeout(timeout_s)
        self._clock = clock or SYSTEM_CLOCK

    async def execute(
        self,
        operation: Callable[[], Awaitable[T] | T],
        *,
        timeout_s: Any = _UNSET,
        cancel: CancelToken | None = None,
    ) -> T:
        """Await ``operation()`` under the cancel/timeout envelope.

        Raises:
            AbortError: the envelope fired before the operation settled.
            Exception: whatever the operation raised, unchanged.
        """

        timeout = self.timeout_s if timeout_s is _UNSET else _check_timeout(timeout_s)
        token = CancelToken.linked(cancel)
        if token.cancelled:
            token.detach()
            raise AbortError(token.reason or "aborted")

        loop = asyncio.get_running_loop()
        task: asyncio.Future[T] = asyncio.ensure_future(call_operation(operation))
        task.add_done_callback(_consume_result)
        waiter = loop.create_task(token.wait())
        timer = loop.create_task(self._expire(token, timeout)) if timeout is not None else None

        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
            if task in done:
                if task.cancelled():
                    raise AbortError(token.reason or "cancelled")
                return task.result()
            task.cancel()
            raise AbortError(token.reason or "aborted")
        finally:
            waiter.cancel()
            if timer is not None:
                timer.cancel()
            if not task.done():
                task.cancel()
            token.detach()

    async def sleep(self, delay_s: float, *, cancel: CancelToken | None = None) -> None:
        """Interruptible sleep: raises AbortError if ``cancel`` fires first."""

        await self.execute(lambda: self._clock.sleep(delay_s), timeout_s=None, cancel=cancel)

    async def _expire(self, token: CancelToken, timeout_s: float) -> None:
        await self._clock.sleep(timeout_s)
        token.cancel("timeout")


async def call_operation(operation: Callable[[], Awaitable[T] | T]) -> T:
    """Call ``operation`` and await the result if it is awaitable."""

    result = operation()
    if inspect.isawaitable(result):
        return await result
    return result


def _check_timeout(timeout_s: float | None) -> float | None:
    if timeout_s is None:
        return None
    t = float(timeout_s)
    if t <= 0:
        raise ValueError(f"timeout_s must be > 0 or None, got {timeout_s!r}")
    return t
