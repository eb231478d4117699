"""reqflow.request.cancel

Cooperative cancellation.

A token only records that someone asked to stop and why. Whoever runs the work
(the executor) decides what stopping means.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from reqflow.core.exceptions import AbortError

CancelCallback = Callable[[str], None]


class CancelToken:
    """One-shot cancel source. The first ``cancel`` wins; later calls are no-ops."""

    def __init__(self) -> None:
        self._reason: str | None = None
        self._callbacks: list[CancelCallback] = []
        self._waiters: list[asyncio.Future[str]] = []
        self._unlink: list[Callable[[], None]] = []

    @classmethod
    def linked(cls, *parents: CancelToken | None) -> CancelToken:
        """A token that fires when any parent fires (carrying the parent's reason)."""

        token = cls()
        for parent in parents:
            if parent is None:
                continue
            if parent.cancelled:
                token.cancel(parent.reason or "aborted")
                break
            token._unlink.append(parent.add_callback(token.cancel))
        return token

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "aborted") -> bool:
        if self._reason is not None:
            return False
        self._reason = reason

        waiters, self._waiters = self._waiters, []
        for fut in waiters:
            if not fut.done():
                fut.set_result(reason)

        callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            cb(reason)
        return True

    def add_callback(self, callback: CancelCallback) -> Callable[[], None]:
        """Run ``callback(reason)`` on cancel. Returns a remover."""

        if self._reason is not None:
            callback(self._reason)
            return lambda: None
        self._callbacks.append(callback)

        def _remove() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

        return _remove

    def detach(self) -> None:
        """Stop listening to parents."""

        unlink, self._unlink = self._unlink, []
        for remove in unlink:
            remove()

    async def wait(self) -> str:
        if self._reason is not None:
            return self._reason
        fut: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            return await fut
        finally:
            if fut in self._waiters:
                self._waiters.remove(fut)

    def raise_if_cancelled(self) -> None:
        if self._reason is not None:
            raise AbortError(self._reason)

    def __repr__(self) -> str:
        state = f"cancelled:{self._reason}" if self.cancelled else "live"
        return f"<CancelToken {state}>"
