"""reqflow.orchestration.action

Form/action-style mutations: no cache, no retry, no overlay.

``{data, error, pending}``; a failure keeps the previous data.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from reqflow.core.exceptions import AbortError
from reqflow.core.types import ActionState
from reqflow.orchestration.context import EngineContext
from reqflow.orchestration.observable import Observable
from reqflow.request.cancel import CancelToken
from reqflow.request.executor import RequestExecutor


def form_data_to_input(entries: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> dict[str, Any]:
    """Flatten form entries into a plain dict. Repeated names: the last one wins."""

    items = entries.items() if isinstance(entries, Mapping) else entries
    out: dict[str, Any] = {}
    for name, value in items:
        out[str(name)] = value
    return out


class ActionRunner(Observable):
    def __init__(
        self,
        operation: Callable[[Any], Awaitable[Any]],
        *,
        on_success: Callable[[Any], Any] | None = None,
        on_error: Callable[[BaseException], Any] | None = None,
        initial_data: Any = None,
        timeout_s: float | None = None,
        ctx: EngineContext | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__()
        self.ctx = ctx or EngineContext.create()
        self._operation = operation
        self._on_success = on_success
        self._on_error = on_error
        self._log = logger or self.ctx.logger
        self._executor = RequestExecutor(
            timeout_s=timeout_s if timeout_s is not None else self.ctx.config.request.timeout_s,
            clock=self.ctx.clock,
        )

        self._data = initial_data
        self._error: BaseException | None = None
        self._pending = False
        self._generation = 0
        self._token: CancelToken | None = None

    @property
    def state(self) -> ActionState:
        return ActionState(data=self._data, error=self._error, pending=self._pending)

    async def action(self, input: Any) -> None:
        """Run the operation with ``input``. Never raises for operation failures."""

        self._generation += 1
        generation = self._generation
        token = self._token = CancelToken()

        self._pending = True
        self._error = None
        self._notify()

        try:
            result = await self._executor.execute(lambda: self._operation(input), cancel=token)
        except Exception as e:  # noqa: BLE001 - failures become state
            if generation != self._generation:
                return
            self._pending = False
            self._error = e
            self._notify()
            if not (isinstance(e, AbortError) and not e.timed_out):
                self._log.warning("action_failed", extra={"error": f"{type(e).__name__}: {e}"})
                self._invoke_callback("on_error", self._on_error, e)
            return
        finally:
            if self._token is token and generation == self._generation:
                self._token = None

        if generation != self._generation:
            return
        self._data = result
        self._pending = False
        self._notify()
        self._invoke_callback("on_success", self._on_success, result)

    async def form_action(self, entries: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> None:
        await self.action(form_data_to_input(entries))

    def abort(self) -> None:
        if self._token is not None:
            self._token.cancel("aborted")
