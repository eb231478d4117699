"""reqflow.orchestration.optimistic

Optimistic mutations.

    Idle --mutate--> Pending (optimistic value visible)
    Pending --success--> Idle (committed = server result)
    Pending --failure, rollback--> Idle (committed unchanged)
    Pending --failure, no rollback--> Idle (committed = optimistic value, unverified)
    Pending --abort--> Idle (committed unchanged, no callbacks)

The overlay is driven entirely by engine code; nothing reverts on its own.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Final

from reqflow.core.exceptions import AbortError, ConfigError
from reqflow.core.types import EngineStatus, MutationState, OverlayState
from reqflow.orchestration.context import EngineContext
from reqflow.orchestration.engine import BaseEngine, Operation
from reqflow.orchestration.options import EngineOptions

_NO_INPUT: Final = object()


class OptimisticOverlay:
    """``{committed, pending, active}``. Observers see ``pending`` while active."""

    def __init__(self, committed: Any = None) -> None:
        self._committed = committed
        self._pending: Any = None
        self._active = False

    @property
    def committed(self) -> Any:
        return self._committed

    @property
    def pending(self) -> Any:
        return self._pending

    @property
    def active(self) -> bool:
        return self._active

    @property
    def visible(self) -> Any:
        return self._pending if self._active else self._committed

    def begin(self, pending: Any) -> None:
        self._pending = pending
        self._active = True

    def succeed(self, result: Any) -> None:
        self._committed = result
        self._clear()

    def fail(self, *, rollback: bool) -> bool:
        """Settle a failure. Returns True if the pending value was promoted."""

        promoted = False
        if not rollback and self._active:
            self._committed = self._pending
            promoted = True
        self._clear()
        return promoted

    def cancel(self) -> None:
        self._clear()

    def snapshot(self) -> OverlayState:
        return OverlayState(committed=self._committed, pending=self._pending, active=self._active)

    def _clear(self) -> None:
        self._pending = None
        self._active = False


class MutationEngine(BaseEngine):
    """Mutation engine with an optimistic overlay.

    ``optimistic_update(committed, input)`` must be pure; it runs synchronously
    before the operation is dispatched. Retries keep the same optimistic value.
    """

    method = "POST"

    def __init__(
        self,
        operation: Operation,
        options: EngineOptions | Mapping[str, Any] | None = None,
        *,
        initial_data: Any = None,
        ctx: EngineContext | None = None,
        method: str = "POST",
        logger: logging.Logger | None = None,
        **option_overrides: Any,
    ) -> None:
        super().__init__(operation, options, ctx=ctx, method=method, logger=logger, **option_overrides)
        if self.options.cache:
            raise ConfigError("mutation engines do not cache results; drop the cache option")
        if self.options.polling_s:
            raise ConfigError("mutation engines do not poll; drop the polling_s option")
        self._overlay = OptimisticOverlay(committed=initial_data)
        self._last_input: Any = _NO_INPUT

    @property
    def overlay(self) -> OverlayState:
        return self._overlay.snapshot()

    @property
    def state(self) -> MutationState:
        return MutationState(
            data=self._overlay.committed,
            optimistic_data=self._overlay.visible,
            loading=self._loading,
            error=self._error,
            active=self._overlay.active,
            status=self._status,
        )

    async def mutate(self, input: Any) -> None:
        """Apply the optimistic value, run the operation, reconcile. Never raises."""

        if not self._alive:
            return
        self._last_input = input

        attempt = self._begin()
        self._enter_loading()
        try:
            update = self.options.optimistic_update
            if update is not None:
                try:
                    pending = update(self._overlay.committed, input)
                except Exception as e:  # noqa: BLE001 - a broken updater is a failed mutation
                    self._log.exception("optimistic_update_failed", extra={"operation": self.operation_id})
                    self._overlay.cancel()
                    self._settle_error(e)
                    return
                self._overlay.begin(pending)
            self._notify()

            outcome = await self._drive(attempt, lambda: self._operation(input))
            if outcome is None:
                return

            if outcome.ok:
                self._overlay.succeed(outcome.value)
                self._loading = False
                self._error = None
                self._set_status(EngineStatus.SUCCESS)
                self._notify()
                self._invoke_callback("on_success", self.options.on_success, outcome.value)
                return

            assert outcome.error is not None
            if isinstance(outcome.error, AbortError):
                self._overlay.cancel()
            elif self._overlay.fail(rollback=self.options.rollback_on_error):
                # Preserved behavior: the committed value now holds data the server never confirmed.
                self._log.warning(
                    "optimistic_value_promoted",
                    extra={"operation": self.operation_id, "error": f"{type(outcome.error).__name__}"},
                )
            self._settle_error(outcome.error)
        except asyncio.CancelledError:
            if self._is_current(attempt):
                self._overlay.cancel()
            self._settle_cancelled(attempt)
            raise
        finally:
            self._finish(attempt)

    async def refetch(self) -> None:
        """Replay the last mutation input. No-op before the first ``mutate``."""

        if self._last_input is _NO_INPUT:
            return
        await self.mutate(self._last_input)
