"""reqflow.orchestration.engine

The composition root. One engine per logical operation binding.

    IDLE -> LOADING -> SUCCESS | FAILED
    LOADING -> IDLE          (explicit abort)
    any    -> LOADING        (refetch, poll tick; retries stay in LOADING)

Cache, executor, retry policy and polling each do one thing. The engine decides
which attempt may write state and when.

Authority: every trigger bumps a generation counter. Only the attempt holding
the current generation may touch state. Superseded attempts are left to finish
on their own and their results are dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine, Mapping
from dataclasses import dataclass
from typing import Any

from reqflow.core.cache import MISS, generate_cache_key, operation_id
from reqflow.core.exceptions import AbortError, ConfigError
from reqflow.core.types import EngineStatus, RequestState, check_transition
from reqflow.orchestration.context import EngineContext
from reqflow.orchestration.observable import Observable
from reqflow.orchestration.options import EngineOptions, coerce_options
from reqflow.orchestration.polling import PollingScheduler
from reqflow.request.cancel import CancelToken
from reqflow.request.executor import RequestExecutor
from reqflow.request.retry import RetryPolicy

Operation = Callable[..., Awaitable[Any]]


@dataclass(slots=True)
class PendingAttempt:
    generation: int
    token: CancelToken
    failures: int = 0


@dataclass(frozen=True, slots=True)
class Outcome:
    ok: bool
    value: Any = None
    error: BaseException | None = None


class BaseEngine(Observable):
    """Shared attempt lifecycle: authority, retries, teardown, observers."""

    method: str = "GET"

    def __init__(
        self,
        operation: Operation,
        options: EngineOptions | Mapping[str, Any] | None = None,
        *,
        ctx: EngineContext | None = None,
        method: str | None = None,
        logger: logging.Logger | None = None,
        **option_overrides: Any,
    ) -> None:
        super().__init__()
        if not callable(operation):
            raise ConfigError(f"operation must be callable, got {type(operation).__name__}")

        self.ctx = ctx or EngineContext.create()
        self.options = coerce_options(options, **option_overrides)
        self.method = (method or self.method).upper()
        self._operation = operation
        self._log = logger or self.ctx.logger

        cfg = self.ctx.config
        self._retry = RetryPolicy.from_config(cfg.retry, retry=self.options.retry, delay_s=self.options.retry_delay_s)
        timeout_s = self.options.timeout_s if self.options.timeout_s is not None else cfg.request.timeout_s
        self._executor = RequestExecutor(timeout_s=timeout_s, clock=self.ctx.clock)
        self._polling = PollingScheduler(
            clock=self.ctx.clock,
            logger=self._log,
            min_interval_s=cfg.polling.min_interval_s,
        )

        self._loading = False
        self._error: BaseException | None = None
        self._status = EngineStatus.IDLE
        self._generation = 0
        self._current: PendingAttempt | None = None
        self._inflight: set[CancelToken] = set()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._alive = True

    # -- lifecycle -----------------------------------------------------------------

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    @property
    def polling(self) -> PollingScheduler:
        return self._polling

    def abort(self) -> None:
        """Cancel the authoritative attempt and stop polling."""

        if self._current is not None:
            self._current.token.cancel("aborted")
        self._polling.stop()

    def close(self) -> None:
        """Tear down: no timer, no token, no further state updates."""

        if not self._alive:
            return
        self._alive = False
        self._polling.stop()
        for token in list(self._inflight):
            token.cancel("closed")
        self._log.debug("engine_closed", extra={"operation": self.operation_id})

    async def aclose(self) -> None:
        self.close()
        tasks = [t for t in self._tasks if not t.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def __aenter__(self) -> BaseEngine:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    @property
    def operation_id(self) -> str:
        return operation_id(self._operation)

    # -- attempts ------------------------------------------------------------------

    def _begin(self) -> PendingAttempt:
        if self._current is not None:
            self.ctx.metrics.counter("request.superseded").inc()
        self._generation += 1
        attempt = PendingAttempt(generation=self._generation, token=CancelToken())
        self._current = attempt
        self._inflight.add(attempt.token)
        self.ctx.metrics.gauge("request.inflight").add(1)
        return attempt

    def _is_current(self, attempt: PendingAttempt) -> bool:
        return self._alive and self._current is attempt

    def _finish(self, attempt: PendingAttempt) -> None:
        self._inflight.discard(attempt.token)
        self.ctx.metrics.gauge("request.inflight").add(-1)
        if self._current is attempt:
            self._current = None

    def _discard(self, attempt: PendingAttempt) -> None:
        self.ctx.metrics.counter("request.discarded").inc()
        self._log.debug(
            "attempt_discarded",
            extra={"operation": self.operation_id, "generation": attempt.generation, "alive": self._alive},
        )

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _set_status(self, status: EngineStatus) -> None:
        check_transition(self._status, status)
        self._status = status

    def _enter_loading(self) -> None:
        self._set_status(EngineStatus.LOADING)
        self._loading = True
        self._error = None

    async def _drive(self, attempt: PendingAttempt, call: Callable[[], Awaitable[Any]]) -> Outcome | None:
        """Run ``call`` with retries. ``None`` means the attempt lost authority."""

        metrics = self.ctx.metrics
        while True:
            metrics.counter("request.attempt").inc()
            try:
                result = await self._executor.execute(call, cancel=attempt.token)
            except AbortError as e:
                if not self._is_current(attempt):
                    self._discard(attempt)
                    return None
                metrics.counter("request.aborted").inc()
                self._log.info("attempt_aborted", extra={"operation": self.operation_id, "reason": e.reason})
                return Outcome(ok=False, error=e)
            except Exception as e:  # noqa: BLE001 - failures become state, not exceptions
                if not self._is_current(attempt):
                    self._discard(attempt)
                    return None
                attempt.failures += 1
                if not self._retry.should_retry(attempt.failures, e):
                    metrics.counter("request.failed").inc()
                    self._log.warning(
                        "attempt_failed",
                        extra={
                            "operation": self.operation_id,
                            "failures": attempt.failures,
                            "error": f"{type(e).__name__}: {e}",
                        },
                    )
                    return Outcome(ok=False, error=e)

                delay = self._retry.delay_for(attempt.failures)
                metrics.counter("request.retry").inc()
                self._log.info(
                    "retry_scheduled",
                    extra={"operation": self.operation_id, "failures": attempt.failures, "delay_s": delay},
                )
                try:
                    await self._executor.sleep(delay, cancel=attempt.token)
                except AbortError as abort:
                    if not self._is_current(attempt):
                        self._discard(attempt)
                        return None
                    metrics.counter("request.aborted").inc()
                    return Outcome(ok=False, error=abort)
                if not self._is_current(attempt):
                    self._discard(attempt)
                    return None
            else:
                if not self._is_current(attempt):
                    self._discard(attempt)
                    return None
                return Outcome(ok=True, value=result)

    def _settle_cancelled(self, attempt: PendingAttempt) -> None:
        # The awaiting caller was cancelled; settle like an explicit abort.
        if not self._is_current(attempt):
            return
        attempt.token.cancel("cancelled")
        self._log.info("attempt_cancelled", extra={"operation": self.operation_id})
        self._settle_error(AbortError("cancelled"))

    def _settle_error(self, error: BaseException) -> None:
        self._loading = False
        self._error = error
        if isinstance(error, AbortError) and not error.timed_out:
            # Explicit abort: back to idle, no callbacks.
            self._set_status(EngineStatus.IDLE)
            self._notify()
            return
        self._set_status(EngineStatus.FAILED)
        self._notify()
        self._invoke_callback("on_error", self.options.on_error, error)


class QueryEngine(BaseEngine):
    """Read engine: cache, polling, refetch.

    Usage:
        ctx = EngineContext.create()
        engine = QueryEngine(fetch_todos, ctx=ctx, cache=CacheOptions(ttl_s=60), polling_s=5)
        await engine.start()
        engine.state.data
    """

    def __init__(
        self,
        operation: Operation,
        options: EngineOptions | Mapping[str, Any] | None = None,
        *,
        params: Any = None,
        ctx: EngineContext | None = None,
        method: str = "GET",
        logger: logging.Logger | None = None,
        **option_overrides: Any,
    ) -> None:
        super().__init__(operation, options, ctx=ctx, method=method, logger=logger, **option_overrides)
        if self.options.optimistic_update is not None:
            raise ConfigError("optimistic_update needs a MutationEngine")

        self.params = params
        self._data: Any = None
        self._started = False

        read_methods = self.ctx.config.cache.read_methods
        cache_opt = self.options.cache
        if cache_opt is None:
            self._cache_enabled = self.method in read_methods
        elif cache_opt is False:
            self._cache_enabled = False
        elif self.method not in read_methods:
            raise ConfigError(f"cache is only supported for {read_methods} engines, not {self.method}")
        else:
            self._cache_enabled = True

        min_poll_s = self.ctx.config.polling.min_interval_s
        if self.options.polling_s is not None and self.options.polling_s < min_poll_s:
            raise ConfigError(f"polling_s {self.options.polling_s} is below the configured minimum {min_poll_s}")

        self._ttl_s = self.options.cache_ttl_s or self.ctx.config.cache.ttl_s
        self.cache_key: str | None = (
            generate_cache_key(self.operation_id, params, self.options.cache_key) if self._cache_enabled else None
        )

    @property
    def state(self) -> RequestState:
        return RequestState(data=self._data, loading=self._loading, error=self._error, status=self._status)

    async def start(self) -> None:
        """Automatic execution (the "mount"): initial fetch plus polling.

        Does nothing when ``enabled=False``; ``refetch`` still works.
        """

        if not self._alive or self._started:
            return
        self._started = True
        if not self.options.enabled:
            self._log.debug("engine_disabled", extra={"operation": self.operation_id})
            return
        if self.options.polling_s:
            self._polling.start(self._on_poll_tick, self.options.polling_s)
        await self._execute(use_cache=True)

    async def refetch(self) -> None:
        """Force a network call. The result is still written to the cache."""

        await self._execute(use_cache=False)

    def _on_poll_tick(self) -> None:
        if self._alive:
            self._spawn(self._execute(use_cache=True))

    def _call(self) -> Awaitable[Any]:
        if self.params is None:
            return self._operation()
        return self._operation(self.params)

    async def _execute(self, *, use_cache: bool) -> None:
        if not self._alive:
            return

        attempt = self._begin()
        self._enter_loading()
        try:
            key = self.cache_key
            if use_cache and key is not None:
                cached = self.ctx.cache.get(key)
                if cached is not MISS:
                    self.ctx.metrics.counter("cache.hit").inc()
                    self._log.debug("cache_hit", extra={"cache_key": key})
                    self._succeed(cached)
                    return
                self.ctx.metrics.counter("cache.miss").inc()
                self._log.debug("cache_miss", extra={"cache_key": key})

            self._notify()

            call: Callable[[], Awaitable[Any]] = self._call
            if self.options.dedupe and key is not None:
                call = lambda: self.ctx.coalescer.run(key, self._call)  # noqa: E731

            outcome = await self._drive(attempt, call)
            if outcome is None:
                return
            if not outcome.ok:
                assert outcome.error is not None
                self._settle_error(outcome.error)
                return

            if key is not None:
                self.ctx.cache.set(key, outcome.value, self._ttl_s)
            self._succeed(outcome.value)
        except asyncio.CancelledError:
            self._settle_cancelled(attempt)
            raise
        finally:
            self._finish(attempt)

    def _succeed(self, value: Any) -> None:
        self._data = value
        self._loading = False
        self._error = None
        self._set_status(EngineStatus.SUCCESS)
        self._notify()
        self._invoke_callback("on_success", self.options.on_success, value)
