"""reqflow.orchestration.cached

Wrap an operation in a TTL cache (and, optionally, single-flight).

    fetch_user = cached_fetch(api.get_user, cache=ctx.cache, ttl_s=60, coalescer=ctx.coalescer)
    await fetch_user({"id": 1})     # network
    await fetch_user({"id": 1})     # cache
"""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable
from typing import Any

from reqflow.core.cache import MISS, TTLCache, generate_cache_key, operation_id
from reqflow.orchestration.coalescer import RequestCoalescer
from reqflow.request.executor import call_operation


def cached_fetch(
    operation: Callable[..., Awaitable[Any]],
    *,
    cache: TTLCache,
    ttl_s: float | None = None,
    key: str | None = None,
    coalescer: RequestCoalescer | None = None,
) -> Callable[..., Awaitable[Any]]:
    op_id = operation_id(operation)

    def _key(params: Any = None) -> str:
        return generate_cache_key(op_id, params, key)

    @functools.wraps(operation)
    async def fetch(params: Any = None) -> Any:
        cache_key = _key(params)
        hit = cache.get(cache_key)
        if hit is not MISS:
            return hit

        def call() -> Awaitable[Any]:
            return operation() if params is None else operation(params)

        if coalescer is not None:
            result = await coalescer.run(cache_key, call)
        else:
            result = await call_operation(call)
        cache.set(cache_key, result, ttl_s)
        return result

    fetch.cache_key = _key  # type: ignore[attr-defined]
    fetch.invalidate = lambda params=None: cache.invalidate(_key(params))  # type: ignore[attr-defined]
    return fetch
