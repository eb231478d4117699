"""reqflow.orchestration.context

Shared dependencies injected into every engine.

The cache is process-wide only if you make it so: engines that should share
slots share a context. Nothing here is a module-level global.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from reqflow.core.cache import TTLCache
from reqflow.core.config import Config
from reqflow.core.metrics import MetricsRegistry
from reqflow.core.time import SYSTEM_CLOCK, Clock
from reqflow.orchestration.coalescer import RequestCoalescer


@dataclass(frozen=True, slots=True)
class EngineContext:
    config: Config
    cache: TTLCache
    coalescer: RequestCoalescer
    metrics: MetricsRegistry
    clock: Clock
    logger: logging.Logger

    @classmethod
    def create(
        cls,
        config: Config | None = None,
        *,
        clock: Clock | None = None,
        cache: TTLCache | None = None,
        metrics: MetricsRegistry | None = None,
        logger: logging.Logger | None = None,
    ) -> EngineContext:
        cfg = config or Config()
        clk = clock or SYSTEM_CLOCK
        reg = metrics or MetricsRegistry()
        return cls(
            config=cfg,
            cache=cache or TTLCache(cfg.cache.ttl_s, clock=clk),
            coalescer=RequestCoalescer(metrics=reg),
            metrics=reg,
            clock=clk,
            logger=logger or logging.getLogger("reqflow.engine"),
        )
