"""reqflow.orchestration

Engines and the pieces they coordinate.
"""

from .action import ActionRunner, form_data_to_input
from .cached import cached_fetch
from .coalescer import RequestCoalescer
from .context import EngineContext
from .engine import BaseEngine, QueryEngine
from .optimistic import MutationEngine, OptimisticOverlay
from .options import CacheOptions, EngineOptions
from .polling import PollingScheduler

__all__ = [
    "ActionRunner",
    "BaseEngine",
    "CacheOptions",
    "EngineContext",
    "EngineOptions",
    "MutationEngine",
    "OptimisticOverlay",
    "PollingScheduler",
    "QueryEngine",
    "RequestCoalescer",
    "cached_fetch",
    "form_data_to_input",
]
