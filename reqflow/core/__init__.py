"""reqflow.core

Core primitives.

If a module needs to exist, it should probably depend only on this package.
"""

from .cache import MISS, TTLCache, generate_cache_key, operation_id
from .config import Config
from .exceptions import AbortError, ConfigError, DecodeError, HTTPError, NetworkError, ReqflowError, RequestError
from .metrics import MetricsRegistry
from .time import SYSTEM_CLOCK, Clock, SystemClock
from .types import ActionState, EngineStatus, MutationState, OverlayState, RequestState

__all__ = [
    "MISS",
    "AbortError",
    "ActionState",
    "Clock",
    "Config",
    "ConfigError",
    "DecodeError",
    "EngineStatus",
    "HTTPError",
    "MetricsRegistry",
    "MutationState",
    "NetworkError",
    "OverlayState",
    "ReqflowError",
    "RequestError",
    "RequestState",
    "SYSTEM_CLOCK",
    "SystemClock",
    "TTLCache",
    "generate_cache_key",
    "operation_id",
]
