"""reqflow: request orchestration for asyncio.

Cache with expiry, cancellation, timeout, retry, polling and optimistic
updates around any async operation. All state is in-process and in-memory.
"""

from __future__ import annotations

from reqflow.core import (
    MISS,
    AbortError,
    Config,
    ConfigError,
    DecodeError,
    HTTPError,
    NetworkError,
    ReqflowError,
    RequestState,
    TTLCache,
    generate_cache_key,
)
from reqflow.core.log import configure_logging
from reqflow.orchestration import (
    ActionRunner,
    CacheOptions,
    EngineContext,
    EngineOptions,
    MutationEngine,
    PollingScheduler,
    QueryEngine,
    cached_fetch,
    form_data_to_input,
)
from reqflow.request import CancelToken, HttpTransport, RequestExecutor, RetryPolicy, make_request

__all__ = [
    "__version__",
    "MISS",
    "AbortError",
    "ActionRunner",
    "CacheOptions",
    "CancelToken",
    "Config",
    "ConfigError",
    "DecodeError",
    "EngineContext",
    "EngineOptions",
    "HTTPError",
    "HttpTransport",
    "MutationEngine",
    "NetworkError",
    "PollingScheduler",
    "QueryEngine",
    "ReqflowError",
    "RequestExecutor",
    "RequestState",
    "RetryPolicy",
    "TTLCache",
    "cached_fetch",
    "configure_logging",
    "form_data_to_input",
    "generate_cache_key",
    "make_request",
]

__version__ = "0.1.0"
