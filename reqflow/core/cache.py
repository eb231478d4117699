"""reqflow.core.cache

In-memory key/value store with per-entry TTL.

A cache is a lie you tell yourself to go faster.
A TTL is the part where you admit you might be wrong.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Final

from reqflow.core.time import SYSTEM_CLOCK, Clock

logger = logging.getLogger(__name__)

DEFAULT_TTL_S: Final[float] = 300.0


class _Miss:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False


MISS: Final = _Miss()


@dataclass(frozen=True, slots=True)
class CacheEntry:
    value: Any
    created_at: float
    ttl_s: float

    def is_expired(self, now: float) -> bool:
        return (now - self.created_at) > self.ttl_s


class TTLCache:
    """Unbounded TTL cache with lazy expiry.

    Entries are only removed on read (or explicitly). There is no sweeper and no
    eviction policy beyond TTL: callers own key cardinality.
    """

    def __init__(self, default_ttl_s: float = DEFAULT_TTL_S, *, clock: Clock | None = None):
        self._default_ttl_s = _check_ttl(default_ttl_s)
        self._clock = clock or SYSTEM_CLOCK
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    @property
    def default_ttl_s(self) -> float:
        return self._default_ttl_s

    def get(self, key: str) -> Any:
        """Return the cached value or ``MISS``. Expired entries are dropped here."""

        now = self._clock.now()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return MISS
            if entry.is_expired(now):
                self._store.pop(key, None)
                logger.debug("cache_entry_expired", extra={"cache_key": key})
                return MISS
            return entry.value

    def set(self, key: str, value: Any, ttl_s: float | None = None) -> None:
        ttl = self._default_ttl_s if ttl_s is None else _check_ttl(ttl_s)
        with self._lock:
            self._store[key] = CacheEntry(value=value, created_at=self._clock.now(), ttl_s=ttl)

    def has(self, key: str) -> bool:
        # Not side-effect free: an expired entry is removed.
        return self.get(key) is not MISS

    def get_or_set(self, key: str, factory: Callable[[], Any], *, ttl_s: float | None = None) -> Any:
        val = self.get(key)
        if val is not MISS:
            return val
        val = factory()
        self.set(key, val, ttl_s)
        return val

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def invalidate(self, key: str) -> bool:
        """Delete ``key``; return True if a live entry was removed."""

        live = self.has(key)
        self.delete(key)
        if live:
            logger.info("cache_invalidated", extra={"cache_key": key})
        return live

    def clear(self) -> None:
        with self._lock:
            count = len(self._store)
            self._store.clear()
        logger.info("cache_cleared", extra={"entries": count})

    def size(self) -> int:
        """Number of stored entries, including expired ones not yet read."""

        with self._lock:
            return len(self._store)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._store)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)


def _check_ttl(ttl_s: float) -> float:
    ttl = float(ttl_s)
    if ttl <= 0:
        raise ValueError(f"ttl_s must be > 0, got {ttl_s!r}")
    return ttl


def _structural(value: Any) -> Any:
    """Reduce ``value`` to JSON-safe data that depends only on its structure."""

    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {str(k): _structural(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_structural(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_structural(v) for v in value), key=canonical_json)
    if isinstance(value, type) or callable(value):
        return str(value)
    if isinstance(value, Enum):
        return {"__type__": type(value).__qualname__, "value": _structural(value.value)}
    if dataclasses.is_dataclass(value):
        return {"__type__": type(value).__qualname__, **_structural(dataclasses.asdict(value))}
    if hasattr(value, "model_dump"):
        return {"__type__": type(value).__qualname__, **_structural(value.model_dump())}
    if hasattr(value, "__dict__"):
        return {"__type__": type(value).__qualname__, **_structural(vars(value))}
    return str(value)


def canonical_json(value: Any) -> str:
    """Order-independent JSON used for structural key comparison.

    Mapping keys are stringified, sets sorted, and objects reduced to their
    type name plus fields, so equal structures always produce equal text.
    """

    return json.dumps(_structural(value), sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def operation_id(operation: Callable[..., Any]) -> str:
    """Stable identifier for a callable: ``module.qualname`` (``"api"`` if unnamed)."""

    name = getattr(operation, "__qualname__", None) or getattr(operation, "__name__", None)
    if not name:
        return "api"
    module = getattr(operation, "__module__", None)
    return f"{module}.{name}" if module else str(name)


def generate_cache_key(op_id: str, params: Any = None, key: str | None = None) -> str:
    """Derive the cache slot for an operation call.

    An explicit ``key`` wins outright. Two operations sharing one override key
    share one slot.
    """

    if key:
        return key
    param_str = canonical_json(params) if params is not None else ""
    return f"{op_id}:{param_str}"
