"""reqflow.orchestration.options

Per-engine options. Anything left unset falls back to :class:`Config`.

Misconfiguration fails at construction with ``ConfigError``, never later.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from reqflow.core.exceptions import ConfigError


class CacheOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    ttl_s: float | None = Field(default=None, gt=0)
    key: str | None = None


class EngineOptions(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    cache: bool | CacheOptions | None = None
    polling_s: float | None = Field(default=None, ge=0)
    enabled: bool = True
    on_success: Callable[[Any], Any] | None = None
    on_error: Callable[[Any], Any] | None = None
    retry: bool | int | None = None
    retry_delay_s: float | None = Field(default=None, ge=0)
    timeout_s: float | None = Field(default=None, gt=0)
    optimistic_update: Callable[[Any, Any], Any] | None = None
    rollback_on_error: bool = True
    dedupe: bool = False

    @field_validator("retry")
    @classmethod
    def retry_cap_not_negative(cls, v: bool | int | None) -> bool | int | None:
        if v is not None and not isinstance(v, bool) and v < 0:
            raise ValueError("retry must be a bool or an int >= 0")
        return v

    @field_validator("polling_s")
    @classmethod
    def zero_polling_is_off(cls, v: float | None) -> float | None:
        return v if v else None

    @property
    def cache_key(self) -> str | None:
        return self.cache.key if isinstance(self.cache, CacheOptions) else None

    @property
    def cache_ttl_s(self) -> float | None:
        return self.cache.ttl_s if isinstance(self.cache, CacheOptions) else None


def coerce_options(options: EngineOptions | Mapping[str, Any] | None = None, **overrides: Any) -> EngineOptions:
    """Build ``EngineOptions`` from an instance, a mapping and/or keyword overrides."""

    try:
        if options is None:
            return EngineOptions(**overrides)
        if isinstance(options, EngineOptions):
            return EngineOptions(**{**options.model_dump(), **overrides}) if overrides else options
        return EngineOptions(**{**dict(options), **overrides})
    except ValidationError as e:
        raise ConfigError(f"Invalid engine options: {e}") from e
