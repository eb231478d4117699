"""reqflow.core.config

Two config surfaces only:
1) an optional YAML file (``Config.from_yaml``)
2) environment variables (``REQFLOW_`` prefix, ``__`` for nesting)

Per-engine options (``reqflow.orchestration.options``) fall back to these.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from reqflow.core.exceptions import ConfigError


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


class CacheConfig(BaseModel):
    ttl_s: float = Field(default=300.0, gt=0)
    read_methods: list[str] = ["GET"]

    @field_validator("read_methods")
    @classmethod
    def upper_methods(cls, v: list[str]) -> list[str]:
        return [m.upper() for m in v]


class RequestConfig(BaseModel):
    base_url: str = ""
    timeout_s: float | None = Field(default=30.0, gt=0)
    headers: dict[str, str] = {}


class RetryConfig(BaseModel):
    retry: bool | int = 0
    retry_delay_s: float = Field(default=1.0, ge=0)
    backoff: Literal["fixed", "exponential"] = "fixed"
    backoff_max_s: float = Field(default=30.0, gt=0)

    @field_validator("retry")
    @classmethod
    def retry_cap_not_negative(cls, v: bool | int) -> bool | int:
        if not isinstance(v, bool) and v < 0:
            raise ValueError("retry must be a bool or an int >= 0")
        return v


class PollingConfig(BaseModel):
    min_interval_s: float = Field(default=0.0, ge=0)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False


class Config(BaseSettings):
    """Root configuration. Single source of truth for defaults."""

    cache: CacheConfig = Field(default_factory=CacheConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"env_prefix": "REQFLOW_", "env_nested_delimiter": "__"}

    @classmethod
    def from_yaml(cls, path: Path, *, overrides: dict[str, Any] | None = None) -> Config:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        raw = yaml.safe_load(path.read_text()) or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")
        if overrides:
            raw = _deep_merge(raw, overrides)

        try:
            return cls(**raw)
        except ValidationError as e:
            raise ConfigError(f"Invalid config in {path}: {e}") from e
