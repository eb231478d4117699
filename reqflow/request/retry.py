"""reqflow.request.retry

When to try again, and how long to wait first.

Cancellation is always terminal. So is a response we could not decode.
"""

from __future__ import annotations

from typing import Literal

from reqflow.core.config import RetryConfig
from reqflow.core.exceptions import AbortError, ConfigError

Backoff = Literal["fixed", "exponential"]


class RetryPolicy:
    """``retry`` is a bool (unlimited / never) or an attempt cap.

    ``attempt`` arguments count failed attempts so far, starting at 1. With
    ``retry=N`` an always-failing operation runs ``N + 1`` times.
    """

    def __init__(
        self,
        retry: bool | int = 0,
        delay_s: float = 1.0,
        *,
        backoff: Backoff = "fixed",
        max_delay_s: float = 30.0,
    ) -> None:
        if not isinstance(retry, (bool, int)):
            raise ConfigError(f"retry must be a bool or an int, got {type(retry).__name__}")
        if not isinstance(retry, bool) and retry < 0:
            raise ConfigError(f"retry must be >= 0, got {retry}")
        if delay_s < 0:
            raise ConfigError(f"retry delay must be >= 0, got {delay_s}")
        if backoff not in ("fixed", "exponential"):
            raise ConfigError(f"unknown backoff strategy: {backoff!r}")
        if max_delay_s <= 0:
            raise ConfigError(f"max_delay_s must be > 0, got {max_delay_s}")

        self.retry = retry
        self.delay_s = float(delay_s)
        self.backoff: Backoff = backoff
        self.max_delay_s = float(max_delay_s)

    @classmethod
    def from_config(
        cls,
        cfg: RetryConfig,
        *,
        retry: bool | int | None = None,
        delay_s: float | None = None,
    ) -> RetryPolicy:
        return cls(
            cfg.retry if retry is None else retry,
            cfg.retry_delay_s if delay_s is None else delay_s,
            backoff=cfg.backoff,
            max_delay_s=cfg.backoff_max_s,
        )

    @property
    def max_retries(self) -> int | None:
        """Retry cap; ``None`` means unlimited."""

        if self.retry is True:
            return None
        if self.retry is False:
            return 0
        return int(self.retry)

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        if isinstance(error, AbortError):
            return False
        if not getattr(error, "retryable", True):
            return False
        cap = self.max_retries
        return cap is None or attempt <= cap

    def delay_for(self, attempt: int) -> float:
        if self.backoff == "fixed":
            return self.delay_s
        # base * 2^(n-1), capped; exponent clamped at 62
        k = min(max(0, attempt - 1), 62)
        return min(self.max_delay_s, self.delay_s * (2.0**k))

    def __repr__(self) -> str:
        return f"RetryPolicy(retry={self.retry!r}, delay_s={self.delay_s}, backoff={self.backoff!r})"
