"""reqflow.core.exceptions

Errors are part of the interface.

Every failure an engine can surface is one of these, or whatever the caller's
operation raised.
"""

from __future__ import annotations

from typing import Any


class ReqflowError(Exception):
    """Base exception for reqflow."""


class ConfigError(ReqflowError):
    """Configuration is missing, invalid, or contradictory."""


class RequestError(ReqflowError):
    """An attempt did not produce a usable result."""

    retryable: bool = True


class AbortError(RequestError):
    """The attempt was cancelled before it settled (timeout or caller action)."""

    retryable = False

    def __init__(self, reason: str = "aborted") -> None:
        super().__init__("Request was aborted" if reason == "aborted" else f"Request was aborted ({reason})")
        self.reason = reason

    @property
    def timed_out(self) -> bool:
        return self.reason == "timeout"


class HTTPError(RequestError):
    """The transport completed but the status code signals failure."""

    def __init__(self, message: str, *, status_code: int, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class NetworkError(RequestError):
    """Transport failure before any response arrived."""


class DecodeError(RequestError):
    """The response body does not match its declared content type.

    Retrying will not fix a malformed response.
    """

    retryable = False
