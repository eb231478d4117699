"""reqflow.request.http

HTTP operations for engines.

The engine never speaks HTTP. This module is the caller-side helper that turns
a method + URL into an operation with uniform behavior:
- JSON bodies for everything but GET
- non-2xx -> HTTPError (server ``message`` if the body has one)
- decode by declared content type; empty body -> None
- transport failures -> NetworkError
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import httpx

from reqflow.core.config import RequestConfig
from reqflow.core.exceptions import DecodeError, HTTPError, NetworkError
from reqflow.core.time import Clock
from reqflow.request.cancel import CancelToken
from reqflow.request.executor import _UNSET, RequestExecutor

logger = logging.getLogger(__name__)

METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


def query_params(params: Mapping[str, Any] | None) -> dict[str, Any]:
    """Query params as httpx should see them: no ``None`` values, bools as ``true``/``false``."""

    out: dict[str, Any] = {}
    for k, v in (params or {}).items():
        if v is None:
            continue
        out[k] = ("true" if v else "false") if isinstance(v, bool) else v
    return out


def json_body(method: str, body: Any) -> Any:
    # GET never carries a body, even if one was supplied.
    return None if method.upper() == "GET" else body


def decode_response(resp: httpx.Response) -> Any:
    if not resp.is_success:
        raise _http_error(resp)

    if not resp.content:
        return None

    content_type = resp.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            return resp.json()
        except ValueError as e:
            raise DecodeError(f"invalid JSON body from {resp.request.url}: {e}") from e

    text = resp.text
    return text or None


def _http_error(resp: httpx.Response) -> HTTPError:
    body: Any = None
    try:
        body = resp.json() if resp.content else None
    except ValueError:
        body = None

    message = body.get("message") if isinstance(body, dict) else None
    if not message:
        message = f"HTTP Error: {resp.status_code} {resp.reason_phrase}".rstrip()
    return HTTPError(str(message), status_code=resp.status_code, body=body)


class HttpTransport:
    """A request wrapper with default config (base URL, headers, timeout).

    Per-call arguments override defaults; headers are merged, call wins.
    """

    def __init__(
        self,
        *,
        base_url: str = "",
        headers: Mapping[str, str] | None = None,
        timeout_s: float | None = 30.0,
        client: httpx.AsyncClient | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.base_url = base_url
        self.headers = dict(headers or {})
        self._executor = RequestExecutor(timeout_s=timeout_s, clock=clock)
        # The executor owns timeouts; httpx only gets a backstop.
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = client is None

    @classmethod
    def from_config(cls, cfg: RequestConfig, **kwargs: Any) -> HttpTransport:
        return cls(base_url=cfg.base_url, headers=cfg.headers, timeout_s=cfg.timeout_s, **kwargs)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpTransport:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def request(
        self,
        method: str,
        url: str,
        *,
        body: Any = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        base_url: str | None = None,
        timeout_s: Any = _UNSET,
        cancel: CancelToken | None = None,
    ) -> Any:
        method = method.upper()
        if method not in METHODS:
            raise ValueError(f"unsupported method: {method}")

        root = self.base_url if base_url is None else base_url
        full_url = f"{root}{url}" if root else url
        query = query_params(params)
        merged = {"Content-Type": "application/json", **self.headers, **(headers or {})}

        async def _send() -> Any:
            try:
                resp = await self._client.request(
                    method,
                    full_url,
                    params=query or None,
                    json=json_body(method, body),
                    headers=merged,
                )
            except httpx.TransportError as e:
                raise NetworkError(f"{type(e).__name__}: {e}") from e
            return decode_response(resp)

        return await self._executor.execute(_send, timeout_s=timeout_s, cancel=cancel)

    def operation(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Callable[..., Awaitable[Any]]:
        """Engine-ready callable.

        Called with one argument it is treated as the request body for
        non-GET methods and as extra query params for GET.
        """

        method = method.upper()

        async def _op(arg: Any = None) -> Any:
            if method == "GET":
                merged_params = {**(params or {}), **(arg or {})}
                return await self.request(method, url, params=merged_params, headers=headers)
            return await self.request(method, url, body=arg, params=params, headers=headers)

        _op.__name__ = f"{method.lower()}_{url.strip('/').replace('/', '_') or 'root'}"
        _op.__qualname__ = f"HttpTransport.{method} {url}"
        return _op


async def make_request(
    method: str,
    url: str,
    *,
    body: Any = None,
    params: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
    base_url: str = "",
    timeout_s: float | None = 30.0,
    cancel: CancelToken | None = None,
    client: httpx.AsyncClient | None = None,
) -> Any:
    """One-shot request without a long-lived transport."""

    transport = HttpTransport(base_url=base_url, timeout_s=timeout_s, client=client)
    try:
        return await transport.request(method, url, body=body, params=params, headers=headers, cancel=cancel)
    finally:
        await transport.aclose()
