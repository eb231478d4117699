from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from reqflow.core.config import Config, RetryConfig
from reqflow.core.exceptions import DecodeError, HTTPError
from reqflow.core.types import EngineStatus
from reqflow.orchestration.action import ActionRunner
from reqflow.orchestration.context import EngineContext
from reqflow.orchestration.engine import QueryEngine
from reqflow.orchestration.optimistic import MutationEngine
from reqflow.request.http import HttpTransport

pytestmark = pytest.mark.integration


class TodoServer:
    """In-memory todo API behind httpx.MockTransport."""

    def __init__(self) -> None:
        self.todos: list[dict[str, Any]] = [{"id": 1, "title": "write tests"}]
        self.hits: list[str] = []
        self.fail_next: list[httpx.Response] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.hits.append(f"{request.method} {request.url.path}")
        if self.fail_next:
            return self.fail_next.pop(0)
        if request.method == "GET" and request.url.path == "/todos":
            return httpx.Response(200, json=self.todos)
        if request.method == "POST" and request.url.path == "/todos":
            body = json.loads(request.content)
            if not body.get("title"):
                return httpx.Response(422, json={"message": "Title is required"})
            todo = {"id": len(self.todos) + 1, "title": body["title"]}
            self.todos.append(todo)
            return httpx.Response(201, json=self.todos)
        return httpx.Response(404, json={"message": "Not found"})


@pytest.fixture()
def server() -> TodoServer:
    return TodoServer()


@pytest.fixture()
def transport(server: TodoServer) -> HttpTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(server))
    return HttpTransport(base_url="https://todo.test", client=client)


@pytest.fixture()
def live_ctx(test_config: Config) -> EngineContext:
    return EngineContext.create(test_config)


@pytest.mark.anyio
async def test_query_then_optimistic_mutation(live_ctx: EngineContext, transport: HttpTransport, server: TodoServer) -> None:
    list_todos = transport.operation("GET", "/todos")
    create_todo = transport.operation("POST", "/todos")

    query = QueryEngine(list_todos, ctx=live_ctx)
    await query.start()
    assert query.state.data == [{"id": 1, "title": "write tests"}]

    # another view of the same list is served from the cache
    mirror = QueryEngine(list_todos, ctx=live_ctx)
    await mirror.start()
    assert server.hits == ["GET /todos"]

    mutation = MutationEngine(
        create_todo,
        ctx=live_ctx,
        initial_data=query.state.data,
        optimistic_update=lambda todos, new: [*todos, {"id": -1, **new}],
        on_success=lambda _: live_ctx.cache.invalidate(query.cache_key or ""),
    )
    await mutation.mutate({"title": "ship it"})
    assert mutation.state.status is EngineStatus.SUCCESS
    assert mutation.state.data[-1] == {"id": 2, "title": "ship it"}

    await query.start()  # one-shot: no-op
    await query.refetch()
    assert len(query.state.data) == 2
    assert server.hits == ["GET /todos", "POST /todos", "GET /todos"]


@pytest.mark.anyio
async def test_server_rejection_rolls_back(live_ctx: EngineContext, transport: HttpTransport) -> None:
    mutation = MutationEngine(
        transport.operation("POST", "/todos"),
        ctx=live_ctx,
        initial_data=[],
        optimistic_update=lambda todos, new: [*todos, new],
    )
    await mutation.mutate({"title": ""})

    state = mutation.state
    assert state.data == []
    assert state.status is EngineStatus.FAILED
    assert isinstance(state.error, HTTPError)
    assert str(state.error) == "Title is required"
    assert state.error.status_code == 422


@pytest.mark.anyio
async def test_http_errors_are_retried(test_config: Config, transport: HttpTransport, server: TodoServer) -> None:
    cfg = test_config.model_copy(update={"retry": RetryConfig(retry=2, retry_delay_s=0)})
    ctx = EngineContext.create(cfg)
    server.fail_next = [httpx.Response(503), httpx.Response(502)]

    engine = QueryEngine(transport.operation("GET", "/todos"), ctx=ctx)
    await engine.start()

    assert engine.state.status is EngineStatus.SUCCESS
    assert server.hits == ["GET /todos"] * 3
    assert ctx.metrics.value("request.retry") == 2


@pytest.mark.anyio
async def test_decode_errors_are_not_retried(live_ctx: EngineContext, transport: HttpTransport, server: TodoServer) -> None:
    server.fail_next = [httpx.Response(200, content=b"<html>", headers={"content-type": "application/json"})]

    engine = QueryEngine(transport.operation("GET", "/todos"), ctx=live_ctx, retry=5, retry_delay_s=0)
    await engine.start()

    assert isinstance(engine.state.error, DecodeError)
    assert server.hits == ["GET /todos"]


@pytest.mark.anyio
async def test_action_runner_over_http(live_ctx: EngineContext, transport: HttpTransport) -> None:
    runner = ActionRunner(transport.operation("POST", "/todos"), ctx=live_ctx)
    await runner.form_action([("title", "draft"), ("title", "final")])
    assert runner.state.data[-1]["title"] == "final"
    assert runner.state.error is None
