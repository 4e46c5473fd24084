from unittest.mock import MagicMock

import httpx
import pytest

from requestweave.auth import InMemoryCredentialStore
from requestweave.exceptions import APIError, RequestweaveError
from requestweave.middleware import (
    Middleware,
    MiddlewarePipeline,
    auth_middleware,
    logging_middleware,
)
from requestweave.types import RequestData


@pytest.fixture
def request_data() -> RequestData:
    return RequestData(method="GET", path="/items", url="https://api.example.com/items")


def _error(status: int | None) -> RequestweaveError:
    if status is None:
        return RequestweaveError("no response")
    request = httpx.Request("GET", "https://api.example.com/items")
    return APIError.from_response(httpx.Response(status, request=request))


def _tagging(tag: str, calls: list[str]) -> Middleware:
    def on_request(request: RequestData) -> RequestData:
        calls.append(f"{tag}:request")
        request.headers["X-Trace"] = request.headers.get("X-Trace", "") + tag
        return request

    def on_response(response: httpx.Response) -> httpx.Response:
        calls.append(f"{tag}:response")
        return response

    def on_error(error: RequestweaveError) -> RequestweaveError:
        calls.append(f"{tag}:error")
        return error

    return Middleware(name=tag, on_request=on_request, on_response=on_response, on_error=on_error)


@pytest.mark.asyncio
async def test_hooks_run_in_registration_order_for_every_phase(request_data):
    calls: list[str] = []
    pipeline = MiddlewarePipeline([_tagging("A", calls), _tagging("B", calls)])

    result = await pipeline.run_request(request_data)
    await pipeline.run_response(httpx.Response(200))
    await pipeline.run_error(_error(500))

    assert result.headers["X-Trace"] == "AB"
    assert calls == [
        "A:request",
        "B:request",
        "A:response",
        "B:response",
        "A:error",
        "B:error",
    ]


@pytest.mark.asyncio
async def test_hook_returning_none_keeps_previous_value(request_data):
    seen = []
    pipeline = MiddlewarePipeline(
        [
            Middleware(on_request=lambda request: None),
            Middleware(on_request=lambda request: seen.append(request)),
        ]
    )

    result = await pipeline.run_request(request_data)

    assert result is request_data
    assert seen == [request_data]


@pytest.mark.asyncio
async def test_async_hooks_are_awaited(request_data):
    async def replace(request: RequestData) -> RequestData:
        return request.model_copy(update={"path": "/replaced"})

    pipeline = MiddlewarePipeline([Middleware(on_request=replace)])

    result = await pipeline.run_request(request_data)

    assert result.path == "/replaced"
    assert request_data.path == "/items"


@pytest.mark.asyncio
async def test_error_hook_can_replace_the_error():
    replacement = RequestweaveError("friendlier message", status=503)
    pipeline = MiddlewarePipeline([Middleware(on_error=lambda error: replacement)])

    assert await pipeline.run_error(_error(503)) is replacement


@pytest.mark.asyncio
async def test_raising_hook_is_skipped(request_data, caplog_loguru):
    def broken(request: RequestData) -> RequestData:
        raise ValueError("hook bug")

    after = MagicMock(return_value=None)
    pipeline = MiddlewarePipeline(
        [Middleware(name="broken", on_request=broken), Middleware(on_request=after)]
    )

    result = await pipeline.run_request(request_data)

    assert result is request_data
    after.assert_called_once_with(request_data)
    assert any("on_request hook of broken" in m for m in caplog_loguru)


@pytest.mark.asyncio
async def test_missing_hooks_are_skipped(request_data):
    pipeline = MiddlewarePipeline([Middleware(name="empty")])

    assert await pipeline.run_request(request_data) is request_data


@pytest.mark.asyncio
async def test_phase_uses_snapshot_of_entries(request_data):
    calls: list[str] = []
    late = _tagging("late", calls)
    pipeline = MiddlewarePipeline()

    def add_late(request: RequestData) -> None:
        calls.append("first:request")
        pipeline.add(late)

    pipeline.add(Middleware(on_request=add_late))

    await pipeline.run_request(request_data)
    assert calls == ["first:request"]

    calls.clear()
    pipeline.remove(late)
    assert len(pipeline) == 1


def test_add_and_remove_by_identity():
    first = Middleware(name="same")
    second = Middleware(name="same")
    pipeline = MiddlewarePipeline([first, second])

    assert pipeline.remove(second) is True
    assert pipeline.entries == (first,)
    assert pipeline.remove(second) is False
    assert list(pipeline) == [first]


def test_middleware_str_uses_name():
    assert str(Middleware(name="auth")) == "auth"
    assert str(Middleware()).startswith("Middleware@")


@pytest.mark.asyncio
async def test_auth_middleware_injects_bearer_token(request_data):
    credentials = InMemoryCredentialStore("secret-token")
    pipeline = MiddlewarePipeline([auth_middleware(credentials)])

    result = await pipeline.run_request(request_data)

    assert result.headers["Authorization"] == "Bearer secret-token"


@pytest.mark.asyncio
async def test_auth_middleware_without_token_leaves_headers_alone(request_data):
    pipeline = MiddlewarePipeline([auth_middleware(InMemoryCredentialStore())])

    result = await pipeline.run_request(request_data)

    assert "Authorization" not in result.headers


@pytest.mark.asyncio
async def test_auth_middleware_clears_credentials_and_signals_on_401():
    credentials = InMemoryCredentialStore("secret-token")
    signal = MagicMock()
    pipeline = MiddlewarePipeline([auth_middleware(credentials, signal)])

    error = await pipeline.run_error(_error(401))

    assert error.status == 401
    assert credentials.get_token() is None
    assert credentials.clear_count == 1
    signal.assert_called_once_with()


@pytest.mark.asyncio
async def test_auth_middleware_awaits_async_signal():
    signalled = []

    async def redirect_to_login() -> None:
        signalled.append(True)

    pipeline = MiddlewarePipeline(
        [auth_middleware(InMemoryCredentialStore("t"), redirect_to_login)]
    )

    await pipeline.run_error(_error(401))

    assert signalled == [True]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [None, 403, 404, 500])
async def test_auth_middleware_ignores_other_failures(status):
    credentials = InMemoryCredentialStore("secret-token")
    signal = MagicMock()
    pipeline = MiddlewarePipeline([auth_middleware(credentials, signal)])

    await pipeline.run_error(_error(status))

    assert credentials.get_token() == "secret-token"
    signal.assert_not_called()


@pytest.mark.asyncio
async def test_logging_middleware_logs_every_phase(request_data, caplog_loguru):
    pipeline = MiddlewarePipeline([logging_middleware()])
    request = httpx.Request("GET", "https://api.example.com/items")

    await pipeline.run_request(request_data)
    await pipeline.run_response(httpx.Response(200, request=request))
    await pipeline.run_error(_error(404))

    assert "[API Request] GET https://api.example.com/items" in caplog_loguru
    assert "[API Response] 200 https://api.example.com/items" in caplog_loguru
    assert any(m.startswith("[API Error] GET") and "status=404" in m for m in caplog_loguru)
