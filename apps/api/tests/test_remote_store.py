"""Tests for the remote store client over a mocked transport."""

import asyncio
import json

import httpx
import pytest

from casewizard.services.remote_store import (
    CHECK_EMAIL_PATH,
    WORKFLOW_PROGRESS_PATH,
    WORKFLOWS_PATH,
    RemoteAuthError,
    RemoteNotFoundError,
    RemoteStore,
    RemoteUnavailableError,
)


def _store(handler, **kwargs):
    return RemoteStore(
        "http://remote.test",
        token="token-1",
        transport=httpx.MockTransport(handler),
        max_attempts=kwargs.pop("max_attempts", 1),
        base_delay=0,
        max_delay=0,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_bearer_token_and_payload_are_sent():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": {"sessionId": "workflow_a"}})

    result = await _store(handler).save_session({"sessionId": "workflow_a"})

    assert result == {"sessionId": "workflow_a"}
    assert seen == {
        "auth": "Bearer token-1",
        "path": WORKFLOW_PROGRESS_PATH,
        "body": {"sessionId": "workflow_a"},
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,error",
    [
        (401, RemoteAuthError),
        (403, RemoteAuthError),
        (404, RemoteNotFoundError),
        (500, RemoteUnavailableError),
        (422, RemoteUnavailableError),
    ],
)
async def test_status_codes_are_classified(status, error):
    store = _store(lambda request: httpx.Response(status))

    with pytest.raises(error) as exc_info:
        await store.get_session("workflow_a")

    assert exc_info.value.status_code == status


@pytest.mark.asyncio
async def test_invalid_json_is_unavailable():
    store = _store(lambda request: httpx.Response(200, content=b"<html>"))

    with pytest.raises(RemoteUnavailableError):
        await store.get_session("workflow_a")


@pytest.mark.asyncio
async def test_server_errors_are_retried():
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"workflows": [{"sessionId": "a"}, "junk"]})

    sessions = await _store(handler, max_attempts=2).list_sessions(status="in-progress")

    assert calls["count"] == 2
    assert sessions == [{"sessionId": "a"}]


@pytest.mark.asyncio
async def test_list_sessions_sends_filters():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"data": {"workflows": []}})

    assert await _store(handler).list_sessions(status="completed", search="ana", limit=5) == []
    assert seen["path"] == WORKFLOWS_PATH
    assert seen["params"]["status"] == "completed"
    assert seen["params"]["search"] == "ana"
    assert seen["params"]["limit"] == "5"


@pytest.mark.asyncio
async def test_check_email_normalizes_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        return httpx.Response(200, json={"exists": True, "userId": "user-3", "extra": 1})

    result = await _store(handler).check_email(" Ana@Example.com ")

    assert seen["path"] == f"{CHECK_EMAIL_PATH}/ana@example.com"
    assert result == {"exists": True, "userId": "user-3", "role": None, "userType": None}


@pytest.mark.asyncio
async def test_probe_accepts_unauthorized_endpoint():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/":
            return httpx.Response(200)
        return httpx.Response(401)

    assert await _store(handler).is_endpoint_available(WORKFLOW_PROGRESS_PATH) is True


@pytest.mark.asyncio
async def test_probe_fails_when_base_url_is_down():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/":
            return httpx.Response(502)
        return httpx.Response(200)

    assert await _store(handler).is_endpoint_available(WORKFLOW_PROGRESS_PATH) is False


@pytest.mark.asyncio
async def test_probe_fails_on_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    assert await _store(handler).is_endpoint_available(WORKFLOW_PROGRESS_PATH) is False


@pytest.mark.asyncio
async def test_probe_fails_on_missing_endpoint():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200 if request.url.path == "/" else 404)

    assert await _store(handler).is_endpoint_available(WORKFLOW_PROGRESS_PATH) is False


@pytest.mark.asyncio
async def test_slow_remote_is_bounded_by_request_timeout():
    calls = {"count": 0}

    async def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        await asyncio.sleep(1)
        return httpx.Response(200, json={"data": []})

    store = _store(handler, max_attempts=3, timeout=0.05)

    with pytest.raises(RemoteUnavailableError, match="timed out"):
        await store.list_sessions()

    assert calls["count"] == 1
