"""Tests for the HTTP request channel.

Requests go to an in-process ``aiohttp`` backend (see
``tests/helpers/fake_backend.py``).  The refresh orchestration is also
exercised directly through ``execute_with_refresh`` with scripted
outcomes.
"""

from __future__ import annotations

import asyncio

import pytest  # type: ignore

from paanj.clients.http_client import (
    Failure,
    HttpClient,
    Success,
    Unauthorized,
    execute_with_refresh,
)
from paanj.errors import HttpError

from tests.helpers.fake_streams import wait_for


@pytest.mark.asyncio  # type: ignore
async def test_api_key_always_sent_and_bearer_only_when_allowed(backend) -> None:
    client = HttpClient("pk_test", backend.url)
    client.set_access_token("access-1")
    try:
        await client.request("GET", "/api/v1/me")
        with pytest.raises(HttpError):
            await client.request("GET", "/api/v1/me", skip_auth=True)
    finally:
        await client.close()
    first, second = backend.calls("/api/v1/me")
    assert first["headers"]["X-API-Key"] == "pk_test"
    assert first["headers"]["Authorization"] == "Bearer access-1"
    assert second["headers"]["X-API-Key"] == "pk_test"
    assert "Authorization" not in second["headers"]


@pytest.mark.asyncio  # type: ignore
async def test_no_bearer_without_token(backend) -> None:
    client = HttpClient("pk_test", backend.url)
    try:
        await client.request("POST", "/api/v1/users/anonymous", {"user": {"name": "a"}})
    finally:
        await client.close()
    (call,) = backend.calls("/api/v1/users/anonymous")
    assert "Authorization" not in call["headers"]
    assert call["body"] == {"user": {"name": "a"}}


@pytest.mark.asyncio  # type: ignore
async def test_success_returns_decoded_body(backend) -> None:
    client = HttpClient("pk_test", backend.url)
    client.set_access_token("access-1")
    try:
        body = await client.request("GET", "/api/v1/me")
    finally:
        await client.close()
    assert body == {"userId": "user-42", "token": "access-1"}


@pytest.mark.asyncio  # type: ignore
@pytest.mark.parametrize(
    "path, expected",
    [
        ("/api/v1/plain", "ok"),
        ("/api/v1/empty", None),
    ],
)
async def test_non_json_success_body_is_returned_as_is(backend, path, expected) -> None:
    client = HttpClient("pk_test", backend.url)
    try:
        body = await client.request("GET", path)
    finally:
        await client.close()
    assert body == expected


@pytest.mark.asyncio  # type: ignore
@pytest.mark.parametrize(
    "path, status, message",
    [
        ("/api/v1/teapot", 418, "I refuse"),
        ("/api/v1/broken", 502, "Unknown error"),
        ("/api/v1/missing", 404, "HTTP 404: Not Found"),
        ("/api/v1/unchanged", 304, "Unknown error"),
    ],
)
async def test_error_responses_raise_http_error(backend, path, status, message) -> None:
    client = HttpClient("pk_test", backend.url)
    try:
        with pytest.raises(HttpError) as excinfo:
            await client.request("GET", path)
    finally:
        await client.close()
    assert excinfo.value.status == status
    assert excinfo.value.message == message
    assert str(excinfo.value) == message


@pytest.mark.asyncio  # type: ignore
async def test_unauthorized_without_refresh_callback_fails(backend) -> None:
    client = HttpClient("pk_test", backend.url)
    client.set_access_token("stale")
    try:
        with pytest.raises(HttpError) as excinfo:
            await client.request("GET", "/api/v1/me")
    finally:
        await client.close()
    assert excinfo.value.status == 401
    assert len(backend.calls("/api/v1/me")) == 1


@pytest.mark.asyncio  # type: ignore
async def test_concurrent_unauthorized_requests_share_one_refresh(backend, monkeypatch) -> None:
    backend.valid_tokens = {"access-2"}
    client = HttpClient("pk_test", backend.url)
    client.set_access_token("access-1")
    refreshes = 0
    joined = 0
    original_await_refresh = client._await_refresh

    async def counting_await_refresh(callback) -> None:
        nonlocal joined
        joined += 1
        await original_await_refresh(callback)

    async def refresh() -> None:
        nonlocal refreshes
        refreshes += 1
        # Hold the refresh open until every request has hit its 401
        await wait_for(lambda: joined == 5)
        client.set_access_token("access-2")

    monkeypatch.setattr(client, "_await_refresh", counting_await_refresh)
    client.set_refresh_callback(refresh)
    try:
        results = await asyncio.gather(*[client.request("GET", "/api/v1/me") for _ in range(5)])
    finally:
        await client.close()
    assert refreshes == 1
    assert joined == 5
    assert all(r["token"] == "access-2" for r in results)
    calls = backend.calls("/api/v1/me")
    # Each request: one rejected attempt plus exactly one retry
    assert len(calls) == 10
    assert [c["headers"]["Authorization"] for c in calls].count("Bearer access-2") == 5
    assert not client.refresh_in_flight


@pytest.mark.asyncio  # type: ignore
async def test_refresh_uses_callback_captured_at_request_time(backend, monkeypatch) -> None:
    backend.valid_tokens = {"access-2"}
    client = HttpClient("pk_test", backend.url)
    client.set_access_token("access-1")
    original_await_refresh = client._await_refresh

    async def refresh() -> None:
        client.set_access_token("access-2")

    async def clearing_await_refresh(callback) -> None:
        # The session drops its callback while this request is waiting on a 401
        client.set_refresh_callback(None)
        await original_await_refresh(callback)

    monkeypatch.setattr(client, "_await_refresh", clearing_await_refresh)
    client.set_refresh_callback(refresh)
    try:
        body = await client.request("GET", "/api/v1/me")
    finally:
        await client.close()
    assert body["token"] == "access-2"
    assert not client.refresh_in_flight


@pytest.mark.asyncio  # type: ignore
async def test_retried_request_never_retries_twice(backend) -> None:
    backend.valid_tokens = set()
    client = HttpClient("pk_test", backend.url)
    client.set_access_token("access-1")
    refreshes = 0

    async def refresh() -> None:
        nonlocal refreshes
        refreshes += 1
        client.set_access_token("still-bad")

    client.set_refresh_callback(refresh)
    try:
        with pytest.raises(HttpError) as excinfo:
            await client.request("GET", "/api/v1/me")
    finally:
        await client.close()
    assert excinfo.value.status == 401
    assert refreshes == 1
    assert len(backend.calls("/api/v1/me")) == 2


@pytest.mark.asyncio  # type: ignore
async def test_failed_refresh_still_retries_once(backend) -> None:
    backend.valid_tokens = set()
    client = HttpClient("pk_test", backend.url)
    client.set_access_token("access-1")
    refreshes = 0

    async def refresh() -> None:
        nonlocal refreshes
        refreshes += 1
        raise HttpError(401, "Invalid refresh token")

    client.set_refresh_callback(refresh)
    try:
        with pytest.raises(HttpError):
            await client.request("GET", "/api/v1/me")
    finally:
        await client.close()
    assert refreshes == 1
    assert len(backend.calls("/api/v1/me")) == 2
    assert not client.refresh_in_flight


@pytest.mark.asyncio  # type: ignore
async def test_skip_auth_never_triggers_refresh(backend) -> None:
    client = HttpClient("pk_test", backend.url)
    refreshes = 0

    async def refresh() -> None:
        nonlocal refreshes
        refreshes += 1

    client.set_refresh_callback(refresh)
    try:
        with pytest.raises(HttpError):
            await client.request("GET", "/api/v1/me", skip_auth=True)
        with pytest.raises(HttpError):
            await client.request("GET", "/api/v1/me", allow_refresh_retry=False)
    finally:
        await client.close()
    assert refreshes == 0
    assert len(backend.calls("/api/v1/me")) == 2


class ScriptedSend:
    """Returns pre-programmed outcomes, one per call."""

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.outcomes.pop(0)


@pytest.mark.asyncio  # type: ignore
async def test_execute_with_refresh_success_passthrough() -> None:
    send = ScriptedSend(Success({"ok": True}))
    assert await execute_with_refresh(send, None) == {"ok": True}
    assert send.calls == 1


@pytest.mark.asyncio  # type: ignore
async def test_execute_with_refresh_retries_after_refresh() -> None:
    order = []
    send = ScriptedSend(Unauthorized(401, "expired"), Success("body"))

    async def refresh() -> None:
        order.append("refresh")

    assert await execute_with_refresh(send, refresh) == "body"
    assert send.calls == 2
    assert order == ["refresh"]


@pytest.mark.asyncio  # type: ignore
async def test_execute_with_refresh_does_not_retry_other_failures() -> None:
    send = ScriptedSend(Failure(500, "down"))

    async def refresh() -> None:
        raise AssertionError("refresh must not run")

    with pytest.raises(HttpError) as excinfo:
        await execute_with_refresh(send, refresh)
    assert excinfo.value.status == 500
    assert send.calls == 1


@pytest.mark.asyncio  # type: ignore
async def test_execute_with_refresh_respects_disabled_retry() -> None:
    send = ScriptedSend(Unauthorized(401, "expired"))

    async def refresh() -> None:
        raise AssertionError("refresh must not run")

    with pytest.raises(HttpError):
        await execute_with_refresh(send, refresh, allow_retry=False)
    assert send.calls == 1
