"""
HTTP request channel with automatic, de-duplicated token refresh.

Every request carries the ``X-API-Key`` header and, unless explicitly
skipped, a bearer token.  When the backend answers ``401`` the client asks
the session to refresh the access token and retries the request once.
Concurrent requests that hit ``401`` while a refresh is in flight share
that single refresh instead of starting their own.

The low-level send returns a :class:`RequestOutcome` rather than raising,
and the retry decision lives in :func:`execute_with_refresh` so it can be
exercised without a network.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import aiohttp
from aiohttp import ClientResponse

from ..errors import HttpError

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[], Awaitable[Any]]

UNAUTHORIZED = 401


@dataclass(frozen=True)
class Success:
    body: Any


@dataclass(frozen=True)
class Unauthorized:
    status: int
    message: str


@dataclass(frozen=True)
class Failure:
    status: int
    message: str


RequestOutcome = Union[Success, Unauthorized, Failure]


def _raise_for_outcome(outcome: RequestOutcome) -> Any:
    if isinstance(outcome, Success):
        return outcome.body
    raise HttpError(outcome.status, outcome.message)


async def execute_with_refresh(
    send: Callable[[], Awaitable[RequestOutcome]],
    refresh: Optional[Callable[[], Awaitable[None]]],
    allow_retry: bool = True,
) -> Any:
    """Send a request, refreshing and retrying once on ``Unauthorized``.

    Args:
        send: Coroutine factory performing the request.  Called at most twice.
        refresh: Awaitable refresh capability, or ``None`` when refreshing
            is not possible for this request.
        allow_retry: When false an ``Unauthorized`` outcome is final.

    Returns:
        The decoded body of the successful response.

    Raises:
        HttpError: for any non-success outcome that is not retried, and for
            the outcome of the single retry.
    """
    outcome = await send()
    if isinstance(outcome, Unauthorized) and allow_retry and refresh is not None:
        await refresh()
        outcome = await send()
    return _raise_for_outcome(outcome)


class HttpClient:
    """Authenticated JSON-over-HTTP client for the Paanj API."""

    def __init__(
        self,
        api_key: str,
        api_url: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """Construct the HTTP client.

        Args:
            api_key: Project API key, sent as ``X-API-Key`` on every request.
            api_url: Base URL of the REST API (no trailing slash).
            session: Optional externally owned ``aiohttp`` session.  When
                omitted the client creates one lazily and closes it in
                :meth:`close`.
        """
        self.api_key = api_key
        self._api_url = api_url.rstrip("/")
        self._access_token: Optional[str] = None
        self._refresh_callback: Optional[RefreshCallback] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._session = session
        self._owns_session = session is None

    @property
    def api_url(self) -> str:
        return self._api_url

    def set_access_token(self, token: Optional[str]) -> None:
        self._access_token = token

    def set_refresh_callback(self, callback: Optional[RefreshCallback]) -> None:
        """Install the coroutine used to refresh the access token on ``401``."""
        self._refresh_callback = callback

    @property
    def refresh_in_flight(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    def _build_headers(self, skip_auth: bool) -> Dict[str, str]:
        headers = {
            "X-API-Key": self.api_key,
            "Content-Type": "application/json",
        }
        if not skip_auth and self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _send(
        self, method: str, path: str, body: Optional[Any], skip_auth: bool
    ) -> RequestOutcome:
        url = f"{self._api_url}{path}"
        # Headers are rebuilt per attempt so a retry picks up a refreshed token
        headers = self._build_headers(skip_auth)
        data = json.dumps(body) if body is not None else None
        session = self._get_session()
        async with session.request(method, url, headers=headers, data=data) as resp:
            if 200 <= resp.status < 300:
                return Success(self._decode_body(await resp.text()))
            message = await self._error_message(resp)
            if resp.status == UNAUTHORIZED:
                return Unauthorized(resp.status, message)
            return Failure(resp.status, message)

    @staticmethod
    def _decode_body(text: str) -> Any:
        # Empty bodies (204) decode to None, non-JSON bodies to their text
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text

    @staticmethod
    async def _error_message(resp: ClientResponse) -> str:
        text = await resp.text()
        # Avoid logging full response bodies; truncate to prevent leakage
        logger.error("HTTP Error %s: %s", resp.status, text[:200] if text else "")
        try:
            payload = json.loads(text)
        except ValueError:
            return "Unknown error"
        if isinstance(payload, dict) and payload.get("error"):
            return str(payload["error"])
        return f"HTTP {resp.status}: {resp.reason}"

    async def _run_refresh(self, callback: RefreshCallback) -> None:
        try:
            await callback()
        finally:
            self._refresh_task = None

    async def _await_refresh(self, callback: RefreshCallback) -> None:
        """Join the in-flight refresh, starting one if none is running.

        A failed refresh is logged; the caller still retries once with the
        token that is current at that point.
        """
        task = self._refresh_task
        if task is None:
            task = asyncio.ensure_future(self._run_refresh(callback))
            self._refresh_task = task
        try:
            await asyncio.shield(task)
        except Exception as exc:
            logger.warning("Token refresh failed: %s", exc)

    async def request(
        self,
        method: str,
        path: str,
        body: Optional[Any] = None,
        skip_auth: bool = False,
        allow_refresh_retry: bool = True,
    ) -> Any:
        """Make an HTTP request and return the decoded body.

        Args:
            method: HTTP method, e.g. ``"POST"``.
            path: Path appended to the API URL, e.g. ``"/api/v1/auth/refresh"``.
            body: JSON-serialisable request body, or ``None``.
            skip_auth: Do not send the bearer token (and never refresh).
            allow_refresh_retry: Allow one refresh-and-retry on ``401``.

        Raises:
            HttpError: on a non-success response that is not retried.
        """
        refresh = None
        callback = self._refresh_callback
        if not skip_auth and callback is not None:
            refresh = functools.partial(self._await_refresh, callback)

        async def send() -> RequestOutcome:
            return await self._send(method, path, body, skip_auth)

        return await execute_with_refresh(send, refresh, allow_retry=allow_refresh_retry)

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
