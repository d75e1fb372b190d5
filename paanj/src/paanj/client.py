"""
PaanjClient: authentication lifecycle and connection management.

The client is the single owner of the current credential.  It obtains
credentials from the REST API (anonymous signup, refresh) or adopts them
from the caller, and pushes the access token into the HTTP and websocket
channels.  Authentication events (``user.created``, ``token.updated``) are
emitted through the same listener registry as websocket events, so
feature packages only need ``on()``.

Example::

    async with PaanjClient(api_key="pk_live_...") as client:
        client.on("token.updated", store_tokens)
        await client.authenticate_anonymous({"name": "Ada"})
        await client.connect()
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .clients.http_client import HttpClient
from .clients.ws_client import Connector, WebSocketClient
from .config import ClientOptions
from .errors import InvalidArgumentError, NotAuthenticatedError
from .listeners import Listener, Unsubscribe
from .models import Credential, Subscription

logger = logging.getLogger(__name__)

ANONYMOUS_USER_PATH = "/api/v1/users/anonymous"
REFRESH_PATH = "/api/v1/auth/refresh"


class PaanjClient:
    """Core client for the Paanj platform."""

    def __init__(
        self,
        options: Optional[ClientOptions] = None,
        *,
        connector: Optional[Connector] = None,
        http_session: Optional[Any] = None,
        **overrides: Any,
    ) -> None:
        """Create the client and its HTTP and websocket channels.

        Args:
            options: Base options.  Keyword ``overrides`` (``api_key``,
                ``api_url``, ``ws_url``, ...) are applied on top.
            connector: Optional websocket connection factory.
            http_session: Optional ``aiohttp.ClientSession`` to reuse.

        Raises:
            ConfigurationError: if no API key is given or an option is invalid.
        """
        self.options = ClientOptions.build(options, **overrides)
        self.api_key = self.options.api_key
        self._credential: Optional[Credential] = None
        self._ws_client = WebSocketClient(
            self.options.ws_url,
            auto_reconnect=self.options.auto_reconnect,
            reconnect_interval=self.options.reconnect_interval,
            max_reconnect_attempts=self.options.max_reconnect_attempts,
            backoff_base=self.options.backoff_base,
            backoff_max=self.options.backoff_max,
            jitter=self.options.jitter,
            connector=connector,
        )
        self._http_client = HttpClient(self.api_key, self.options.api_url, session=http_session)
        self._http_client.set_refresh_callback(self.refresh_access_token)

    async def __aenter__(self) -> "PaanjClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def authenticate_anonymous(
        self, profile: Mapping[str, Any], private: Optional[Mapping[str, Any]] = None
    ) -> Credential:
        """Create an anonymous user and adopt its credential.

        ``private`` is forwarded to the backend for its webhooks only; the
        SDK neither stores nor logs it.
        """
        body: dict = {"user": dict(profile)}
        if private is not None:
            body["private"] = dict(private)
        response = await self._http_client.request("POST", ANONYMOUS_USER_PATH, body, skip_auth=True)
        credential = Credential.from_payload(response)
        self._set_session(credential)
        logger.info("Authenticated anonymous user %s", credential.user_id)
        self._ws_client.emit("user.created", credential.as_event())
        return credential

    async def authenticate_with_token(
        self, access_token: str, user_id: Optional[str], refresh_token: str
    ) -> None:
        """Adopt an externally obtained credential without a network call.

        Raises:
            InvalidArgumentError: if ``refresh_token`` is empty.  No state
                is changed in that case.
        """
        if not refresh_token:
            raise InvalidArgumentError("Refresh token is required for token refresh functionality")
        if not access_token:
            raise InvalidArgumentError("Access token is required")
        previous_user = self._credential.user_id if self._credential else None
        credential = Credential(
            access_token=access_token,
            refresh_token=refresh_token,
            user_id=user_id or previous_user,
        )
        self._set_session(credential)
        self._ws_client.emit("token.updated", credential.as_event())

    async def refresh_access_token(self) -> Credential:
        """Exchange the refresh token for a new credential.

        Raises:
            NotAuthenticatedError: if no refresh token is held.
            HttpError: if the refresh endpoint rejects the request.
        """
        if self._credential is None or not self._credential.refresh_token:
            raise NotAuthenticatedError(
                "No refresh token available. Call authenticate_anonymous() or authenticate_with_token() first."
            )
        response = await self._http_client.request(
            "POST",
            REFRESH_PATH,
            {"refreshToken": self._credential.refresh_token},
            skip_auth=True,
        )
        credential = Credential.from_payload(response, user_id=self._credential.user_id)
        self._set_session(credential)
        logger.info("Access token refreshed")
        self._ws_client.emit("token.updated", credential.as_event())
        return credential

    def _set_session(self, credential: Credential) -> None:
        self._credential = credential
        self._http_client.set_access_token(credential.access_token)
        self._ws_client.set_access_token(credential.access_token)

    async def connect(self) -> None:
        if not self.is_authenticated():
            raise NotAuthenticatedError(
                "Not authenticated. Call authenticate_anonymous() or authenticate_with_token() first."
            )
        await self._ws_client.connect()

    async def disconnect(self) -> None:
        await self._ws_client.disconnect()

    async def close(self) -> None:
        """Disconnect the websocket and release the HTTP session."""
        await self._ws_client.disconnect()
        await self._http_client.close()

    def is_connected(self) -> bool:
        return self._ws_client.is_connected()

    def is_authenticated(self) -> bool:
        return self._credential is not None and bool(self._credential.access_token)

    def get_user_id(self) -> Optional[str]:
        return self._credential.user_id if self._credential else None

    def get_refresh_token(self) -> Optional[str]:
        return self._credential.refresh_token if self._credential else None

    # Feature package hooks

    @property
    def websocket(self) -> WebSocketClient:
        return self._ws_client

    @property
    def http(self) -> HttpClient:
        return self._http_client

    async def subscribe(self, subscription: Subscription) -> None:
        await self._ws_client.subscribe(subscription)

    async def send_websocket_message(self, data: Any) -> None:
        await self._ws_client.send(data)

    def on(self, event: str, callback: Listener) -> Unsubscribe:
        """Register a listener for websocket or authentication events.

        Works for resource events (``"message.create"`` or
        ``"thread:t1:message.create"``), ``reconnecting``, ``error`` and
        the lifecycle events ``user.created`` and ``token.updated``.
        """
        return self._ws_client.on(event, callback)
