"""Credential, subscription and wire message definitions.

Wire messages are described with :class:`typing.TypedDict` so that they
stay plain dictionaries on the wire while still documenting the keys the
backend sends.  The credential is a frozen dataclass: a refresh replaces
it rather than mutating it.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Mapping, Optional, TypedDict


class ConnectionState(enum.Enum):
    """Lifecycle of the streaming connection."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED_RETRYABLE = "closed_retryable"
    CLOSED_TERMINAL = "closed_terminal"


@dataclass(frozen=True)
class Credential:
    """Access/refresh token pair plus the subject it was issued for."""

    access_token: str
    refresh_token: str
    expires_in: Optional[int] = None
    user_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, user_id: Optional[str] = None) -> "Credential":
        """Build a credential from a backend auth response.

        ``user_id`` is used when the payload does not carry one, which is
        the case for refresh responses.

        Raises:
            ValueError: if either token is missing from the payload.
        """
        access_token = payload.get("accessToken")
        refresh_token = payload.get("refreshToken")
        if not access_token or not refresh_token:
            raise ValueError("auth response is missing accessToken or refreshToken")
        expires_in = payload.get("expiresIn")
        return cls(
            access_token=str(access_token),
            refresh_token=str(refresh_token),
            expires_in=int(expires_in) if expires_in is not None else None,
            user_id=payload.get("userId") or user_id,
        )

    def as_event(self) -> Dict[str, Optional[str]]:
        """Payload of the ``user.created`` and ``token.updated`` events."""
        return {
            "userId": self.user_id,
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
        }


# Name used by feature packages for the auth response.
AuthResponse = Credential


class _SubscriptionBase(TypedDict):
    type: Literal["subscribe", "unsubscribe"]
    resource: str
    events: List[str]


class Subscription(_SubscriptionBase, total=False):
    """Outbound subscription request."""

    id: str


class SubscribedMessage(TypedDict, total=False):
    """Server acknowledgement of a subscription."""

    type: Literal["subscribed"]
    resource: str
    id: str
    events: List[str]


class EventMessage(TypedDict):
    """Resource event pushed by the server."""

    type: Literal["event"]
    event: str
    resource: str
    resourceId: str
    data: Any


def subscription(
    resource: str,
    events: List[str],
    resource_id: Optional[str] = None,
    *,
    unsubscribe: bool = False,
) -> Subscription:
    """Build a subscribe (or unsubscribe) request for ``resource``."""
    msg: Subscription = {
        "type": "unsubscribe" if unsubscribe else "subscribe",
        "resource": resource,
        "events": list(events),
    }
    if resource_id is not None:
        msg["id"] = resource_id
    return msg


def event_key(resource: str, resource_id: str, event: str) -> str:
    """Composite listener key for a resource-scoped event."""
    return f"{resource}:{resource_id}:{event}"
