"""
Paanj client core.

Authentication, token refresh and a resilient websocket connection for
the Paanj platform.  Higher-level feature packages (chat, presence) build
on :class:`PaanjClient` and the transport clients it exposes.
"""

from .client import PaanjClient  # noqa: F401
from .clients import HttpClient, WebSocketClient  # noqa: F401
from .config import ClientOptions  # noqa: F401
from .errors import (  # noqa: F401
    ConfigurationError,
    HttpError,
    InvalidArgumentError,
    NotAuthenticatedError,
    NotConnectedError,
    PaanjError,
)
from .listeners import Unsubscribe  # noqa: F401
from .models import (  # noqa: F401
    AuthResponse,
    ConnectionState,
    Credential,
    EventMessage,
    SubscribedMessage,
    Subscription,
    subscription,
)

__version__ = "1.0.0"
