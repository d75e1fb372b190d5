"""
Transport clients used by :class:`paanj.PaanjClient`.

This package provides the HTTP request channel with automatic token
refresh and the websocket streaming channel with reconnection.  Feature
packages may use them directly through ``PaanjClient.http`` and
``PaanjClient.websocket``.
"""

from .http_client import HttpClient  # noqa: F401
from .ws_client import WebSocketClient  # noqa: F401
