"""
Listener registry shared by the streaming channel and the session.

Listeners are stored per event key.  A key is either a bare event name
(``"message.create"``) or a resource-scoped key
(``"thread:t1:message.create"``).  Registration returns an unsubscribe
callable that removes exactly that registration; calling it again is a
no-op.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]
Unsubscribe = Callable[[], None]


class _Registration:
    __slots__ = ("callback",)

    def __init__(self, callback: Listener) -> None:
        self.callback = callback


class ListenerRegistry:
    """Map of event key to registered callbacks."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[_Registration]] = {}

    def on(self, key: str, callback: Listener) -> Unsubscribe:
        """Register ``callback`` under ``key`` and return its unsubscribe handle."""
        registration = _Registration(callback)
        self._listeners.setdefault(key, []).append(registration)

        def unsubscribe() -> None:
            entries = self._listeners.get(key)
            if not entries:
                return
            for index, entry in enumerate(entries):
                if entry is registration:
                    del entries[index]
                    break
            if not entries:
                self._listeners.pop(key, None)

        return unsubscribe

    def emit(self, key: str, data: Any) -> None:
        """Invoke every listener registered under ``key`` with ``data``.

        Listeners run synchronously in registration order.  A listener
        that raises is logged and the remaining listeners still run.
        """
        entries = self._listeners.get(key)
        if not entries:
            return
        for entry in list(entries):
            try:
                entry.callback(data)
            except Exception:
                logger.exception("Error in event handler for %s", key)

    def listener_count(self, key: str) -> int:
        return len(self._listeners.get(key, ()))
