"""
Client configuration.

Options mirror the constructor arguments accepted by :class:`PaanjClient`.
Durations are expressed in milliseconds.  ``ClientOptions.from_env`` reads
the same settings from ``PAANJ_*`` environment variables so that scripts
and services can be configured without code changes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, Optional

from .errors import ConfigurationError


DEFAULT_API_URL = "http://localhost:3000"
DEFAULT_WS_URL = "ws://localhost:8090"

_TRUTHY = {"true", "1", "yes"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in _TRUTHY


def _env_number(name: str, default: Any, cast: type) -> Any:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return cast(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc


@dataclass
class ClientOptions:
    """Settings for the request and streaming channels.

    Only ``api_key`` is required.  ``backoff_base`` of 0 disables exponential
    growth and the fixed ``reconnect_interval`` is used instead.
    """

    api_key: str
    api_url: str = DEFAULT_API_URL
    ws_url: str = DEFAULT_WS_URL
    auto_reconnect: bool = True
    reconnect_interval: int = 5000
    max_reconnect_attempts: int = 10
    backoff_base: float = 0
    backoff_max: float = 30000
    jitter: bool = True

    def validate(self) -> "ClientOptions":
        """Check option values and return ``self``.

        Raises:
            ConfigurationError: if the API key is missing or a numeric
                option is out of range.
        """
        if not self.api_key:
            raise ConfigurationError("API Key is required")
        if not isinstance(self.reconnect_interval, int) or self.reconnect_interval <= 0:
            raise ConfigurationError("reconnect_interval must be a positive integer (ms)")
        if not isinstance(self.max_reconnect_attempts, int) or self.max_reconnect_attempts < 0:
            raise ConfigurationError("max_reconnect_attempts must be a non-negative integer")
        if self.backoff_base < 0:
            raise ConfigurationError("backoff_base must be non-negative")
        if self.backoff_max < 0:
            raise ConfigurationError("backoff_max must be non-negative")
        self.api_url = self.api_url.rstrip("/")
        self.ws_url = self.ws_url.rstrip("/")
        return self

    @classmethod
    def from_env(cls, api_key: Optional[str] = None, **overrides: Any) -> "ClientOptions":
        """Load options from ``PAANJ_*`` environment variables.

        Explicit keyword arguments win over the environment.
        """
        values = {
            "api_key": api_key or os.getenv("PAANJ_API_KEY", ""),
            "api_url": os.getenv("PAANJ_API_URL", DEFAULT_API_URL),
            "ws_url": os.getenv("PAANJ_WS_URL", DEFAULT_WS_URL),
            "auto_reconnect": _env_bool("PAANJ_AUTO_RECONNECT", True),
            "reconnect_interval": _env_number("PAANJ_RECONNECT_INTERVAL", 5000, int),
            "max_reconnect_attempts": _env_number("PAANJ_MAX_RECONNECT_ATTEMPTS", 10, int),
            "backoff_base": _env_number("PAANJ_BACKOFF_BASE", 0, float),
            "backoff_max": _env_number("PAANJ_BACKOFF_MAX", 30000, float),
            "jitter": _env_bool("PAANJ_JITTER", True),
        }
        values.update(overrides)
        return cls(**values).validate()

    @classmethod
    def build(cls, options: Optional["ClientOptions"] = None, **overrides: Any) -> "ClientOptions":
        """Merge an optional base ``options`` with keyword overrides and validate."""
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(f"Unknown client option(s): {', '.join(sorted(unknown))}")
        if options is None:
            if not overrides.get("api_key"):
                raise ConfigurationError("API Key is required")
            return cls(**overrides).validate()
        values = {f.name: getattr(options, f.name) for f in fields(cls)}
        values.update(overrides)
        return cls(**values).validate()
