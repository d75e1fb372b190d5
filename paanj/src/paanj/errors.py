"""
Exception hierarchy for the Paanj client core.

Every error raised by the SDK derives from :class:`PaanjError` so callers
can catch the whole family at once.  Transport failures on the streaming
channel are not wrapped; they are delivered verbatim through the
``error`` event.
"""

from __future__ import annotations


class PaanjError(Exception):
    """Base class for all SDK errors."""


class ConfigurationError(PaanjError):
    """Raised at construction time when the client options are invalid."""


class NotAuthenticatedError(PaanjError):
    """An operation needing a credential was called before authentication."""


class InvalidArgumentError(PaanjError, ValueError):
    """A call received an argument it cannot work with."""


class NotConnectedError(PaanjError):
    """A send or subscribe was attempted while the stream is not open."""


class HttpError(PaanjError):
    """Non-success response from a one-shot request."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message

    def __repr__(self) -> str:
        return f"HttpError(status={self.status}, message={self.message!r})"
