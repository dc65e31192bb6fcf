"""Typed errors surfaced by the sync pipeline."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for failures that abort a sync run.

    ``message`` is actionable and safe to show to the end user;
    ``status_code`` is what the HTTP layer answers with.
    """

    status_code = 500

    def __init__(self, message: str, *, source: str | None = None):
        super().__init__(message)
        self.message = message
        self.source = source


class NotConfiguredError(SyncError):
    """Credentials for a source are missing; nothing was attempted."""

    status_code = 400


class ReconnectRequiredError(SyncError):
    """The stored OAuth grant was rejected and has been cleared."""

    status_code = 401


class UpstreamUnavailableError(SyncError):
    """The primary collection call of a source failed."""

    status_code = 502


class SourceFetchError(Exception):
    """Raised by an adapter when its primary payload cannot be fetched or parsed."""


class TokenExchangeError(Exception):
    """Raised when the OAuth token endpoint rejects an exchange."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
