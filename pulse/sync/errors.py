"""Failure types surfaced by the sync module.

Every failure a user should see goes through one ``on_error`` callback;
reads that fail are only logged and leave an empty list behind.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """Base class for sync module failures."""


class ConfigurationError(SyncError):
    """Missing client or storage configuration."""


class ValidationError(SyncError):
    """Input rejected before any network call was made."""


class DirectMessageBlocked(ValidationError):
    """The recipient's message policy does not allow this sender."""


class BackendError(SyncError):
    def __init__(self, message: str, *, status_code: int | None = None, detail: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class BackendReadError(BackendError):
    """A list or lookup request failed."""


class BackendWriteError(BackendError):
    """An insert, update, delete or upload was rejected."""


class LoginRequired(SyncError):
    """No valid session; the visitor belongs on the login page."""

    def __init__(self, redirect_to: str = "/auth/login", message: str = "Login required") -> None:
        super().__init__(message)
        self.redirect_to = redirect_to


ErrorHandler = Callable[[SyncError], None]


def report(on_error: Optional[ErrorHandler], error: SyncError) -> None:
    """Deliver ``error`` to the error channel, or log it when nobody listens."""

    if on_error is None:
        logger.error("Unhandled sync error: %s", error)
        return
    on_error(error)


__all__ = [
    "SyncError",
    "ConfigurationError",
    "ValidationError",
    "DirectMessageBlocked",
    "BackendError",
    "BackendReadError",
    "BackendWriteError",
    "LoginRequired",
    "ErrorHandler",
    "report",
]
