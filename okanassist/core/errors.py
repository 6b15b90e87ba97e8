"""
OkanAssist — Error taxonomy and tagged results.

Adapters raise the exceptions below; the gateway and the session store
catch them at the boundary and hand callers a Result instead. Nothing in
core raises for an expected failure mode; only contract violations (e.g.
an empty cache key) raise.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(Enum):
    UNAUTHENTICATED = "unauthenticated"
    INVALID_CREDENTIALS = "invalid_credentials"
    USER_CANCELLED = "user_cancelled"
    PROVIDER_ERROR = "provider_error"
    NOT_FOUND = "not_found"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    VALIDATION_ERROR = "validation_error"


@dataclass(frozen=True)
class ApiError:
    kind: ErrorKind
    message: str = ""

    @property
    def is_transient(self) -> bool:
        """Network-level failures; worth a manual retry (pull-to-refresh)."""
        return self.kind in (ErrorKind.NETWORK_ERROR, ErrorKind.TIMEOUT)


@dataclass
class Result(Generic[T]):
    """Tagged outcome of a gateway, cache, session or mutation call.

    On failure `data` may still hold the last good (stale) value so the UI
    can keep showing it next to the error.
    """

    success: bool
    data: T | None = None
    error: ApiError | None = None
    from_cache: bool = False

    @classmethod
    def ok(cls, data: T | None = None, from_cache: bool = False) -> Result[T]:
        return cls(success=True, data=data, from_cache=from_cache)

    @classmethod
    def fail(
        cls, kind: ErrorKind, message: str = "", data: T | None = None,
    ) -> Result[T]:
        return cls(success=False, data=data, error=ApiError(kind, message))

    @property
    def cancelled(self) -> bool:
        """True when the user backed out of a sign-in. Not an error to show."""
        return self.error is not None and self.error.kind is ErrorKind.USER_CANCELLED


# ---------------------------------------------------------------------------
# Adapter exceptions
# ---------------------------------------------------------------------------


class BackendError(Exception):
    """Raised when any backend operation fails."""

    kind = ErrorKind.NETWORK_ERROR


class NotFoundError(BackendError):
    """Row does not exist or belongs to another user."""

    kind = ErrorKind.NOT_FOUND


class AuthRejectedError(BackendError):
    """Backend refused the access token (expired or revoked)."""

    kind = ErrorKind.UNAUTHENTICATED


class NetworkError(BackendError):
    kind = ErrorKind.NETWORK_ERROR


class RequestTimeoutError(BackendError):
    kind = ErrorKind.TIMEOUT


class RejectedInputError(BackendError):
    """Backend refused the payload (HTTP 400/422)."""

    kind = ErrorKind.VALIDATION_ERROR


class AuthError(Exception):
    """Raised when the auth provider fails."""

    kind = ErrorKind.PROVIDER_ERROR


class InvalidCredentialsError(AuthError):
    kind = ErrorKind.INVALID_CREDENTIALS


class OAuthCancelledError(AuthError):
    kind = ErrorKind.USER_CANCELLED


class ProviderError(AuthError):
    kind = ErrorKind.PROVIDER_ERROR


class AuthNetworkError(AuthError):
    kind = ErrorKind.NETWORK_ERROR
