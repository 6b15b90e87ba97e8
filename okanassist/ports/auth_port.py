"""Auth port — abstract interface for the external auth provider.

The session store depends on this protocol, never on a specific provider.
Implementations raise AuthError subclasses on failure.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Protocol

from okanassist.data.models import AuthCredentials


class AuthEvent(Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"
    USER_UPDATED = "USER_UPDATED"


AuthStateCallback = Callable[[AuthEvent, "AuthCredentials | None"], None]


class AuthProvider(Protocol):
    """Abstract auth interface used by the session store."""

    async def sign_in_with_password(
        self, email: str, password: str
    ) -> AuthCredentials: ...

    async def sign_in_with_oauth(self, provider: str) -> AuthCredentials: ...

    async def sign_up_with_email(
        self, email: str, password: str, metadata: dict | None = None
    ) -> AuthCredentials | None:
        """Credentials when the account is usable at once, None while the
        confirmation email is pending."""
        ...

    async def reset_password(self, email: str) -> None: ...

    async def update_password(self, access_token: str, new_password: str) -> None: ...

    async def verify_otp(
        self, email: str, token: str, otp_type: str = "recovery"
    ) -> AuthCredentials: ...

    async def handle_password_reset_link(self, url: str) -> AuthCredentials: ...

    async def sign_out(self, access_token: str) -> None: ...

    async def get_current_session(
        self, credentials: AuthCredentials | None = None
    ) -> AuthCredentials | None: ...

    async def refresh_session(self, refresh_token: str) -> AuthCredentials: ...

    def on_auth_state_change(
        self, callback: AuthStateCallback
    ) -> Callable[[], None]: ...
