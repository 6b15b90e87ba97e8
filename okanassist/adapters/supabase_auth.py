"""Supabase Auth (GoTrue) adapter — implements AuthProvider over httpx.

Password sign-in and refresh use the token endpoint; OAuth opens the
provider's authorize URL in an injected browser callable and reads the
tokens back from the redirect URL (query string or fragment). Sign-up,
password recovery (`/recover`, `/verify`, the reset deep link) and password
changes (`PUT /user`) go through the same plumbing.

The browser callable stands in for the platform's in-app browser:

    async def browser(authorize_url: str, redirect_uri: str) -> BrowserResult

A result of type "cancel" or "dismiss" means the user closed the browser.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable
from urllib.parse import parse_qs, urlencode, urlsplit

import httpx

from okanassist.core.errors import (
    AuthNetworkError,
    InvalidCredentialsError,
    OAuthCancelledError,
    ProviderError,
)
from okanassist.data.models import AuthCredentials
from okanassist.ports.auth_port import AuthEvent, AuthStateCallback

logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS = 20
# Refresh a stored token this many seconds before it actually expires
_EXPIRY_MARGIN_SECONDS = 60


@dataclass
class BrowserResult:
    """What the in-app browser returned: `type` is success, cancel or dismiss."""

    type: str
    url: str | None = None


BrowserOpener = Callable[[str, str], Awaitable[BrowserResult]]


def parse_callback_url(url: str) -> dict[str, str]:
    """Collect parameters from both the query string and the fragment."""
    parts = urlsplit(url)
    params: dict[str, str] = {}
    for chunk in (parts.query, parts.fragment):
        for key, values in parse_qs(chunk).items():
            if values:
                params.setdefault(key, values[0])
    return params


class SupabaseAuth:
    """AuthProvider backed by a Supabase project's GoTrue endpoints."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        redirect_uri: str = "okanassist://auth/callback",
        timeout: float = _TIMEOUT_SECONDS,
        browser: BrowserOpener | None = None,
        reset_redirect_uri: str = "okanassist://reset-password",
    ) -> None:
        self._auth_url = f"{url.rstrip('/')}/auth/v1"
        self._anon_key = anon_key
        self._redirect_uri = redirect_uri
        self._reset_redirect_uri = reset_redirect_uri
        self._timeout = timeout
        self._browser = browser
        self._callbacks: list[AuthStateCallback] = []

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {"apikey": self._anon_key}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def _post(
        self,
        path: str,
        *,
        params: dict | None = None,
        json: dict | None = None,
        access_token: str | None = None,
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.post(
                    f"{self._auth_url}{path}",
                    params=params,
                    json=json,
                    headers=self._headers(access_token),
                )
        except httpx.HTTPError as exc:
            logger.error("Auth request %s failed: %s", path, exc)
            raise AuthNetworkError(f"Could not reach auth server: {exc}") from exc

    async def _put_user(self, access_token: str, json: dict) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.put(
                    f"{self._auth_url}/user", json=json, headers=self._headers(access_token),
                )
        except httpx.HTTPError as exc:
            logger.error("Auth user update failed: %s", exc)
            raise AuthNetworkError(f"Could not reach auth server: {exc}") from exc

    async def _get_user(self, access_token: str) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.get(
                    f"{self._auth_url}/user", headers=self._headers(access_token),
                )
        except httpx.HTTPError as exc:
            logger.error("Auth user lookup failed: %s", exc)
            raise AuthNetworkError(f"Could not reach auth server: {exc}") from exc

    @staticmethod
    def _raise_for_status(resp: httpx.Response, context: str) -> None:
        if resp.status_code < 400:
            return
        try:
            body = resp.json()
        except ValueError:
            body = {}
        message = (
            body.get("error_description")
            or body.get("msg")
            or body.get("message")
            or f"HTTP {resp.status_code}"
        ) if isinstance(body, dict) else f"HTTP {resp.status_code}"

        # 422: GoTrue's answer for weak passwords and already-registered emails
        if resp.status_code in (400, 401, 403, 422):
            raise InvalidCredentialsError(message)
        logger.error("%s failed with HTTP %d", context, resp.status_code)
        raise ProviderError(f"{context} failed: {message}")

    @staticmethod
    def _credentials_from_token(data: dict) -> AuthCredentials:
        user = data.get("user") or {}
        if not data.get("access_token") or not user.get("id"):
            raise ProviderError("Auth response is missing the session")
        expires_at = data.get("expires_at")
        if expires_at is None and data.get("expires_in"):
            expires_at = int(time.time()) + int(data["expires_in"])
        return AuthCredentials(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=int(expires_at) if expires_at is not None else None,
            user_id=user["id"],
            email=user.get("email") or "",
            user_metadata=user.get("user_metadata") or {},
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_auth_state_change(self, callback: AuthStateCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def _emit(self, event: AuthEvent, creds: AuthCredentials | None) -> None:
        for callback in list(self._callbacks):
            try:
                callback(event, creds)
            except Exception:
                logger.exception("Auth state callback failed on %s", event.value)

    # ------------------------------------------------------------------
    # AuthProvider
    # ------------------------------------------------------------------

    async def sign_in_with_password(self, email: str, password: str) -> AuthCredentials:
        resp = await self._post(
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        self._raise_for_status(resp, "Password sign-in")
        creds = self._credentials_from_token(resp.json())
        logger.info("Password sign-in accepted for user %s", creds.user_id)
        return creds

    async def sign_in_with_oauth(self, provider: str) -> AuthCredentials:
        if self._browser is None:
            raise ProviderError("OAuth sign-in needs a browser")

        query = urlencode({"provider": provider, "redirect_to": self._redirect_uri})
        result = await self._browser(f"{self._auth_url}/authorize?{query}", self._redirect_uri)

        if result.type in ("cancel", "dismiss"):
            raise OAuthCancelledError("User cancelled")
        if result.type != "success" or not result.url:
            raise ProviderError(f"OAuth with {provider} ended with '{result.type}'")
        return await self._complete_oauth(result.url)

    async def process_oauth_callback(self, url: str) -> AuthCredentials:
        """Handle a deep link that arrives outside an active OAuth flow.

        Subscribers get a SIGNED_IN event with the new credentials.
        """
        creds = await self._complete_oauth(url)
        self._emit(AuthEvent.SIGNED_IN, creds)
        return creds

    async def _complete_oauth(self, url: str) -> AuthCredentials:
        creds = await self._credentials_from_callback(parse_callback_url(url), "OAuth")
        logger.info("OAuth sign-in completed for user %s", creds.user_id)
        return creds

    async def _credentials_from_callback(
        self, params: dict[str, str], context: str,
    ) -> AuthCredentials:
        """Tokens from a redirect URL, completed with a /user lookup."""
        if "error" in params:
            raise ProviderError(params.get("error_description") or params["error"])

        access_token = params.get("access_token")
        if not access_token:
            raise ProviderError(f"No access token in {context} callback")

        resp = await self._get_user(access_token)
        self._raise_for_status(resp, f"{context} user lookup")
        return self._credentials_from_token({
            "access_token": access_token,
            "refresh_token": params.get("refresh_token"),
            "expires_at": params.get("expires_at"),
            "expires_in": params.get("expires_in"),
            "user": resp.json(),
        })

    # ------------------------------------------------------------------
    # Sign-up and password recovery
    # ------------------------------------------------------------------

    async def sign_up_with_email(
        self, email: str, password: str, metadata: dict | None = None,
    ) -> AuthCredentials | None:
        """Create an account.

        Returns None when the project requires email confirmation: GoTrue
        then answers with the bare user and no session.
        """
        resp = await self._post(
            "/signup",
            json={"email": email, "password": password, "data": metadata or {}},
        )
        self._raise_for_status(resp, "Sign-up")
        data = resp.json()
        if not data.get("access_token"):
            logger.info("Sign-up accepted; confirmation email sent")
            return None
        creds = self._credentials_from_token(data)
        logger.info("Sign-up completed for user %s", creds.user_id)
        return creds

    async def reset_password(self, email: str) -> None:
        resp = await self._post(
            "/recover",
            params={"redirect_to": self._reset_redirect_uri},
            json={"email": email},
        )
        self._raise_for_status(resp, "Password reset")
        logger.info("Password reset email requested")

    async def update_password(self, access_token: str, new_password: str) -> None:
        resp = await self._put_user(access_token, {"password": new_password})
        self._raise_for_status(resp, "Password update")
        logger.info("Password updated")
        self._emit(AuthEvent.USER_UPDATED, None)

    async def verify_otp(
        self, email: str, token: str, otp_type: str = "recovery",
    ) -> AuthCredentials:
        resp = await self._post(
            "/verify", json={"email": email, "token": token, "type": otp_type},
        )
        self._raise_for_status(resp, "OTP verification")
        creds = self._credentials_from_token(resp.json())
        logger.info("OTP (%s) verified for user %s", otp_type, creds.user_id)
        return creds

    async def handle_password_reset_link(self, url: str) -> AuthCredentials:
        """Open a session from the link in the password reset email.

        No event is emitted: the caller applies the returned credentials.
        """
        params = parse_callback_url(url)
        if "error" not in params and params.get("type") != "recovery":
            raise ProviderError("Invalid reset link type")
        creds = await self._credentials_from_callback(params, "Password reset")
        logger.info("Password recovery session opened for user %s", creds.user_id)
        return creds

    async def sign_out(self, access_token: str) -> None:
        resp = await self._post("/logout", access_token=access_token)
        # Already-expired tokens are as good as signed out
        if resp.status_code in (401, 403):
            return
        self._raise_for_status(resp, "Sign-out")

    async def refresh_session(self, refresh_token: str) -> AuthCredentials:
        resp = await self._post(
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        self._raise_for_status(resp, "Token refresh")
        creds = self._credentials_from_token(resp.json())
        self._emit(AuthEvent.TOKEN_REFRESHED, creds)
        return creds

    async def get_current_session(
        self, credentials: AuthCredentials | None = None,
    ) -> AuthCredentials | None:
        """Validate stored credentials, refreshing them when expired.

        Returns None when there is nothing to restore or the provider no
        longer accepts the tokens.
        """
        if credentials is None:
            return None

        expired = (
            credentials.expires_at is not None
            and credentials.expires_at - _EXPIRY_MARGIN_SECONDS <= time.time()
        )
        if not expired:
            resp = await self._get_user(credentials.access_token)
            if resp.status_code < 400:
                user = resp.json()
                credentials.email = user.get("email") or credentials.email
                credentials.user_metadata = user.get("user_metadata") or credentials.user_metadata
                return credentials
            if resp.status_code not in (401, 403):
                self._raise_for_status(resp, "Session check")

        if not credentials.refresh_token:
            return None
        try:
            return await self.refresh_session(credentials.refresh_token)
        except InvalidCredentialsError:
            logger.info("Stored refresh token rejected")
            return None
