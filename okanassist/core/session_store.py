"""
OkanAssist — Session Store.

Single source of truth for "who is logged in". Transitions are driven by
the auth provider (sign-in, sign-out, token refresh) and by `restore()` at
cold start:

    UNAUTHENTICATED --sign in-->        AUTHENTICATED
    AUTHENTICATED   --sign out-->       UNAUTHENTICATED
    AUTHENTICATED   --token refresh-->  AUTHENTICATED
    AUTHENTICATING  --restore-->        AUTHENTICATED | UNAUTHENTICATED

Every transition notifies subscribers synchronously, so the cache is
already empty by the time anything else observes a sign-out.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from enum import Enum
from typing import TYPE_CHECKING, Callable

from okanassist.core.errors import AuthError, BackendError, ErrorKind, Result
from okanassist.data.local_store import SESSION_KEY, USER_DATA_KEY
from okanassist.data.models import AuthCredentials, Session, UserSettings
from okanassist.ports.auth_port import AuthEvent

if TYPE_CHECKING:
    from okanassist.data.local_store import LocalStore
    from okanassist.ports.auth_port import AuthProvider
    from okanassist.ports.backend_port import BackendPort

logger = logging.getLogger(__name__)

SessionListener = Callable[[AuthEvent, "Session | None"], None]


class SessionState(Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


def _display_name(creds: AuthCredentials) -> str:
    meta = creds.user_metadata or {}
    return (
        meta.get("full_name")
        or meta.get("name")
        or meta.get("display_name")
        or (creds.email.split("@")[0] if creds.email else "")
    )


MIN_PASSWORD_LENGTH = 6


def _password_problem(password: str) -> str | None:
    if not password:
        return "Password is required"
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    return None


def _credentials_to_blob(creds: AuthCredentials) -> dict:
    return asdict(creds)


def _credentials_from_blob(blob: dict) -> AuthCredentials | None:
    try:
        return AuthCredentials(
            access_token=blob["access_token"],
            user_id=blob["user_id"],
            email=blob.get("email", ""),
            refresh_token=blob.get("refresh_token"),
            expires_at=blob.get("expires_at"),
            user_metadata=blob.get("user_metadata") or {},
        )
    except (KeyError, TypeError):
        logger.warning("Stored session blob is malformed; ignoring it")
        return None


class SessionStore:
    """Owns the current Session and its lifecycle."""

    def __init__(
        self,
        auth: AuthProvider,
        local_store: LocalStore,
        backend: BackendPort | None = None,
        defaults: UserSettings | None = None,
    ) -> None:
        self._auth = auth
        self._local = local_store
        self._backend = backend
        self._defaults = defaults or UserSettings()
        self._state = SessionState.UNAUTHENTICATED
        self._session: Session | None = None
        self._credentials: AuthCredentials | None = None
        self._listeners: list[SessionListener] = []
        self._pending_events: set[asyncio.Task] = set()
        self._recovering = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    def current_session(self) -> Session | None:
        return self._session

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None and self._session.is_authenticated

    @property
    def in_password_recovery(self) -> bool:
        """Signed in through a reset link; the next step is a new password."""
        return self._recovering

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register `listener`; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: AuthEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, self._session)
            except Exception:
                logger.exception("Session listener failed on %s", event.value)

    # ------------------------------------------------------------------
    # Cold start
    # ------------------------------------------------------------------

    async def restore(self) -> Session | None:
        """Try to resume the persisted session. Resolves AUTHENTICATING."""
        self._state = SessionState.AUTHENTICATING
        blob = self._local.get_json(SESSION_KEY)
        stored = _credentials_from_blob(blob) if isinstance(blob, dict) else None

        creds: AuthCredentials | None = None
        try:
            creds = await self._auth.get_current_session(stored)
        except AuthError as exc:
            logger.warning("Session restore failed: %s", exc)

        if creds is None:
            logger.info("No session to restore")
            self._sign_out_locally()
            return None

        session = await self._establish(creds)
        logger.info("Session restored for %s", session.email or session.user_id)
        return session

    # ------------------------------------------------------------------
    # Sign-in / sign-out
    # ------------------------------------------------------------------

    async def sign_in_with_password(self, email: str, password: str) -> Result[Session]:
        if not email or not email.strip() or not password:
            return Result.fail(ErrorKind.VALIDATION_ERROR, "Email and password are required")
        try:
            creds = await self._auth.sign_in_with_password(email.strip(), password)
        except AuthError as exc:
            logger.warning("Password sign-in failed (%s)", exc.kind.value)
            return Result.fail(exc.kind, str(exc))
        return Result.ok(await self._establish(creds))

    async def sign_in_with_oauth(self, provider: str) -> Result[Session]:
        """OAuth sign-in. Check `result.cancelled` before showing an error."""
        try:
            creds = await self._auth.sign_in_with_oauth(provider)
        except AuthError as exc:
            if exc.kind is ErrorKind.USER_CANCELLED:
                logger.info("OAuth sign-in with %s cancelled by user", provider)
            else:
                logger.warning("OAuth sign-in with %s failed: %s", provider, exc)
            return Result.fail(exc.kind, str(exc))
        return Result.ok(await self._establish(creds))

    async def sign_out(self) -> Result[None]:
        """Sign out locally, then tell the provider.

        Local sign-out always happens. A provider failure is reported in the
        result but does not bring the session back.
        """
        token = self._session.access_token if self._session else None
        self._sign_out_locally()

        if token:
            try:
                await self._auth.sign_out(token)
            except AuthError as exc:
                logger.warning("Remote sign-out failed, local state already cleared: %s", exc)
                return Result.fail(exc.kind, str(exc))
        return Result.ok()

    async def refresh(self) -> Result[Session]:
        """Ask the provider for a fresh access token."""
        creds = self._credentials
        if not self.is_authenticated or creds is None or not creds.refresh_token:
            return Result.fail(ErrorKind.UNAUTHENTICATED, "No session to refresh")
        try:
            refreshed = await self._auth.refresh_session(creds.refresh_token)
        except AuthError as exc:
            if exc.kind is ErrorKind.INVALID_CREDENTIALS:
                logger.warning("Refresh token rejected; signing out")
                self._sign_out_locally()
                return Result.fail(ErrorKind.UNAUTHENTICATED, str(exc))
            return Result.fail(exc.kind, str(exc))
        self._apply_refresh(refreshed)
        return Result.ok(self._session)

    # ------------------------------------------------------------------
    # Registration and password recovery
    # ------------------------------------------------------------------

    async def sign_up(
        self,
        email: str,
        password: str,
        name: str = "",
        currency: str | None = None,
    ) -> Result[Session | None]:
        """Register a new account.

        `data` is the new Session when the provider signs the user in right
        away, None when an email confirmation is pending.
        """
        if not email or not email.strip():
            return Result.fail(ErrorKind.VALIDATION_ERROR, "Email is required")
        problem = _password_problem(password)
        if problem:
            return Result.fail(ErrorKind.VALIDATION_ERROR, problem)

        metadata = {"full_name": name.strip()} if name and name.strip() else {}
        if currency:
            metadata["currency"] = currency
        try:
            creds = await self._auth.sign_up_with_email(email.strip(), password, metadata)
        except AuthError as exc:
            logger.warning("Sign-up failed (%s)", exc.kind.value)
            return Result.fail(exc.kind, str(exc))
        if creds is None:
            logger.info("Sign-up pending email confirmation")
            return Result.ok(None)
        return Result.ok(await self._establish(creds))

    async def reset_password(self, email: str) -> Result[None]:
        """Send the password reset email."""
        if not email or not email.strip():
            return Result.fail(ErrorKind.VALIDATION_ERROR, "Email is required")
        try:
            await self._auth.reset_password(email.strip())
        except AuthError as exc:
            logger.warning("Password reset request failed (%s)", exc.kind.value)
            return Result.fail(exc.kind, str(exc))
        return Result.ok()

    async def update_password(self, new_password: str) -> Result[None]:
        """Set a new password for the signed-in user (ends password recovery)."""
        session = self._session
        if session is None or not session.is_authenticated:
            return Result.fail(ErrorKind.UNAUTHENTICATED, "Please log in")
        problem = _password_problem(new_password)
        if problem:
            return Result.fail(ErrorKind.VALIDATION_ERROR, problem)
        try:
            await self._auth.update_password(session.access_token, new_password)
        except AuthError as exc:
            logger.warning("Password update failed (%s)", exc.kind.value)
            return Result.fail(exc.kind, str(exc))
        self._recovering = False
        return Result.ok()

    async def verify_otp(
        self, email: str, token: str, otp_type: str = "recovery",
    ) -> Result[Session]:
        """Sign in with the one-time code from a recovery or signup email."""
        if not email or not email.strip() or not token or not token.strip():
            return Result.fail(ErrorKind.VALIDATION_ERROR, "Email and code are required")
        try:
            creds = await self._auth.verify_otp(email.strip(), token.strip(), otp_type)
        except AuthError as exc:
            logger.warning("OTP verification failed (%s)", exc.kind.value)
            return Result.fail(exc.kind, str(exc))
        return Result.ok(await self._establish(creds, recovery=otp_type == "recovery"))

    async def handle_password_reset_link(self, url: str) -> Result[Session]:
        """Open the recovery session carried by a reset-email deep link."""
        try:
            creds = await self._auth.handle_password_reset_link(url)
        except AuthError as exc:
            logger.warning("Password reset link rejected: %s", exc)
            return Result.fail(exc.kind, str(exc))
        return Result.ok(await self._establish(creds, recovery=True))

    # ------------------------------------------------------------------
    # Provider event stream
    # ------------------------------------------------------------------

    async def handle_auth_event(
        self, event: AuthEvent, creds: AuthCredentials | None,
    ) -> None:
        """Apply an auth event coming from the provider.

        Events describing a transition this store already made (it called
        the provider itself and applied the answer) are dropped, so each
        transition persists and notifies once.
        """
        if event in (AuthEvent.SIGNED_IN, AuthEvent.PASSWORD_RECOVERY) and creds is not None:
            if self._is_current(creds):
                logger.debug("Ignoring duplicate %s", event.value)
                return
            await self._establish(creds, recovery=event is AuthEvent.PASSWORD_RECOVERY)
        elif event is AuthEvent.SIGNED_OUT:
            if self._state is not SessionState.UNAUTHENTICATED:
                self._sign_out_locally()
        elif event is AuthEvent.TOKEN_REFRESHED and creds is not None:
            if self._session is None:
                # Refresh done on behalf of restore(), which applies it itself.
                logger.debug("Ignoring TOKEN_REFRESHED with no session yet")
            elif self._is_current(creds):
                logger.debug("Ignoring duplicate TOKEN_REFRESHED")
            else:
                self._apply_refresh(creds)
        else:
            logger.info("Ignoring auth event: %s", event.value)

    def listen_to_provider(self) -> Callable[[], None]:
        """Subscribe to the provider's auth stream; returns the unsubscriber."""

        def on_change(event: AuthEvent, creds: AuthCredentials | None) -> None:
            task = asyncio.ensure_future(self.handle_auth_event(event, creds))
            self._pending_events.add(task)
            task.add_done_callback(self._pending_events.discard)

        return self._auth.on_auth_state_change(on_change)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def update_profile(self, profile: UserSettings) -> Result[Session]:
        """Apply edited profile settings to the live session and persist them."""
        session = self._session
        if session is None or not session.is_authenticated:
            return Result.fail(ErrorKind.UNAUTHENTICATED, "Please log in")
        session.display_name = profile.name or session.display_name
        session.currency = profile.currency
        session.language = profile.language
        session.timezone = profile.timezone
        self._local.set_json(USER_DATA_KEY, self._user_data(session))
        logger.info("Profile updated for %s", session.user_id)
        return Result.ok(session)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_current(self, creds: AuthCredentials) -> bool:
        current = self._session
        return (
            current is not None
            and current.user_id == creds.user_id
            and current.access_token == creds.access_token
        )

    async def _establish(self, creds: AuthCredentials, recovery: bool = False) -> Session:
        """Build the session from credentials + profile, persist, notify."""
        session = Session(
            user_id=creds.user_id,
            email=creds.email,
            display_name=_display_name(creds),
            currency=self._defaults.currency,
            language=self._defaults.language,
            timezone=self._defaults.timezone,
            access_token=creds.access_token,
            refresh_token=creds.refresh_token,
        )
        profile = await self._load_profile(session, creds)
        session.display_name = profile.name or session.display_name
        session.currency = profile.currency or self._defaults.currency
        session.language = profile.language or self._defaults.language
        session.timezone = profile.timezone or self._defaults.timezone

        self._local.set_many({
            USER_DATA_KEY: self._user_data(session),
            SESSION_KEY: _credentials_to_blob(creds),
        })
        self._credentials = creds
        self._session = session
        self._state = SessionState.AUTHENTICATED
        self._recovering = recovery
        logger.info("Signed in as %s", session.email or session.user_id)
        self._notify(AuthEvent.SIGNED_IN)
        return session

    async def _load_profile(
        self, session: Session, creds: AuthCredentials,
    ) -> UserSettings:
        """Backend settings if present; otherwise create them from the auth profile."""
        meta = creds.user_metadata or {}
        initial = UserSettings(
            name=session.display_name,
            currency=meta.get("currency") or self._defaults.currency,
            language=(meta.get("locale") or "")[:2] or self._defaults.language,
            timezone=self._defaults.timezone,
        )
        if self._backend is None:
            return self._stored_profile(session.user_id) or initial

        try:
            existing = await self._backend.get_user_settings(session)
            if existing is not None:
                return existing
            logger.info("No settings for %s yet, creating them", session.user_id)
            return await self._backend.update_user_settings(session, initial)
        except BackendError as exc:
            logger.warning("Could not load profile settings: %s", exc)
            return self._stored_profile(session.user_id) or initial

    def _stored_profile(self, user_id: str | None) -> UserSettings | None:
        data = self._local.get_json(USER_DATA_KEY)
        if not isinstance(data, dict) or data.get("user_id") != user_id:
            return None
        return UserSettings(
            name=data.get("display_name", ""),
            currency=data.get("currency") or self._defaults.currency,
            language=data.get("language") or self._defaults.language,
            timezone=data.get("timezone") or self._defaults.timezone,
        )

    @staticmethod
    def _user_data(session: Session) -> dict:
        return {
            "user_id": session.user_id,
            "email": session.email,
            "display_name": session.display_name,
            "currency": session.currency,
            "language": session.language,
            "timezone": session.timezone,
        }

    def _apply_refresh(self, creds: AuthCredentials) -> None:
        session = self._session
        if session is None or session.user_id != creds.user_id:
            logger.warning("Token refresh for a different or absent session ignored")
            return
        session.access_token = creds.access_token
        session.refresh_token = creds.refresh_token or session.refresh_token
        if not creds.refresh_token and self._credentials is not None:
            creds.refresh_token = self._credentials.refresh_token
        self._credentials = creds
        self._local.set_json(SESSION_KEY, _credentials_to_blob(creds))
        logger.info("Access token refreshed for %s", session.user_id)
        self._notify(AuthEvent.TOKEN_REFRESHED)

    def _sign_out_locally(self) -> None:
        self._local.remove(USER_DATA_KEY, SESSION_KEY)
        self._session = None
        self._credentials = None
        self._state = SessionState.UNAUTHENTICATED
        self._recovering = False
        logger.info("Signed out")
        self._notify(AuthEvent.SIGNED_OUT)
