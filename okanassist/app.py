"""
OkanAssist — Composition root.

Builds every collaborator once and wires them by constructor injection:

    LocalStore ─┐
    AuthProvider ┼─> SessionStore ─> CacheStore (subscribed to sign-out)
    BackendPort ─┘        │
                          └──> RemoteDataGateway ─> FinanceData / MutationCoordinator
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

from okanassist.config import settings
from okanassist.core.cache_store import CacheConfig, CacheStore
from okanassist.core.data_service import FinanceData
from okanassist.core.gateway import RemoteDataGateway
from okanassist.core.mutations import MutationCoordinator
from okanassist.core.reminder_alerts import send_due_reminder_alerts
from okanassist.core.session_store import SessionStore
from okanassist.data.local_store import LocalStore
from okanassist.data.models import UserSettings
from okanassist.ports.auth_port import AuthProvider
from okanassist.ports.backend_port import BackendPort
from okanassist.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


@dataclass
class App:
    """The wired object graph."""

    sessions: SessionStore
    cache: CacheStore
    gateway: RemoteDataGateway
    data: FinanceData
    mutations: MutationCoordinator
    notifier: NotificationPort
    _unsubscribers: list[Callable[[], None]] = field(default_factory=list)

    async def start(self) -> bool:
        """Restore the persisted session and warm the cache if signed in."""
        session = await self.sessions.restore()
        if session is None:
            logger.info("Not signed in; waiting for login")
            return False
        return await self.data.initialize()

    async def send_reminder_alerts(self, hours: int | None = None) -> int:
        session = self.sessions.current_session()
        if session is None or not session.user_id:
            return 0
        return await send_due_reminder_alerts(
            self.data,
            self.notifier,
            session.user_id,
            hours=hours or settings.REMINDER_ALERT_HOURS,
        )

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.cache.detach()


def build_app(
    auth: AuthProvider | None = None,
    backend: BackendPort | None = None,
    local_store: LocalStore | None = None,
    notifier: NotificationPort | None = None,
    cache_config: CacheConfig | None = None,
) -> App:
    """Wire the app, defaulting each port to the configured adapter.

    Args:
        auth: Auth provider. Defaults to SupabaseAuth.
        backend: Data backend. Defaults to BACKEND_PROVIDER's adapter.
        local_store: Device storage. Defaults to LOCAL_STORE_PATH.
        notifier: Alert sink. Defaults to LogNotifier.
        cache_config: TTL policy. Defaults to CACHE_TTL_MS / CACHE_TTL_BY_RESOURCE.
    """
    if auth is None:
        from okanassist.adapters.supabase_auth import SupabaseAuth
        auth = SupabaseAuth(
            settings.SUPABASE_URL,
            settings.SUPABASE_ANON_KEY,
            redirect_uri=settings.OAUTH_REDIRECT_URI,
            reset_redirect_uri=settings.PASSWORD_RESET_REDIRECT_URI,
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
        )

    if backend is None:
        from okanassist.adapters.backend_factory import create_backend
        backend = create_backend()

    if notifier is None:
        from okanassist.adapters.log_notifier import LogNotifier
        notifier = LogNotifier()

    if local_store is None:
        local_store = LocalStore()

    if cache_config is None:
        cache_config = CacheConfig(
            ttl_ms=settings.CACHE_TTL_MS, by_resource=settings.CACHE_TTL_BY_RESOURCE,
        )

    sessions = SessionStore(
        auth,
        local_store,
        backend=backend,
        defaults=UserSettings(
            currency=settings.DEFAULT_CURRENCY,
            language=settings.DEFAULT_LANGUAGE,
            timezone=settings.DEFAULT_TIMEZONE,
        ),
    )
    cache = CacheStore(cache_config, session_store=sessions)
    gateway = RemoteDataGateway(
        backend, sessions, timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS,
    )
    app = App(
        sessions=sessions,
        cache=cache,
        gateway=gateway,
        data=FinanceData(gateway, cache),
        mutations=MutationCoordinator(gateway, cache, sessions),
        notifier=notifier,
    )
    app._unsubscribers.append(sessions.listen_to_provider())

    logger.info("OkanAssist wired with %s backend", type(backend).__name__)
    return app


async def run() -> None:
    app = build_app()
    try:
        if await app.start():
            await app.send_reminder_alerts()
    finally:
        app.close()


def main() -> None:
    """Entry point: restore the session, prefetch, and send due alerts."""
    logger.info("Starting OkanAssist...")
    asyncio.run(run())


if __name__ == "__main__":
    main()
