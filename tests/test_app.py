"""Tests for okanassist.app — composition root wiring."""

import pytest
from unittest.mock import patch

from okanassist.adapters.log_notifier import LogNotifier
from okanassist.app import build_app
from okanassist.core.cache_store import CacheConfig


@pytest.fixture
def app(mock_auth, sqlite_backend, local_store):
    notifier = LogNotifier()
    built = build_app(
        auth=mock_auth,
        backend=sqlite_backend,
        local_store=local_store,
        notifier=notifier,
        cache_config=CacheConfig(ttl_ms=60_000),
    )
    yield built
    built.close()


class TestBuildApp:
    def test_listens_to_provider(self, app, mock_auth):
        mock_auth.on_auth_state_change.assert_called_once()

    def test_cache_uses_given_config(self, app):
        assert app.cache.config.ttl_ms == 60_000

    def test_default_cache_config_from_settings(self, mock_auth, sqlite_backend, local_store):
        with patch("okanassist.app.settings") as mock_settings:
            mock_settings.CACHE_TTL_MS = 1234
            mock_settings.CACHE_TTL_BY_RESOURCE = {"summary": 10}
            mock_settings.REQUEST_TIMEOUT_SECONDS = 5
            mock_settings.DEFAULT_CURRENCY = "BRL"
            mock_settings.DEFAULT_LANGUAGE = "pt"
            mock_settings.DEFAULT_TIMEZONE = "America/Sao_Paulo"
            built = build_app(auth=mock_auth, backend=sqlite_backend, local_store=local_store)
        assert built.cache.config.ttl_ms == 1234
        assert built.cache.config.by_resource == {"summary": 10}
        assert isinstance(built.notifier, LogNotifier)
        built.close()


class TestStart:
    @pytest.mark.asyncio
    async def test_start_without_session(self, app, mock_auth):
        mock_auth.get_current_session.return_value = None
        assert await app.start() is False
        assert len(app.cache) == 0

    @pytest.mark.asyncio
    async def test_start_restores_and_prefetches(self, app):
        assert await app.start() is True
        assert app.sessions.is_authenticated
        assert "transactions_30_all" in app.cache
        assert "summary_30" in app.cache

    @pytest.mark.asyncio
    async def test_reminder_alerts_after_start(self, app):
        await app.start()
        assert await app.send_reminder_alerts(hours=24) == 0

    @pytest.mark.asyncio
    async def test_reminder_alerts_signed_out(self, app):
        assert await app.send_reminder_alerts() == 0
