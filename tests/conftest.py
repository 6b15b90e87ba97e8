"""Shared test fixtures and configuration.

Sets up fake environment variables so okanassist.config doesn't sys.exit(),
and provides temp-file SQLite stores plus a signed-in session.
"""

import os

# Patch env vars BEFORE any okanassist imports
os.environ.setdefault("SUPABASE_URL", "https://fake-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "fake-anon-key-for-tests")
os.environ.setdefault("BACKEND_PROVIDER", "sqlite")
os.environ.setdefault("API_BASE_URL", "http://api.test")

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock

from okanassist.data.models import AuthCredentials, Session


@pytest.fixture
def local_store(tmp_path):
    """Return a LocalStore backed by a temp file."""
    from okanassist.data.local_store import LocalStore
    return LocalStore(db_path=str(tmp_path / "test_local_store.db"))


@pytest.fixture
def sqlite_backend(tmp_path):
    """Return a SQLiteBackend backed by a temp file."""
    from okanassist.adapters.sqlite_backend import SQLiteBackend
    return SQLiteBackend(db_path=str(tmp_path / "test_backend.db"))


@pytest.fixture
def credentials():
    return AuthCredentials(
        access_token="access-1",
        refresh_token="refresh-1",
        user_id="user-1",
        email="dana@example.com",
        user_metadata={"full_name": "Dana Levi"},
    )


@pytest.fixture
def session():
    return Session(
        user_id="user-1",
        email="dana@example.com",
        display_name="Dana Levi",
        access_token="access-1",
        refresh_token="refresh-1",
    )


@pytest.fixture
def mock_auth(credentials):
    """AuthProvider double: every call succeeds with `credentials`."""
    auth = MagicMock()
    auth.sign_in_with_password = AsyncMock(return_value=credentials)
    auth.sign_in_with_oauth = AsyncMock(return_value=credentials)
    auth.sign_out = AsyncMock(return_value=None)
    auth.get_current_session = AsyncMock(return_value=credentials)
    auth.refresh_session = AsyncMock(return_value=credentials)
    auth.sign_up_with_email = AsyncMock(return_value=credentials)
    auth.reset_password = AsyncMock(return_value=None)
    auth.update_password = AsyncMock(return_value=None)
    auth.verify_otp = AsyncMock(return_value=credentials)
    auth.handle_password_reset_link = AsyncMock(return_value=credentials)
    auth.on_auth_state_change = MagicMock(return_value=lambda: None)
    return auth


@pytest.fixture
def session_store(mock_auth, local_store, sqlite_backend):
    from okanassist.core.session_store import SessionStore
    return SessionStore(mock_auth, local_store, backend=sqlite_backend)


@pytest_asyncio.fixture
async def signed_in(session_store):
    """A SessionStore that has completed a password sign-in."""
    result = await session_store.sign_in_with_password("dana@example.com", "secret")
    assert result.success
    return session_store
