"""Backend adapter factory — creates the right backend based on config."""

from __future__ import annotations

from okanassist.config import settings
from okanassist.ports.backend_port import BackendPort


def create_backend(provider: str | None = None) -> BackendPort:
    """Return the backend matching BACKEND_PROVIDER.

    Args:
        provider: Overrides the configured provider ("rest" or "sqlite").
    """
    provider = (provider or settings.BACKEND_PROVIDER).lower()

    if provider == "rest":
        from okanassist.adapters.rest_backend import RestBackend

        return RestBackend(
            settings.API_BASE_URL, timeout=settings.REQUEST_TIMEOUT_SECONDS,
        )

    if provider == "sqlite":
        from okanassist.adapters.sqlite_backend import SQLiteBackend

        return SQLiteBackend(settings.DATABASE_PATH)

    raise ValueError(f"Unknown BACKEND_PROVIDER: {provider!r}")
