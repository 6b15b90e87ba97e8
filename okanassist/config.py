"""
OkanAssist — Centralized configuration.

Loads all settings from .env and validates required keys.
Core classes never read this module directly: the composition root and the
adapter factories pass the relevant values in.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from okanassist/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Supabase auth
    SUPABASE_URL: str
    SUPABASE_ANON_KEY: str
    OAUTH_REDIRECT_URI: str = "okanassist://auth/callback"
    PASSWORD_RESET_REDIRECT_URI: str = "okanassist://reset-password"

    # Backend: "rest" | "sqlite"
    BACKEND_PROVIDER: str = "rest"
    API_BASE_URL: str = "http://localhost:8000"
    REQUEST_TIMEOUT_SECONDS: float = 20.0

    # SQLite (local backend + persisted session)
    DATABASE_PATH: str = "data/okanassist.db"
    LOCAL_STORE_PATH: str = "data/local_store.db"

    # Cache
    CACHE_TTL_MS: int = 5 * 60 * 1000
    CACHE_TTL_BY_RESOURCE: dict[str, int] = {}

    # Profile defaults for first sign-in
    DEFAULT_CURRENCY: str = "USD"
    DEFAULT_LANGUAGE: str = "en"
    DEFAULT_TIMEZONE: str = "UTC"

    # Reminder alerts
    REMINDER_ALERT_HOURS: int = 24

    @field_validator("CACHE_TTL_BY_RESOURCE", mode="before")
    @classmethod
    def parse_ttl_overrides(cls, v: str | dict[str, int]) -> dict[str, int]:
        """Accept "summary=60000,reminders=120000" from the environment."""
        if isinstance(v, dict):
            return v
        overrides: dict[str, int] = {}
        if isinstance(v, str) and v.strip():
            for pair in v.split(","):
                if not pair.strip():
                    continue
                resource, _, ttl = pair.partition("=")
                overrides[resource.strip()] = int(ttl.strip())
        return overrides

    @field_validator("CACHE_TTL_MS", "REMINDER_ALERT_HOURS", mode="before")
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("REQUEST_TIMEOUT_SECONDS", mode="before")
    @classmethod
    def parse_timeout(cls, v: str | float) -> float:
        timeout = float(v)
        if timeout <= 0:
            raise ValueError("REQUEST_TIMEOUT_SECONDS must be positive")
        return timeout


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    supabase_url = os.getenv("SUPABASE_URL", "")
    anon_key = os.getenv("SUPABASE_ANON_KEY", "")

    if not supabase_url:
        print("ERROR: SUPABASE_URL is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if not anon_key or anon_key.startswith("your-"):
        print("ERROR: SUPABASE_ANON_KEY is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        SUPABASE_URL=supabase_url.rstrip("/"),
        SUPABASE_ANON_KEY=anon_key,
        OAUTH_REDIRECT_URI=os.getenv("OAUTH_REDIRECT_URI", "okanassist://auth/callback"),
        PASSWORD_RESET_REDIRECT_URI=os.getenv(
            "PASSWORD_RESET_REDIRECT_URI", "okanassist://reset-password",
        ),
        BACKEND_PROVIDER=os.getenv("BACKEND_PROVIDER", "rest"),
        API_BASE_URL=os.getenv("API_BASE_URL", "http://localhost:8000").rstrip("/"),
        REQUEST_TIMEOUT_SECONDS=os.getenv("REQUEST_TIMEOUT_SECONDS", "20"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/okanassist.db"),
        LOCAL_STORE_PATH=os.getenv("LOCAL_STORE_PATH", "data/local_store.db"),
        CACHE_TTL_MS=os.getenv("CACHE_TTL_MS", "300000"),
        CACHE_TTL_BY_RESOURCE=os.getenv("CACHE_TTL_BY_RESOURCE", ""),
        DEFAULT_CURRENCY=os.getenv("DEFAULT_CURRENCY", "USD"),
        DEFAULT_LANGUAGE=os.getenv("DEFAULT_LANGUAGE", "en"),
        DEFAULT_TIMEZONE=os.getenv("DEFAULT_TIMEZONE", "UTC"),
        REMINDER_ALERT_HOURS=os.getenv("REMINDER_ALERT_HOURS", "24"),
    )


# Singleton, imported by factories and the composition root as:
#   from okanassist.config import settings
settings = _load_settings()
