"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development.

Usage:
    from safecircle.app.core.config import settings
    print(settings.SOS_COUNTDOWN_SECONDS)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "SafeCircle"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RELOAD: bool = True  # auto-reload on file changes (dev only)

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:8081",
        "http://localhost:19006",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── SOS lifecycle ──
    SOS_COUNTDOWN_SECONDS: int = 5
    TICK_INTERVAL_SECONDS: float = 1.0  # one countdown tick

    # ── Location tracking ──
    LOCATION_MIN_INTERVAL_MS: int = 5000
    LOCATION_MIN_DISTANCE_M: float = 10.0
    LOCATION_POLL_SECONDS: float = 1.0  # raw fix polling cadence

    # ── Local persistence ──
    STORAGE_BACKEND: str = "file"  # file | memory | redis
    STATE_FILE: str = "data/safecircle_state.json"
    STORAGE_KEY_PREFIX: str = "safecircle"
    REDIS_URL: str = "redis://localhost:6379/0"
    PERSIST_ALERT_HISTORY: bool = False

    # ── Remote backend (Supabase-style REST) ──
    REMOTE_BACKEND_URL: Optional[str] = None
    REMOTE_API_KEY: Optional[str] = None
    REMOTE_TIMEOUT_SECONDS: float = 10.0

    # ── Notification fan-out ──
    NOTIFY_PROVIDER: str = "simulation"  # simulation | http
    NOTIFY_GATEWAY_URL: Optional[str] = None
    NOTIFY_API_KEY: Optional[str] = None
    DISPATCH_RETRY_SCALE: float = 1.0  # multiplies retry backoff (0 disables waits)
    MARK_DELIVERED_ON_DISPATCH: bool = False  # advance sent → delivered when anyone was reached

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def remote_enabled(self) -> bool:
        return bool(self.REMOTE_BACKEND_URL)


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
