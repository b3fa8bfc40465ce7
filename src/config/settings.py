"""
Runtime Settings for AMP Tracker.

All runtime configuration is read from environment variables with the
``AMP_`` prefix. Settings are loaded once into a frozen dataclass and
shared through ``get_settings()``.

Environment variables:
    AMP_DATABASE_URL     Async SQLAlchemy URL (default: sqlite+aiosqlite:///./amp_tracker.db)
    AMP_DEV_MODE         "1" enables dev logging and relaxed startup checks
    AMP_ENVIRONMENT      "development" | "production"
    AMP_CORS_ORIGINS     Comma-separated allowed origins
    AMP_ADMIN_USER_IDS   Comma-separated user ids granted the admin role
    AMP_DAY_CACHE_TTL    Day-view cache TTL in seconds (default: 300)
    AMP_API_SECRET_KEY   JWT signing secret (required at startup)
    REDIS_URL            Redis connection URL (default: redis://localhost:6379/0)
    AMP_HOST, AMP_PORT   Bind address of the HTTP server (default: 0.0.0.0:8000)

Admin accounts are bootstrapped exclusively through AMP_ADMIN_USER_IDS;
there is no hardcoded administrator identity.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from src.lib.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./amp_tracker.db"
DEFAULT_DAY_CACHE_TTL = 300
DEFAULT_REDIS_URL = "redis://localhost:6379/0"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8000


def _parse_csv(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _parse_admin_ids(raw: str) -> frozenset[int]:
    admin_ids: set[int] = set()
    for part in _parse_csv(raw):
        if not part.isdigit():
            logger.warning("Ignoring non-numeric admin id in AMP_ADMIN_USER_IDS")
            continue
        admin_ids.add(int(part))
    return frozenset(admin_ids)


def _parse_port(raw: str) -> int:
    if not raw.isdigit() or not 0 < int(raw) < 65536:
        raise ConfigurationError(f"AMP_PORT must be a TCP port number, got {raw!r}")
    return int(raw)


@dataclass(frozen=True)
class Settings:
    """Immutable application settings resolved from the environment."""

    database_url: str = DEFAULT_DATABASE_URL
    dev_mode: bool = False
    environment: str = "development"
    cors_origins: list[str] = field(default_factory=list)
    admin_user_ids: frozenset[int] = frozenset()
    day_cache_ttl: int = DEFAULT_DAY_CACHE_TTL
    api_secret_key: str | None = None
    redis_url: str = DEFAULT_REDIS_URL
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def is_admin(self, user_id: int) -> bool:
        """Check whether a user id was granted the admin role at bootstrap."""
        return user_id in self.admin_user_ids

    @classmethod
    def from_env(cls) -> Settings:
        """
        Build settings from environment variables.

        Raises:
            ConfigurationError: If a numeric setting cannot be parsed
        """
        raw_ttl = os.getenv("AMP_DAY_CACHE_TTL", str(DEFAULT_DAY_CACHE_TTL))
        try:
            day_cache_ttl = int(raw_ttl)
        except ValueError as exc:
            raise ConfigurationError(
                f"AMP_DAY_CACHE_TTL must be an integer, got {raw_ttl!r}"
            ) from exc
        if day_cache_ttl < 0:
            raise ConfigurationError("AMP_DAY_CACHE_TTL must not be negative")

        return cls(
            database_url=os.getenv("AMP_DATABASE_URL", DEFAULT_DATABASE_URL),
            dev_mode=os.getenv("AMP_DEV_MODE") == "1",
            environment=os.getenv("AMP_ENVIRONMENT", "development"),
            cors_origins=_parse_csv(os.getenv("AMP_CORS_ORIGINS", "")),
            admin_user_ids=_parse_admin_ids(os.getenv("AMP_ADMIN_USER_IDS", "")),
            day_cache_ttl=day_cache_ttl,
            api_secret_key=os.getenv("AMP_API_SECRET_KEY") or None,
            redis_url=os.getenv("REDIS_URL", DEFAULT_REDIS_URL),
            host=os.getenv("AMP_HOST", DEFAULT_HOST),
            port=_parse_port(os.getenv("AMP_PORT", str(DEFAULT_PORT))),
        )


# Singleton instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the settings singleton (loaded from the environment on first use)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None


__all__ = [
    "DEFAULT_DATABASE_URL",
    "DEFAULT_DAY_CACHE_TTL",
    "DEFAULT_REDIS_URL",
    "Settings",
    "get_settings",
    "reset_settings",
]
