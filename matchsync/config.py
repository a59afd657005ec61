"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - Retry ceiling, backoff bounds and TTLs are settings, never literals in services

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support (ADR: developer UX)
    - Two database URLs: the on-device queue database and the remote document store
      are separate resources with separate failure modes
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="MATCHSYNC_", case_sensitive=False,
    )

    # Local (on-device) database: pending actions, dead letters, analytics, cache
    local_database_url: str = "sqlite+aiosqlite:///./matchsync_local.db"

    # Remote document store
    remote_database_url: str = (
        "postgresql+asyncpg://matchsync:matchsync@db:5432/matchsync"
    )
    remote_pool_size: int = 20
    remote_max_overflow: int = 10

    # Dev convenience; production schema goes through alembic
    create_schema_on_startup: bool = True

    @field_validator("remote_database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosting providers hand out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    # Retry executor
    retry_base_delay_ms: int = 1000
    retry_max_delay_ms: int = 60_000
    retry_max_attempts: int = 5
    retry_jitter: float = 0.25
    action_timeout_seconds: float = 15.0
    drain_concurrency: int = 4

    # Match lifecycle
    match_ttl_hours: int = 24
    premium_match_ttl_hours: int = 48

    # Signed-in user on this device; reconnect syncs persist expiry of their matches
    local_user_id: str | None = None

    # Connectivity + offline cache
    connectivity_poll_seconds: float = 10.0
    offline_cache_max_age_days: int = 7

    # API
    cors_origins: list[str] = ["http://localhost:8081"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
