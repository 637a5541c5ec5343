"""
webdaw configuration

Environment-based settings (prefix ``WEBDAW_``, optionally read from ``.env``).
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .storage.controller import DEFAULT_DEBOUNCE_SECONDS, DEFAULT_POLL_INTERVAL, PersistenceController
from .storage.store import DEFAULT_DATABASE_URL, SqlStore

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class Settings(BaseSettings):
    """Persistence settings loaded from environment variables."""

    # SQLite via aiosqlite; any SQLAlchemy async URL works
    database_url: str = DEFAULT_DATABASE_URL

    # Autosave
    autosave_debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    autosave_poll_interval: float = DEFAULT_POLL_INTERVAL

    store_quota_bytes: Optional[int] = None  # None = unlimited
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="WEBDAW_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @field_validator("autosave_debounce_seconds", "autosave_poll_interval")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()

    def make_store(self) -> SqlStore:
        return SqlStore(self.database_url, quota_bytes=self.store_quota_bytes)

    def make_controller(self, store: Any, registry: Any) -> PersistenceController:
        return PersistenceController(
            store,
            registry,
            debounce_seconds=self.autosave_debounce_seconds,
            poll_interval=self.autosave_poll_interval,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


__all__ = ["LOG_FORMAT", "Settings", "get_settings"]
