"""
searchsync Configuration Management

Uses Pydantic Settings for type-safe configuration from environment variables.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # APPLICATION
    # =========================================================================
    APP_NAME: str = "searchsync"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "info"
    VERSION: str = "0.1.0"

    # =========================================================================
    # MONGODB (Source of Truth)
    # =========================================================================
    MONGO_URI: str = "mongodb://localhost:27017/yourdb"
    MONGO_MAX_POOL_SIZE: int = 10
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = 5000

    # =========================================================================
    # MEILISEARCH (Full-Text Search)
    # =========================================================================
    MEILISEARCH_HOST: str = "http://127.0.0.1:7700"
    MEILISEARCH_API_KEY: str = ""
    MEILISEARCH_TIMEOUT_SECONDS: float = 10.0
    MEILISEARCH_WAIT_FOR_TASKS: bool = False
    MEILISEARCH_TASK_TIMEOUT_SECONDS: float = 30.0

    # =========================================================================
    # SYNCHRONIZATION
    # =========================================================================
    SYNC_COLLECTIONS: str = "searchsync.collections:COLLECTIONS"
    SYNC_RESTART_DELAY_SECONDS: float = 10.0
    SYNC_WRITE_MAX_RETRIES: int = 3
    SYNC_WRITE_RETRY_DELAY_SECONDS: float = 0.5
    SYNC_WRITE_MAX_RETRY_DELAY_SECONDS: float = 30.0
    SYNC_MAX_CONCURRENT_WRITES: int = 16
    SYNC_MAX_PENDING_EVENTS: int = 1000
    SYNC_DEAD_LETTER_PATH: Optional[Path] = None
    SYNC_PRUNE_STALE_DOCUMENTS: bool = True

    # =========================================================================
    # WORKER HEALTH
    # =========================================================================
    WORKER_HEALTH_ENABLED: bool = True
    WORKER_HEALTH_PORT: int = 8081


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
