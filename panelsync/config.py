# -*- coding: utf-8 -*-
"""
Sync Engine Configuration
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

# Health thresholds. "warning" requires the average retry count to stay
# strictly below HEALTH_AVG_RETRY_CEILING and the queue to hold strictly
# fewer than HEALTH_PENDING_CEILING items.
HEALTH_AVG_RETRY_CEILING = 2.0
HEALTH_PENDING_CEILING = 50

DEFAULT_MAX_RETRIES = 3
DEFAULT_EXTENDED_MAX_RETRIES = 5
DEFAULT_CLEANUP_MAX_AGE_DAYS = 7


class SyncSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PANELSYNC_", env_file=".env", extra="ignore")

    # Remote service
    API_BASE_URL: str = "http://localhost:3000"
    API_TOKEN: Optional[str] = None
    REQUEST_TIMEOUT: float = 15.0
    HTTP_RETRIES: int = 2
    HTTP_BACKOFF_FACTOR: float = 0.5

    # Local storage
    QUEUE_DB_PATH: str = "panelsync_queue.db"
    LOCAL_DB_PATH: str = "panelsync_local.db"

    # Retry and health policy
    MAX_RETRIES: int = DEFAULT_MAX_RETRIES
    EXTENDED_MAX_RETRIES: int = DEFAULT_EXTENDED_MAX_RETRIES
    HEALTH_AVG_RETRY_CEILING: float = HEALTH_AVG_RETRY_CEILING
    HEALTH_PENDING_CEILING: int = HEALTH_PENDING_CEILING
    CLEANUP_MAX_AGE_DAYS: int = DEFAULT_CLEANUP_MAX_AGE_DAYS

    # Background service
    SYNC_INTERVAL_SECONDS: int = 30

    LOG_LEVEL: str = "INFO"


@lru_cache(maxsize=1)
def get_settings() -> SyncSettings:
    """Load settings once from the environment / .env file."""
    return SyncSettings()
