"""
studyswipe/settings.py
──────────────────────
Centralised settings loaded from .env via pydantic-settings.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    app_host: str = "0.0.0.0"
    port: int = 8000

    # Database
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "studyswipe"
    request_timeout: float = Field(10.0, gt=0, description="Seconds before a store call is abandoned")

    # Feed / chat
    feed_page_size: int = Field(20, ge=1)
    message_max_length: int = Field(1000, ge=1)
    reconcile_interval: float = Field(2.0, gt=0)
    reconcile_overlap: float = Field(5.0, ge=0, description="Seconds re-fetched behind the newest known message")
    unread_poll_interval: float = Field(10.0, gt=0)

    # Match confirmation backoff
    match_confirm_timeout: float = Field(1.0, ge=0)
    match_confirm_initial_delay: float = Field(0.1, gt=0)
    match_confirm_max_delay: float = Field(0.5, gt=0)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None


@lru_cache
def get_settings() -> Settings:
    return Settings()
