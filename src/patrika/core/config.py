from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    patrika_env: Literal["dev", "prod", "test"] = "dev"
    database_url: str = "sqlite:///patrika.db"
    redis_url: str = "redis://localhost:6379/0"
    log_level: str = "INFO"

    # "none" runs without background ingestion
    queue_backend: Literal["redis", "memory", "none"] = "redis"
    cache_backend: Literal["redis", "memory"] = "redis"
    queue_name: str = "news"

    fetch_interval_minutes: int = Field(default=10, ge=1, le=1440)
    job_attempts: int = Field(default=3, ge=1, le=20)
    job_backoff_seconds: float = Field(default=5.0, ge=0.0, le=600.0)
    worker_lock_seconds: float = Field(default=60.0, ge=1.0, le=3600.0)
    worker_lock_renew_seconds: float = Field(default=30.0, ge=0.5, le=1800.0)
    worker_poll_seconds: float = Field(default=1.0, ge=0.05, le=60.0)
    max_stalled_count: int = Field(default=2, ge=0, le=10)
    # rq kills a job that runs longer than this
    job_timeout_seconds: int = Field(default=900, ge=10, le=86400)

    feed_timeout_seconds: float = Field(default=15.0, ge=1.0, le=120.0)
    article_timeout_seconds: float = Field(default=5.0, ge=0.5, le=60.0)
    store_timeout_seconds: float = Field(default=5.0, ge=0.5, le=60.0)

    fast_cache_ttl_seconds: int = Field(default=300, ge=1, le=86400)
    fallback_cache_ttl_seconds: int = Field(default=1800, ge=1, le=604800)

    placeholder_image_url: str = "https://placehold.co/640x360?text=News+Image"
    http_user_agent: str = BROWSER_USER_AGENT
    summary_max_words: int = Field(default=100, ge=10, le=1000)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
