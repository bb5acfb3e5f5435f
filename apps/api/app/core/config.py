from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Relationship Intelligence API"
    environment: str = "dev"
    api_prefix: str = "/v1"
    log_level: str = "INFO"
    cors_allow_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    database_dsn: str = "sqlite:///./relationship_intel.db"
    db_pool_size: int = Field(default=20, ge=1, le=200)
    db_max_overflow: int = Field(default=40, ge=0, le=400)
    db_pool_timeout_seconds: int = Field(default=60, ge=1, le=600)
    db_pool_recycle_seconds: int = Field(default=1800, ge=30, le=86400)

    redis_url: str = "redis://redis:6379/0"
    queue_mode: str = "redis"
    queue_retry_max: int = Field(default=2, ge=0, le=10)
    queue_retry_interval_seconds: int = Field(default=60, ge=5, le=3600)

    enrichment_webhook_secret: str = ""

    strength_min: float = 1.0
    strength_max: float = 10.0
    strength_default: float = Field(default=5.0, ge=1.0, le=10.0)
    strength_decay_k: float = Field(default=2.0, ge=0.0, le=10.0)
    strength_boost_meeting: float = Field(default=1.5, ge=0.0, le=9.0)
    strength_boost_call: float = Field(default=1.0, ge=0.0, le=9.0)
    strength_boost_email: float = Field(default=0.5, ge=0.0, le=9.0)
    strength_boost_other: float = Field(default=0.25, ge=0.0, le=9.0)
    followup_completion_boost: float = Field(default=1.0, ge=0.0, le=9.0)

    default_contact_frequency_days: int = Field(default=30, ge=1, le=3650)

    duplicate_weight_name: float = Field(default=0.4, ge=0.0, le=1.0)
    duplicate_weight_email: float = Field(default=0.3, ge=0.0, le=1.0)
    duplicate_weight_phone: float = Field(default=0.3, ge=0.0, le=1.0)
    duplicate_fuzzy_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    duplicate_potential_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    duplicate_blocking_prefix_len: int = Field(default=3, ge=1, le=16)
    duplicate_phone_suffix_len: int = Field(default=7, ge=4, le=15)
    duplicate_max_candidates: int = Field(default=500, ge=1, le=10000)

    urgency_weight_severity: float = Field(default=0.5, ge=0.0, le=1.0)
    urgency_weight_strength: float = Field(default=0.3, ge=0.0, le=1.0)
    urgency_weight_recency: float = Field(default=0.2, ge=0.0, le=1.0)
    general_trigger_severity: float = Field(default=0.3, ge=0.0, le=1.0)
    recommendation_limit_daily: int = Field(default=10, ge=1, le=100)
    recommendation_limit_weekly: int = Field(default=25, ge=1, le=100)
    recommendation_limit_monthly: int = Field(default=50, ge=1, le=100)

    timeline_default_limit: int = Field(default=20, ge=1, le=100)
    timeline_max_limit: int = Field(default=100, ge=1, le=100)
    timeline_note_snippet_chars: int = Field(default=200, ge=20, le=2000)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
