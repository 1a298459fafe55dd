from __future__ import annotations

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    api_key: str = "test-api-key"
    trusted_proxies: list[str] = Field(
        default_factory=lambda: ["127.0.0.1", "testclient"]
    )
    rate_limit_ip_per_min: int = Field(30, alias="RATE_LIMIT_IP_PER_MIN")
    rate_limit_user_per_min: int = Field(120, alias="RATE_LIMIT_USER_PER_MIN")

    database_url: str = Field("sqlite:////tmp/lemore_test.db", alias="DATABASE_URL")
    db_create_all: bool = Field(False, alias="DB_CREATE_ALL")

    redis_url: str = Field("redis://localhost:6379", alias="REDIS_URL")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    s3_bucket: str = "lemore"
    s3_endpoint: str | None = None
    s3_region: str = "us-east-1"
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    s3_public_url: str | None = None

    free_ai_limit: int = Field(2, alias="FREE_AI_LIMIT")
    quota_gate_listings: bool = Field(
        False,
        alias="QUOTA_GATE_LISTINGS",
        description="Refuse listing generation once the free AI quota is used up",
    )
    max_photos_per_item: int = Field(5, alias="MAX_PHOTOS_PER_ITEM")
    max_photo_bytes: int = Field(5 * 1024 * 1024, alias="MAX_PHOTO_BYTES")
    challenge_default_days: int = Field(7, alias="CHALLENGE_DEFAULT_DAYS")
    challenge_max_days: int = Field(30, alias="CHALLENGE_MAX_DAYS")

    openai_model: str = Field("gpt-4o", alias="OPENAI_MODEL")
    openai_model_fallback: str | None = Field(
        "gpt-4o-mini", alias="OPENAI_MODEL_FALLBACK"
    )
    openai_timeout_s: float = Field(30.0, alias="OPENAI_TIMEOUT_S")

    model_config = ConfigDict(
        extra="ignore",
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
    )
