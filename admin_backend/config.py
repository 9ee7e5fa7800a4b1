"""
Configuration and settings for the admin backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api/v1")
    log_level: str = Field(default="INFO")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    reload: bool = Field(default=False)

    # Persistence: one adapter per process
    database_type: Literal["postgres", "mongodb"] = Field(default="postgres")
    database_url: Optional[str] = Field(default=None)
    mongodb_uri: Optional[str] = Field(default=None)
    mongodb_database: str = Field(default="crowdfunding_admin")
    seed_languages_on_startup: bool = Field(default=False)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "ADMIN_USE_IN_MEMORY_BACKENDS", "USE_IN_MEMORY_BACKENDS"
        ),
    )

    # Asset storage (S3 or local disk under uploads/)
    asset_management_tool: Literal["aws", "local"] = Field(default="local")
    uploads_dir: str = Field(default="uploads")
    api_url: str = Field(default="http://localhost:3000")
    aws_region: Optional[str] = Field(default=None)
    aws_bucket_name: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("AWS_ACCESS_KEY_ID", "AWS_ID")
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AWS_SECRET_ACCESS_KEY", "AWS_SECRET"),
    )
    aws_endpoint_url: Optional[str] = Field(default=None)
    cdn_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("CDN_URL", "AWS_CLOUDFRONT_URL")
    )
    signed_url_expiry_time_in_min: int = Field(default=60)

    # Logical buckets (first path segment of every stored file path)
    sliders_bucket: str = Field(default="sliders")
    settings_bucket: str = Field(default="settings")

    # Settings cache
    redis_url: Optional[str] = Field(default=None)
    settings_cache_ttl: int = Field(default=300)
    settings_cache_check_period: int = Field(default=60)
    settings_cache_max_keys: int = Field(default=1000)

    # Upload intake
    upload_max_files: int = Field(default=20)
    upload_max_file_size: int = Field(default=10 * 1024 * 1024)

    # Replica set codes
    unique_code_digits: int = Field(default=10)
    unique_code_max_attempts: int = Field(default=100)

    @property
    def signed_url_expiry_seconds(self) -> int:
        return self.signed_url_expiry_time_in_min * 60

    @field_validator("database_type", "asset_management_tool", mode="before")
    @classmethod
    def _lowercase(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
