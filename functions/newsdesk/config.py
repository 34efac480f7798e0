"""
Configuration and settings for the newsdesk backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Auth. Token issuing fails until JWT_SECRET is set.
    jwt_secret: Optional[str] = Field(default=None)
    token_ttl_days: int = Field(default=7, ge=1)
    admin_user: str = Field(default="admin")
    admin_password: Optional[str] = Field(default=None)
    admin_password_hash: Optional[str] = Field(default=None)

    # Durable item store. DATABASE_URL wins over the JSON file.
    database_url: Optional[str] = Field(default=None)
    items_file: str = Field(default="data/items.json")
    list_limit: int = Field(default=200, ge=1)

    # Local upload namespace (used when no bucket is configured)
    uploads_dir: str = Field(default="public/uploads")
    uploads_url_prefix: str = Field(default="/uploads")

    # S3-compatible storage (Tencent COS)
    cos_endpoint: Optional[str] = Field(default=None)
    cos_region: Optional[str] = Field(default=None)
    cos_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    storage_public_base_url: Optional[str] = Field(default=None)

    # Uploads
    max_upload_bytes: int = Field(default=6 * 1024 * 1024, ge=1)
    upload_read_timeout_seconds: float = Field(default=30.0, gt=0)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
