"""
Configuration and settings for the upload backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from disaster_backend.errors import ConfigurationError


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible storage (MinIO, AWS S3, ...)
    aws_endpoint: Optional[str] = Field(default=None)
    # Public base URL used for links handed to clients; may differ from the
    # endpoint the backend writes through.
    aws_public_endpoint: Optional[str] = Field(default=None)
    aws_region: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    aws_s3_bucket: str = Field(default="images")
    upload_key_prefix: str = Field(default="uploads")

    max_upload_bytes: int = Field(default=300 * 1024 * 1024, gt=0)
    cors_origins: str = Field(default="*")
    log_level: str = Field(default="INFO")

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    @property
    def public_endpoint(self) -> str:
        return (self.aws_public_endpoint or self.aws_endpoint or "").rstrip("/")

    @property
    def allowed_origins(self) -> list[str]:
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        return origins or ["*"]

    def require_storage(self) -> None:
        """Raise ConfigurationError unless every S3 setting is present."""
        missing = [
            name
            for name, value in (
                ("AWS_ENDPOINT", self.aws_endpoint),
                ("AWS_REGION", self.aws_region),
                ("AWS_ACCESS_KEY_ID", self.aws_access_key_id),
                ("AWS_SECRET_ACCESS_KEY", self.aws_secret_access_key),
                ("AWS_S3_BUCKET", self.aws_s3_bucket),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                "Missing required storage configuration: " + ", ".join(missing)
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
