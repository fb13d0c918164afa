"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        app_name: Name of the application.
        debug: Enable debug mode.
        database_url: Database connection URL.
        secret_key: Secret key for JWT signing.
        access_token_expire_minutes: JWT access token expiration time.
        algorithm: JWT signing algorithm.
        upload_dir: Directory holding locally stored plant images.
        r2_*: Cloudflare R2 (S3-compatible) object store credentials.
        backup_*: Bounds enforced while reading uploaded backup archives.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "plantcare"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"

    # Database
    database_url: str = "sqlite:///./plantcare.db"

    # Security
    secret_key: str = "change-this-to-a-secure-secret-key"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    cors_origins: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # Image storage
    upload_dir: str = "uploads"
    r2_account_id: str = ""
    r2_access_key_id: str = ""
    r2_secret_access_key: str = ""
    r2_bucket_name: str = "plantcare"
    r2_public_url: str = ""  # Public bucket URL; empty = store bare object keys

    # Backup import limits
    backup_max_upload_bytes: int = 10 * 1024 * 1024
    backup_max_files: int = 100
    backup_max_total_bytes: int = 10 * 1024 * 1024
    backup_max_file_bytes: int = 5 * 1024 * 1024
    backup_max_manifest_bytes: int = 1024 * 1024
    backup_extract_timeout_seconds: float = 30.0

    @property
    def r2_configured(self) -> bool:
        """Whether all R2 credentials are present."""
        return bool(self.r2_account_id and self.r2_access_key_id and self.r2_secret_access_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Application settings.
    """
    return Settings()
