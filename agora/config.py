"""
Application configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./agora_dev.db"

    # Bearer credentials (issued by the auth provider, verified here)
    secret_key: str = "change-this-in-production-minimum-32-characters-long"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 1440  # 24 hours
    token_issuer: str = "agora"

    # Enrollment codes
    enrollment_code_length: int = 12
    enrollment_code_max_attempts: int = 10  # retries on collision
    enrollment_header: str = "X-Enrollment-Code"

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # API Settings
    api_v1_prefix: str = "/api/v1"
    project_name: str = "Agora Access Kernel"
    version: str = "0.4.0"

    # Rate limiting (API Gateway)
    rate_limit_auth_per_minute: int = 10   # per IP for code redemption
    rate_limit_api_per_minute: int = 100   # per principal or IP for general API
    rate_limit_enabled: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
