"""
Application configuration management.

Uses pydantic-settings for type-safe environment variable parsing.
All configuration is centralized here to support dependency injection
and avoid scattering os.getenv() calls throughout the codebase.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with validation and type coercion.

    Values are loaded from environment variables or .env file.
    All fields have sensible defaults for local development.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage selection
    # auto: use MongoDB when MONGODB_URI is set, fall back to local files on failure
    # local: always use local files
    # remote: MongoDB is mandatory, startup fails without it
    storage_mode: Literal["auto", "local", "remote"] = "auto"

    # MongoDB (remote store)
    mongodb_uri: Optional[str] = None
    mongodb_database: str = "directory"
    connect_timeout_seconds: float = 5.0

    # Local file store
    data_dir: Path = Path("data")

    # Seeding
    fixtures_dir: Path = Path("fixtures")
    seed_on_startup: bool = True
    seed_admin_username: str = "admin"
    seed_admin_email: str = "admin@example.com"
    seed_admin_password: Optional[SecretStr] = None
    seed_influencer_password: SecretStr = SecretStr("123456")
    seed_min_password_length: int = 50
    seed_lease_seconds: int = 600
    password_hash_rounds: int = 10

    # Server
    server_host: str = "0.0.0.0"
    server_port: int = 5000
    debug: bool = True

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def has_mongodb(self) -> bool:
        """Check if a MongoDB connection string is configured."""
        return bool(self.mongodb_uri)


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings singleton.

    Use this function to get settings instance throughout the application.
    The @lru_cache ensures we only parse environment once.
    """
    return Settings()


# Convenience export for direct import
settings = get_settings()
