"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Persistence: "memory" for development/tests, "mongo" for durable storage
    store_backend: str = "memory"
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "license_approvals_dev"

    # Collaborators
    directory_url: str = ""  # Empty = use the static directory file
    directory_file: str = ""
    directory_timeout_seconds: float = 5.0
    event_webhook_url: str = ""  # Empty = log events only
    event_webhook_timeout_seconds: float = 5.0

    # Comma separated actor IDs allowed to cancel/skip any workflow
    administrator_ids: str = ""

    # Engine
    cas_max_retries: int = 3
    overdue_sweep_interval_seconds: int = 300

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def administrator_ids_list(self) -> List[str]:
        """Parse administrator IDs string to list"""
        return [a.strip() for a in self.administrator_ids.split(",") if a.strip()]

    @property
    def directory_file_path(self) -> Optional[str]:
        return self.directory_file or None


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
