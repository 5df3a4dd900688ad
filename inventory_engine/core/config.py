"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly. Values here are process-wide
defaults; tenant-editable approval policy lives behind the settings
provider (see ``inventory_engine.services.settings_service``) and only
falls back to these values when no stored setting exists.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Database
    database_url: str = "sqlite:///./data/inventory.db"
    sqlite_busy_timeout: float = 30.0  # seconds a writer waits for the SQLite lock

    # Server
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = False

    # ==========================================================================
    # Adjustment approval policy (defaults for the "approvals" settings group)
    # ==========================================================================
    adjustment_require_approval: bool = True
    adjustment_approval_threshold: Decimal = Decimal("100")
    creator_cannot_approve: bool = True

    # Movement journal reads
    movement_page_size: int = 200

    @field_validator("adjustment_approval_threshold")
    @classmethod
    def validate_threshold(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("adjustment_approval_threshold cannot be negative")
        return v

    @field_validator("movement_page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("movement_page_size must be positive")
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
