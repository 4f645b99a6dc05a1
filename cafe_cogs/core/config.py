"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly.
"""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Database - relative path by default, override via env for deployments
    database_url: str = "sqlite:///./data/cafe_cogs.db"

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True

    # ==========================================================================
    # Inventory / COGS behaviour
    # ==========================================================================
    default_movement_limit: int = 100  # page size for movement history
    strict_deduction_default: bool = False  # all-or-nothing order deduction
    create_shortage_alerts: bool = True  # StockAlert per blocked deduction
    quantity_scale: int = 4  # decimal places kept for stock quantities

    @field_validator("default_movement_limit")
    @classmethod
    def validate_movement_limit(cls, v: int) -> int:
        if v < 1:
            raise ValueError("default_movement_limit must be at least 1")
        return v

    @field_validator("quantity_scale")
    @classmethod
    def validate_quantity_scale(cls, v: int) -> int:
        if not 0 <= v <= 4:
            raise ValueError("quantity_scale must be between 0 and 4")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
