"""RowRewind settings.

Read from ``ROWREWIND_*`` environment variables and an optional ``.env``
file, validated once, then shared through get_settings().
"""

import re
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_IDENTIFIER_SUFFIX = re.compile(r"^[A-Za-z0-9_]+$")


class Settings(BaseSettings):
    """Runtime configuration.

    Example:
        ROWREWIND_DATABASE_URL=postgresql+asyncpg://app@db/shop
        ROWREWIND_STRICT_CONSISTENCY=true
    """

    model_config = SettingsConfigDict(
        env_prefix="ROWREWIND_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "RowRewind"
    app_version: str = "0.1.0"
    environment: Literal["development", "production", "testing"] = "development"

    # Database
    database_url: str = "sqlite+aiosqlite:///./rr_data/rowrewind.db"
    db_echo: bool = False
    # Pool sizing, ignored for SQLite
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 3600

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "json"

    # Change log and revert
    log_table_suffix: str = Field(
        default="_log",
        description="Appended to a table name to name its change log table",
    )
    strict_consistency: bool = Field(
        default=False,
        description="Fail a revert when a snapshot contradicts the live row",
    )
    revert_timeout_seconds: float | None = Field(
        default=None,
        description="Default deadline of a revert call, None for no deadline",
    )

    @field_validator("log_table_suffix")
    @classmethod
    def validate_log_table_suffix(cls, v: str) -> str:
        """The suffix ends up in DDL: letters, digits and '_' only."""
        if not v or not _IDENTIFIER_SUFFIX.match(v):
            raise ValueError(
                "log_table_suffix must be non-empty and contain only letters, digits or '_'"
            )
        return v

    @field_validator("revert_timeout_seconds")
    @classmethod
    def validate_revert_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("revert_timeout_seconds must be positive")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_testing(self) -> bool:
        return self.environment == "testing"


@lru_cache
def get_settings() -> Settings:
    """Settings loaded from the environment on first call, then cached."""
    return Settings()
