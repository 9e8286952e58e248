# backend/app/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import Field, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

from .constants import (
    DEFAULT_CURRENCY,
    DEFAULT_TIMEZONE,
    LATE_CANCELLATION_LIMIT_HOURS,
    LATE_CANCELLATION_PAYOUT_PERCENT,
)


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Deployment environment name",
    )
    log_level: str = Field(default="INFO", description="Root log level for CLI entry points")

    production_database_indicators: list[str] = [
        "amazonaws.com",
        "supabase.co",
        "supabase.com",
        "neon.tech",
        "render.com",
        "railway.app",
    ]

    # Raw database URLs - use get_database_url() instead of reading these directly
    database_url_raw: str = Field(
        default="sqlite:///./linguadesk.db",
        alias="database_url",
        description="Primary database URL (PostgreSQL in production)",
    )
    test_database_url_raw: str = Field(
        default="sqlite+pysqlite:///:memory:",
        alias="test_database_url",
    )

    # Legacy flag kept for test harnesses that flip it at import time
    is_testing: bool = False

    db_statement_timeout_ms: int = Field(
        default=15000,
        description="PostgreSQL statement_timeout applied to pooled connections",
    )
    db_pool_size: int = Field(default=5, ge=1)
    db_max_overflow: int = Field(default=5, ge=0)

    # Organization defaults
    default_currency: str = Field(default=DEFAULT_CURRENCY, min_length=3, max_length=3)
    default_timezone: str = Field(default=DEFAULT_TIMEZONE)

    # Payout engine
    late_cancellation_window_hours: int = Field(
        default=LATE_CANCELLATION_LIMIT_HOURS,
        ge=0,
        description="Default late-cancellation window when a school has none configured",
    )
    late_cancellation_payout_percent: int = Field(
        default=LATE_CANCELLATION_PAYOUT_PERCENT,
        ge=0,
        le=100,
        description="Default percent of the hourly amount paid for late cancellations",
    )
    payout_create_max_attempts: int = Field(
        default=1,
        ge=1,
        le=5,
        description="Attempts for create-payout when a claim conflict is detected at commit",
    )

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("default_currency", mode="before")
    @classmethod
    def _normalize_currency(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("default_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @field_validator("test_database_url_raw")
    @classmethod
    def validate_test_database(cls, v: str, info: ValidationInfo) -> str:
        """Ensure test database is not a production database."""
        if not v:
            return v

        prod_indicators = cast(list[str], info.data.get("production_database_indicators", []))
        for indicator in prod_indicators:
            if indicator in v.lower():
                raise ValueError(
                    f"Test database URL contains production indicator '{indicator}'. "
                    f"Tests must not use production databases!"
                )
        return v

    @model_validator(mode="after")
    def _normalize_database_url(self) -> "Settings":
        # Hosted providers sometimes hand out "postgres://" which SQLAlchemy rejects
        if self.database_url_raw.startswith("postgres://"):
            self.database_url_raw = self.database_url_raw.replace("postgres://", "postgresql://", 1)
        return self

    def get_database_url(self) -> str:
        """Get the appropriate database URL based on context."""
        if self.is_testing or self.environment == "test" or is_running_tests():
            return self.test_database_url_raw
        return self.database_url_raw

    @property
    def test_database_url(self) -> str:
        return self.test_database_url_raw


settings = Settings()
