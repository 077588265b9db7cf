"""Settings for the ledger, read from ``RTL_*`` environment variables or ``.env``."""

from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rental_tax_ledger.domain.tax_years import TaxYear
from rental_tax_ledger.exceptions import InvalidTaxYearError


class Environment(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Ledger settings.

    Examples:
        RTL_SQLITE_PATH=/var/lib/rtl/ledger.db
        RTL_GEMINI_API_KEY=...
        RTL_DEFAULT_TAX_YEAR=2024/25
        RTL_LOG_FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="RTL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Rental Tax Ledger"
    app_version: str = "0.1.0"
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    # Record store
    sqlite_path: Path = Field(
        default=Path.home() / ".rental_tax_ledger" / "ledger.db",
        description="SQLite snapshot store location",
    )

    # Logging; production defaults to JSON lines unless a format is given
    log_level: LogLevel = LogLevel.INFO
    log_format: Literal["json", "console"] = "console"
    log_file: Path | None = None

    # HTTP API
    api_host: str = "127.0.0.1"
    api_port: int = Field(default=8000, ge=1, le=65535)

    # Classification / document extraction collaborator
    gemini_api_key: str | None = Field(
        default=None, description="API key for the Gemini generateContent endpoint"
    )
    gemini_model: str = "gemini-2.0-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    collaborator_timeout: float = Field(default=30.0, gt=0)
    classification_concurrency: int = Field(default=4, ge=1, le=32)

    # Reconciliation
    default_tax_year: TaxYear = TaxYear.TY_2025_26
    match_amount_tolerance: Decimal = Field(default=Decimal("0.10"), gt=0)
    match_window_days: int = Field(default=7, ge=0)

    @field_validator("sqlite_path", "log_file")
    @classmethod
    def expand_user(cls, v: Path | None) -> Path | None:
        return v.expanduser() if v is not None else None

    @field_validator("gemini_api_key")
    @classmethod
    def blank_key_is_unset(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v

    @field_validator("default_tax_year", mode="before")
    @classmethod
    def parse_tax_year(cls, v: Any) -> Any:
        """Accept any spelling ``TaxYear.parse`` does, e.g. ``2024/25``."""
        if isinstance(v, str):
            try:
                return TaxYear.parse(v)
            except InvalidTaxYearError:
                return v
        return v

    @model_validator(mode="after")
    def production_logs_json(self) -> "Settings":
        if self.is_production and "log_format" not in self.model_fields_set:
            self.log_format = "json"
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION


@lru_cache
def get_settings() -> Settings:
    """Cached settings; call ``get_settings.cache_clear()`` to reload."""
    return Settings()
