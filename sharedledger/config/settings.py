"""
Configuration Management for Shared Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The monetary tolerance is deliberately NOT configurable; it lives in
sharedledger.money as a design constant.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Calculation defaults for splits, installments and billing cycles."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    default_closing_day: int = Field(
        default=1,
        ge=1,
        le=31,
        description="Closing day used for cards without one in the registry"
    )
    equal_split_remainder: Literal["payer", "none"] = Field(
        default="payer",
        description=(
            "Where leftover cents of an equal split go: 'payer' cuts shares "
            "to whole cents and gives the remainder to the payer, 'none' "
            "keeps the raw quotient for everyone"
        )
    )
    max_installments: int = Field(
        default=72,
        ge=1,
        le=360,
        description="Largest installment count accepted on a new expense"
    )
    fixed_recurring_descriptions: list[str] = Field(
        default=["Rent", "Electricity", "Gas", "Building fees"],
        description=(
            "Standing monthly bills. A recurring_fixed future item with one "
            "of these descriptions replaces the existing one instead of "
            "being added next to it"
        )
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage for obligation projections and the audit log."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    obligations_sheet_name: str = Field(
        default="Obligations",
        description="Name of the sheet holding projected card obligations"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Minimum level for local structured logs"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Sub-settings are built lazily so a missing Google Sheets configuration
    doesn't prevent the pure engine from loading.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Check which sub-settings load.

    Returns a dict of {setting_name: is_valid}, with an "<name>_error"
    entry for each one that failed.
    """
    results = {}
    settings = get_settings()

    for name in ("engine", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
