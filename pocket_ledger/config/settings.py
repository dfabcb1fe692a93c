"""
Configuration Management for Pocket Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

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

    # Sheet names within the spreadsheet
    users_sheet_name: str = Field(
        default="Users",
        description="Name of the sheet for user accounts"
    )
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for transactions"
    )
    loan_accounts_sheet_name: str = Field(
        default="LoanAccounts",
        description="Name of the sheet for loan and credit card accounts"
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


class AuthSettings(BaseSettings):
    """Bearer token and password policy configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    jwt_secret: str = Field(
        ...,
        min_length=16,
        description="Secret used to sign bearer tokens"
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="Signing algorithm for bearer tokens"
    )
    token_lifetime_days: int = Field(
        default=7,
        ge=1,
        le=90,
        description="How long an issued token stays valid"
    )
    min_password_length: int = Field(
        default=6,
        ge=6,
        description="Minimum accepted password length"
    )
    max_password_bytes: int = Field(
        default=72,
        ge=8,
        le=72,
        description="Longest accepted password in UTF-8 bytes (bcrypt input limit)"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    storage_backend: str = Field(
        default="google_sheets",
        pattern="^(google_sheets|memory)$",
        description="Which storage backend to use"
    )

    # Presentation
    display_timezone: str = Field(
        default="Asia/Kolkata",
        description="IANA timezone used to capture dates and pick the current month"
    )
    currency_symbol: str = Field(
        default="₹",
        max_length=3,
        description="Currency symbol shown in the UI"
    )
    chart_palette: str = Field(
        default="#3b82f6,#10b981,#f59e0b,#ef4444,#8b5cf6",
        description="Comma-separated colours assigned to chart slices"
    )

    # Sanity limits
    max_transaction_amount: float = Field(
        default=10000000.0,
        gt=0,
        description="Amounts above this are flagged for review"
    )
    future_date_tolerance_days: int = Field(
        default=1,
        ge=0,
        description="How many days in the future a transaction date can be"
    )

    @field_validator('display_timezone')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """The display timezone must be a known IANA name."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        """Display timezone as a tzinfo."""
        return ZoneInfo(self.display_timezone)

    @property
    def palette(self) -> tuple[str, ...]:
        """Chart palette as a tuple of colours."""
        return tuple(c.strip() for c in self.chart_palette.split(",") if c.strip())


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are built on access so a partially configured
    # environment can still start in demo mode.

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def auth(self) -> AuthSettings:
        return AuthSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid} plus {setting_name}_error
    entries for sections that failed. Useful for startup checks.
    """
    results: dict[str, object] = {}
    settings = get_settings()

    sections = {
        "google_sheets": lambda: settings.google_sheets,
        "auth": lambda: settings.auth,
        "app": lambda: settings.app,
    }
    for name, load in sections.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results


def get_optional_sheets_settings() -> Optional[GoogleSheetsSettings]:
    """Google Sheets settings, or None when the section is not configured."""
    try:
        return get_settings().google_sheets
    except Exception:
        return None
