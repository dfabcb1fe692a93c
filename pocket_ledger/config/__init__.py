"""Configuration package."""

from pocket_ledger.config.settings import (
    AppSettings,
    AuthSettings,
    GoogleSheetsSettings,
    Settings,
    get_optional_sheets_settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "AuthSettings",
    "GoogleSheetsSettings",
    "Settings",
    "get_optional_sheets_settings",
    "get_settings",
    "validate_all_settings",
]
