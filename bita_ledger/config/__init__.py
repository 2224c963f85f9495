"""Configuration package."""

from bita_ledger.config.settings import (
    FirebaseSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    Settings,
    StorageSettings,
    SyncSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "FirebaseSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "Settings",
    "StorageSettings",
    "SyncSettings",
    "get_settings",
    "validate_all_settings",
]
