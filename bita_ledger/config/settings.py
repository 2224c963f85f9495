"""
Configuration Management for BITA Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """On-device durable storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_STORAGE_",
        extra="ignore"
    )

    data_dir: Path = Field(
        default=Path.home() / ".bita",
        description="Directory holding the durable snapshot store"
    )
    store_name: str = Field(
        default="BITA_STORAGE",
        min_length=1,
        description="Name of the local snapshot store"
    )
    snapshot_key: str = Field(
        default="sqlite_binary",
        min_length=1,
        description="Key the database snapshot is stored under"
    )
    revision_file: str = Field(
        default="bita_rev",
        min_length=1,
        description="Name of the lightweight revision marker file"
    )

    @property
    def store_path(self) -> Path:
        """Path to the SQLite file holding the snapshot blob."""
        return self.data_dir / f"{self.store_name}.sqlite3"

    @property
    def revision_path(self) -> Path:
        """Path to the revision marker."""
        return self.data_dir / self.revision_file


class SyncSettings(BaseSettings):
    """Remote backup synchronization configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_SYNC_",
        extra="ignore"
    )

    backend: Literal["firebase", "google_sheets", "memory"] = Field(
        default="firebase",
        description="Remote backup slot implementation"
    )
    background_uploads: bool = Field(
        default=False,
        description="Upload after each mutation without waiting for it"
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout for a single remote request"
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per remote call before giving up"
    )


class FirebaseSettings(BaseSettings):
    """Firebase Realtime Database backup slot configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIREBASE_",
        extra="ignore"
    )

    database_url: str = Field(
        ...,
        description="Realtime Database URL, e.g. https://<project>.firebaseio.com"
    )
    backup_path_template: str = Field(
        default="users/{account_id}/sqlite_backup",
        description="Path of the per-account backup record"
    )

    @field_validator('database_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator('backup_path_template')
    @classmethod
    def require_account_placeholder(cls, v: str) -> str:
        if "{account_id}" not in v:
            raise ValueError("backup_path_template must contain '{account_id}'")
        return v.strip("/")


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets backup slot configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
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
    backups_sheet_name: str = Field(
        default="Backups",
        description="Name of the sheet holding one backup row per account"
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


class GeminiSettings(BaseSettings):
    """Vision model configuration for invoice extraction."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        default="",
        description="Gemini API key (extraction is disabled when empty)"
    )
    model_name: str = Field(
        default="gemma-3-27b-it",
        description="Primary multimodal model"
    )
    fallback_model_name: Optional[str] = Field(
        default="gemini-1.5-flash",
        description="Model tried when the primary one fails"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and self.api_key != "PLACEHOLDER_API_KEY"


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

    # Sub-settings are loaded lazily so a missing Firebase or Sheets
    # configuration does not break a session that never uses it.

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def firebase(self) -> FirebaseSettings:
        return FirebaseSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("storage", "sync", "firebase", "google_sheets", "gemini"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
