"""
Configuration for Finance Tracker

Every external collaborator (Gemini, Google Sheets, the identity
provider) gets its own settings class with its own env prefix, so a
deployment can configure some and not others:

    GEMINI_API_KEY            -> chat assistant and receipt reading
    GOOGLE_SHEETS_*           -> persistent storage and the audit sheet
    AUTH_JWT_SECRET           -> bearer token verification
    (no prefix)               -> AppSettings

DESIGN DECISION: Sub-settings load lazily. A missing Sheets config
means "use in-memory storage", not "refuse to start".
"""

import warnings
from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SETTINGS_SECTIONS = ("gemini", "google_sheets", "auth", "app")


class GeminiSettings(BaseSettings):
    """Gemini models for the spending assistant and receipt vision."""

    model_config = SettingsConfigDict(env_prefix="GEMINI_", extra="ignore")

    api_key: str = Field(..., description="Gemini API key")
    chat_model_name: str = Field(default="gemini-1.5-flash")
    vision_model_name: str = Field(default="gemini-1.5-flash")
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Upper bound on reply length",
    )
    temperature: float = Field(default=0.2, ge=0.0, le=1.0)
    chat_max_attempts: int = Field(
        default=3,
        ge=1,
        le=5,
        description="Chat transport attempts, counting the first one",
    )


class GoogleSheetsSettings(BaseSettings):
    """Spreadsheet backing transactions, the catalog and the audit trail."""

    model_config = SettingsConfigDict(env_prefix="GOOGLE_SHEETS_", extra="ignore")

    credentials_path: str = Field(..., description="Service account JSON file")
    spreadsheet_id: str = Field(...)

    transactions_sheet_name: str = Field(default="Transactions")
    categories_sheet_name: str = Field(default="Categories")
    payment_sources_sheet_name: str = Field(default="PaymentSources")
    audit_sheet_name: str = Field(default="AuditLog")

    @field_validator("credentials_path")
    @classmethod
    def warn_missing_credentials(cls, v: str) -> str:
        # The file may be mounted after the settings are read
        if not Path(v).exists():
            warnings.warn(f"Service account file {v} does not exist yet")
        return v


class AuthSettings(BaseSettings):
    """
    Bearer token verification.

    The identity provider signs access tokens with a shared secret;
    this service verifies them and never issues any.
    """

    model_config = SettingsConfigDict(env_prefix="AUTH_", extra="ignore")

    jwt_secret: str = Field(..., min_length=16)
    jwt_algorithm: str = Field(default="HS256")
    jwt_audience: str = Field(default="authenticated", description="Expected 'aud' claim")


class AppSettings(BaseSettings):
    """Service-wide knobs, read from the environment and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_environment: str = Field(default="development")
    debug_mode: bool = Field(default=False)

    max_upload_size_mb: int = Field(default=10, ge=1, le=50)
    supported_image_formats: str = Field(
        default="jpeg,png,webp,gif",
        description="Comma-separated Pillow format names accepted for receipts",
    )

    # Formatting only, amounts are never converted
    display_currency: str = Field(default="USD", min_length=3, max_length=3)

    rate_limit_sweep_interval_seconds: int = Field(default=300, ge=10)
    rate_limit_fail_open: bool = Field(
        default=True,
        description="Let requests through when the limiter itself errors",
    )

    @field_validator("display_currency")
    @classmethod
    def uppercase_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def supported_formats_list(self) -> list[str]:
        return [
            fmt.strip().lower()
            for fmt in self.supported_image_formats.split(",")
            if fmt.strip()
        ]

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings.

    Each property builds its section on access, so only the sections a
    code path touches need to be configured.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

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
    """Cached root settings. get_settings.cache_clear() forces a reload."""
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Check which sections are configured.

    Returns {section: is_valid} plus "<section>_error" entries holding
    the validation message for each section that failed. Used by the
    health endpoint.
    """
    settings = get_settings()
    results: dict = {}

    for section in SETTINGS_SECTIONS:
        try:
            getattr(settings, section)
        except ValidationError as e:
            results[section] = False
            results[f"{section}_error"] = str(e)
        else:
            results[section] = True

    return results
