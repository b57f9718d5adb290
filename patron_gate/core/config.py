"""
Application configuration models and helpers.

Settings are read once per process from the environment (and an optional
``.env`` file) and treated as immutable afterwards. Every group tolerates a
partially configured deployment so the service can boot and degrade instead
of crashing: missing OAuth credentials surface as ``invalid_client`` errors on
the OAuth paths, and an empty tier allow-list denies everyone.
"""

from functools import lru_cache
from typing import Annotated, Literal, Optional

from pydantic import AnyHttpUrl, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _split_csv(value: str | tuple[str, ...] | list[str] | None) -> tuple[str, ...]:
    """Support providing list settings as a comma-separated string."""
    if value is None:
        return ()
    if isinstance(value, tuple):
        return value
    if isinstance(value, list):
        return tuple(value)
    return tuple(item.strip() for item in value.split(",") if item.strip())


class _EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class PatreonSettings(_EnvSettings):
    """Configuration required for talking to the Patreon v2 API."""

    client_id: Optional[str] = Field(None, validation_alias="PATREON_CLIENT_ID")
    client_secret: Optional[str] = Field(None, validation_alias="PATREON_CLIENT_SECRET")
    redirect_uri: Optional[AnyHttpUrl] = Field(None, validation_alias="PATREON_REDIRECT_URI")
    webhook_secret: Optional[str] = Field(
        None,
        validation_alias="PATREON_WEBHOOK_SECRET",
        description="Signing secret for webhook deliveries. Validation is skipped when unset.",
    )
    webhook_digest: str = Field(
        "md5",
        validation_alias="PATREON_WEBHOOK_DIGEST",
        description="Digest Patreon uses for the webhook HMAC. Must match the sender.",
    )
    campaign_id: Optional[str] = Field(None, validation_alias="PATREON_CAMPAIGN_ID")
    tier_ids: Annotated[tuple[str, ...], NoDecode] = Field(
        (),
        validation_alias="PATREON_TIER_IDS",
        description="Tier IDs that grant access. Empty denies everyone.",
    )
    min_tier_amount_cents: int = Field(300, validation_alias="PATREON_MIN_TIER_CENTS", ge=0)
    currency_symbol: str = Field(
        "€",
        validation_alias="PATREON_CURRENCY_SYMBOL",
        description="Prefix for formatted tier prices; Patreon reports amounts in cents only.",
    )
    http_timeout_seconds: float = Field(10.0, validation_alias="PATREON_HTTP_TIMEOUT", gt=0)

    @field_validator("tier_ids", mode="before")
    @classmethod
    def _split_tier_ids(cls, value):
        return _split_csv(value)

    @property
    def oauth_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)


class StorageSettings(_EnvSettings):
    """Where credential records are persisted."""

    backend: Literal["sqlite", "dynamodb"] = Field(
        "sqlite", validation_alias="CREDENTIAL_STORE_BACKEND"
    )
    sqlite_path: str = Field("data/credentials.db", validation_alias="CREDENTIAL_DB_PATH")
    dynamodb_table_name: Optional[str] = Field(None, validation_alias="DYNAMODB_TABLE_NAME")
    region_name: str = Field("us-east-1", validation_alias="AWS_REGION")


class SecuritySettings(_EnvSettings):
    """Security-related configuration."""

    session_secret: str = Field(..., validation_alias="SESSION_SECRET", min_length=1)
    session_cookie_name: str = Field("patron_session", validation_alias="SESSION_COOKIE_NAME")
    session_max_age_seconds: int = Field(
        60 * 60 * 24 * 30, validation_alias="SESSION_MAX_AGE"
    )
    token_encryption_secrets: Annotated[tuple[str, ...], NoDecode] = Field(
        (),
        validation_alias="TOKEN_ENCRYPTION_SECRETS",
        description=(
            "Secrets used to derive Fernet keys for stored tokens, newest first. "
            "Falls back to the session secret when empty."
        ),
    )

    @field_validator("token_encryption_secrets", mode="before")
    @classmethod
    def _split_secrets(cls, value):
        return _split_csv(value)


class AppSettings(_EnvSettings):
    """Root settings object for the FastAPI application."""

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional URL browsers are sent to after logging in.",
    )
    patreon: PatreonSettings = Field(default_factory=PatreonSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "PatreonSettings",
    "SecuritySettings",
    "StorageSettings",
    "get_settings",
]
