"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the Google proxy and the
maintenance scripts share a consistent configuration surface. Each Google-backed
application (the portal itself and the course evaluation tooling) carries its
own client registration and fake/live switch.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal, Optional

import os

from pydantic import AnyHttpUrl, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

APP_ID = "Google"
OEC_APP_ID = "OEC"


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class UnknownAppError(LookupError):
    """Raised when an application identifier has no proxy configuration."""


class ProxyAppSettings(BaseSettings):
    """Client registration and mode for one Google-backed application."""

    fake: bool = Field(
        False,
        description="Serve every call from JSON fixtures instead of the live API.",
    )
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    token_uri: str = "https://oauth2.googleapis.com/token"
    redirect_uri: Optional[AnyHttpUrl] = None
    scopes: Annotated[tuple[str, ...], NoDecode] = (
        "https://www.googleapis.com/auth/drive",
        "https://www.googleapis.com/auth/spreadsheets",
        "https://www.googleapis.com/auth/calendar",
        "https://www.googleapis.com/auth/userinfo.email",
        "openid",
    )
    fixtures_dir: str = Field(
        "fixtures/json",
        description="Directory holding canned responses used in fake mode.",
    )
    timeout_seconds: float = Field(30.0, gt=0)

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope.strip() for scope in value.split(",") if scope.strip())


class GoogleProxySettings(ProxyAppSettings):
    """Google Workspace access on behalf of portal users."""

    model_config = SettingsConfigDict(env_prefix="GOOGLE_PROXY_", extra="ignore")


class OecGoogleSettings(ProxyAppSettings):
    """Google Workspace access for the course evaluation tooling."""

    model_config = SettingsConfigDict(env_prefix="OEC_GOOGLE_", extra="ignore")


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )


class OAuthSettings(BaseSettings):
    """OAuth consent flow configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    state_secret: Optional[str] = Field(
        None,
        validation_alias="OAUTH_STATE_SECRET",
        description="Signing key for state tokens; falls back to the client secret.",
    )


class CredentialStoreSettings(BaseSettings):
    """Where OAuth credential records are persisted."""

    model_config = SettingsConfigDict(env_prefix="CREDENTIAL_STORE_", extra="ignore")

    backend: Literal["sqlite", "dynamodb"] = "sqlite"
    sqlite_path: str = "data/credentials.db"
    dynamodb_table_name: Optional[str] = None
    aws_region: str = "us-east-1"


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional URL for redirecting users back to the portal.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    store: CredentialStoreSettings = Field(default_factory=CredentialStoreSettings)
    google_proxy: GoogleProxySettings = Field(default_factory=GoogleProxySettings)
    oec_google: OecGoogleSettings = Field(default_factory=OecGoogleSettings)


def resolve_app_config(settings: AppSettings, app_id: str | None = None) -> ProxyAppSettings:
    """Return the proxy settings block registered for ``app_id``."""
    app_id = app_id or APP_ID
    if app_id == APP_ID:
        return settings.google_proxy
    if app_id == OEC_APP_ID:
        return settings.oec_google
    raise UnknownAppError(f"No proxy configuration for app {app_id!r}.")


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()


__all__ = [
    "APP_ID",
    "AppSettings",
    "CredentialStoreSettings",
    "GoogleProxySettings",
    "OAuthSettings",
    "OEC_APP_ID",
    "OecGoogleSettings",
    "ProxyAppSettings",
    "SecuritySettings",
    "UnknownAppError",
    "get_settings",
    "resolve_app_config",
]
