"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the credential lifecycle
service and the maintenance scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal, Optional

import os

from pydantic import AnyHttpUrl, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


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


DEFAULT_SCOPES: tuple[str, ...] = (
    "user-read-playback-state",
    "user-modify-playback-state",
    "user-read-currently-playing",
    "streaming",
    "playlist-read-private",
    "playlist-read-collaborative",
    "user-library-modify",
    "user-library-read",
    "user-follow-read",
    "user-read-private",
    "user-read-email",
)


class SpotifySettings(BaseSettings):
    """Configuration required for the Spotify authorization flow."""

    model_config = SettingsConfigDict(populate_by_name=True)

    client_id: str = Field(..., validation_alias="SPOTIFY_CLIENT_ID")
    redirect_uri: str = Field(
        ...,
        validation_alias="SPOTIFY_REDIRECT_URI",
        description="Must match the URI registered with Spotify exactly.",
    )
    authorize_url: AnyHttpUrl = Field(
        "https://accounts.spotify.com/authorize",
        validation_alias="SPOTIFY_AUTHORIZE_URL",
    )
    token_url: AnyHttpUrl = Field(
        "https://accounts.spotify.com/api/token",
        validation_alias="SPOTIFY_TOKEN_URL",
    )
    profile_url: AnyHttpUrl = Field(
        "https://api.spotify.com/v1/me",
        validation_alias="SPOTIFY_PROFILE_URL",
    )
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        DEFAULT_SCOPES, validation_alias="SPOTIFY_SCOPES"
    )
    verifier_length: int = Field(128, validation_alias="PKCE_VERIFIER_LENGTH")
    http_timeout_seconds: float = Field(10.0, validation_alias="SPOTIFY_HTTP_TIMEOUT")

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

    @field_validator("verifier_length")
    @classmethod
    def _check_verifier_length(cls, value: int) -> int:
        if not 43 <= value <= 128:
            raise ValueError("PKCE verifier length must be between 43 and 128.")
        return value


class StorageSettings(BaseSettings):
    """Where device-local and shared credential data is persisted."""

    model_config = SettingsConfigDict(populate_by_name=True)

    backend: Literal["sqlite", "dynamodb"] = Field(
        "sqlite", validation_alias="CREDENTIAL_STORE_BACKEND"
    )
    local_db_path: str = Field(
        "data/local_store.sqlite3",
        validation_alias="LOCAL_STORE_DB_PATH",
        description="Per-device store for the PKCE verifier and legacy tokens.",
    )
    remote_db_path: str = Field(
        "data/credentials.sqlite3",
        validation_alias="REMOTE_STORE_DB_PATH",
        description="SQLite file backing the shared store when backend=sqlite.",
    )
    dynamodb_table_name: Optional[str] = Field(
        None, validation_alias="DYNAMODB_TABLE_NAME"
    )
    region_name: str = Field("us-east-1", validation_alias="AWS_REGION")


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(populate_by_name=True)

    token_encryption_secret: str = Field(
        ...,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional URL for redirecting users back to the player UI.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "DEFAULT_SCOPES",
    "SecuritySettings",
    "SpotifySettings",
    "StorageSettings",
    "get_settings",
]
