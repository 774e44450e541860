"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_credential_store,
    get_local_store,
    get_session_events,
    get_spotify_oauth_client,
    get_spotify_token_service,
    get_token_cipher_service,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_app_settings",
    "get_credential_store",
    "get_local_store",
    "get_session_events",
    "get_spotify_oauth_client",
    "get_spotify_token_service",
    "get_token_cipher_service",
]
