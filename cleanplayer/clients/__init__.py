"""Expose constructed client wrappers."""

from .credential_store import (
    CredentialStore,
    DynamoDBCredentialStore,
    SQLiteCredentialStore,
    StoreUnavailableError,
)
from .local_store import LocalCredentialStore
from .spotify_auth import SpotifyOAuthClient

__all__ = [
    "CredentialStore",
    "DynamoDBCredentialStore",
    "LocalCredentialStore",
    "SQLiteCredentialStore",
    "SpotifyOAuthClient",
    "StoreUnavailableError",
]
