"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from cleanplayer.clients import (
    CredentialStore,
    DynamoDBCredentialStore,
    LocalCredentialStore,
    SQLiteCredentialStore,
    SpotifyOAuthClient,
)
from cleanplayer.core.config import StorageSettings, get_settings
from cleanplayer.services import (
    IdentityResolver,
    SessionEventBus,
    SpotifyTokenService,
    TokenCipherService,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_spotify_oauth_client() -> SpotifyOAuthClient:
    """Create a singleton Spotify OAuth client."""
    return SpotifyOAuthClient(_settings().spotify)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    return TokenCipherService(secret=_settings().security.token_encryption_secret)


@lru_cache()
def get_local_store() -> LocalCredentialStore:
    """Provide the device-local key/value store."""
    return LocalCredentialStore(_settings().storage.local_db_path)


def build_credential_store(
    storage: StorageSettings, cipher: TokenCipherService
) -> CredentialStore:
    """Create the shared credential store selected by ``storage.backend``."""
    if storage.backend == "dynamodb":
        return DynamoDBCredentialStore(
            table_name=storage.dynamodb_table_name,
            region_name=storage.region_name,
            cipher=cipher,
        )
    return SQLiteCredentialStore(storage.remote_db_path, cipher)


@lru_cache()
def get_credential_store() -> CredentialStore:
    """Provide the shared credential store for the configured backend."""
    return build_credential_store(_settings().storage, get_token_cipher_service())


@lru_cache()
def get_session_events() -> SessionEventBus:
    """Provide the process-wide session event hub."""
    return SessionEventBus()


@lru_cache()
def get_spotify_token_service() -> SpotifyTokenService:
    """Provide the credential lifecycle service for this process."""
    oauth_client = get_spotify_oauth_client()
    return SpotifyTokenService(
        oauth_client=oauth_client,
        identity_resolver=IdentityResolver(oauth_client),
        local_store=get_local_store(),
        remote_store=get_credential_store(),
        events=get_session_events(),
        verifier_length=_settings().spotify.verifier_length,
    )


__all__ = [
    "build_credential_store",
    "get_credential_store",
    "get_local_store",
    "get_session_events",
    "get_spotify_oauth_client",
    "get_spotify_token_service",
    "get_token_cipher_service",
]
