"""Service layer exports."""

from .identity import IdentityResolver
from .pkce import PkceError, PkcePair, derive_challenge, generate_pkce_pair, generate_verifier
from .session_events import SessionEvent, SessionEventBus
from .spotify_tokens import CredentialSession, CredentialState, SpotifyTokenService
from .token_cipher import TokenCipherService

__all__ = [
    "CredentialSession",
    "CredentialState",
    "IdentityResolver",
    "PkceError",
    "PkcePair",
    "SessionEvent",
    "SessionEventBus",
    "SpotifyTokenService",
    "TokenCipherService",
    "derive_challenge",
    "generate_pkce_pair",
    "generate_verifier",
]
