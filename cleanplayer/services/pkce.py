"""PKCE (Proof Key for Code Exchange) verifier and challenge generation."""

from __future__ import annotations

import base64
import hashlib
import secrets
import string
from dataclasses import dataclass

VERIFIER_ALPHABET = string.ascii_letters + string.digits
MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128


class PkceError(ValueError):
    """Raised when a verifier or challenge cannot be produced."""


@dataclass(frozen=True, slots=True)
class PkcePair:
    verifier: str
    challenge: str


def generate_verifier(length: int = MAX_VERIFIER_LENGTH) -> str:
    """Return a random verifier of ``length`` characters from ``[A-Za-z0-9]``."""
    if not MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH:
        raise PkceError(
            f"Verifier length must be between {MIN_VERIFIER_LENGTH} and "
            f"{MAX_VERIFIER_LENGTH}, got {length}."
        )
    return "".join(secrets.choice(VERIFIER_ALPHABET) for _ in range(length))


def derive_challenge(verifier: str) -> str:
    """SHA-256 the verifier and base64url-encode the digest without padding."""
    if not verifier:
        raise PkceError("Cannot derive a challenge from an empty verifier.")
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def generate_pkce_pair(length: int = MAX_VERIFIER_LENGTH) -> PkcePair:
    verifier = generate_verifier(length)
    return PkcePair(verifier=verifier, challenge=derive_challenge(verifier))


__all__ = [
    "PkceError",
    "PkcePair",
    "derive_challenge",
    "generate_pkce_pair",
    "generate_verifier",
]
