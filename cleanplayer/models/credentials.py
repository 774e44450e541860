"""
Domain models for Spotify credential persistence.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)
# Spotify access tokens last an hour; anything past a day is corrupt data.
_MAX_LOCAL_LIFETIME_SECONDS = 24 * 60 * 60


def _parse_local_number(value: Optional[str]) -> int:
    try:
        return int(float(value or 0))
    except (ValueError, OverflowError):
        return 0


def _parse_local_timestamp(value: Optional[str]) -> datetime:
    """Epoch milliseconds to an aware datetime; unreadable or future values map to the epoch."""
    try:
        issued_at = datetime.fromtimestamp(
            _parse_local_number(value) / 1000, tz=timezone.utc
        )
    except (ValueError, OverflowError, OSError):
        return _EPOCH
    if issued_at > _utcnow():
        return _EPOCH
    return issued_at


class TokenGrant(BaseModel):
    """Tokens returned by the Spotify token endpoint for one grant."""

    access_token: str
    refresh_token: Optional[str] = Field(
        None, description="Absent when Spotify does not rotate the refresh token."
    )
    lifetime_seconds: int


class CredentialRecord(BaseModel):
    """Represents the credential stored for one Spotify user."""

    user_id: str = Field(..., description="Canonical Spotify user id.")
    access_token: str = ""
    refresh_token: str = ""
    issued_at: datetime = Field(default_factory=_utcnow)
    lifetime_seconds: int = 3600

    @field_validator("issued_at")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.lifetime_seconds)

    @property
    def is_absent(self) -> bool:
        """A record without both tokens cannot be used or refreshed."""
        return not self.access_token or not self.refresh_token

    def is_usable(self, now: Optional[datetime] = None) -> bool:
        """Return True while ``now`` falls inside the token's validity window."""
        if self.is_absent:
            return False
        return (now or _utcnow()) < self.expires_at

    def apply_grant(self, grant: TokenGrant, *, issued_at: datetime) -> "CredentialRecord":
        """Return a copy updated with a refreshed grant.

        The previous refresh token is retained when the grant does not carry a
        rotated one.
        """
        return self.model_copy(
            update={
                "access_token": grant.access_token,
                "refresh_token": grant.refresh_token or self.refresh_token,
                "issued_at": issued_at,
                "lifetime_seconds": grant.lifetime_seconds,
            }
        )

    @classmethod
    def from_grant(
        cls, user_id: str, grant: TokenGrant, *, issued_at: datetime
    ) -> "CredentialRecord":
        return cls(
            user_id=user_id,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token or "",
            issued_at=issued_at,
            lifetime_seconds=grant.lifetime_seconds,
        )

    @classmethod
    def from_local_values(
        cls, values: Mapping[str, Optional[str]], *, user_id: str = ""
    ) -> "CredentialRecord":
        """Build a record from the browser-era local store entries.

        ``tokenGenerationTime`` is epoch milliseconds and ``expiryTime`` is the
        lifetime in seconds. Missing or malformed timing fields yield a record
        that is already stale.
        """
        lifetime = _parse_local_number(values.get("expiryTime"))
        if not 0 <= lifetime <= _MAX_LOCAL_LIFETIME_SECONDS:
            lifetime = 0
        return cls(
            user_id=user_id,
            access_token=values.get("accessToken") or "",
            refresh_token=values.get("refreshToken") or "",
            issued_at=_parse_local_timestamp(values.get("tokenGenerationTime")),
            lifetime_seconds=lifetime,
        )

    def to_local_values(self) -> dict[str, str]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiryTime": str(self.lifetime_seconds),
            "tokenGenerationTime": str(int(self.issued_at.timestamp() * 1000)),
        }


class CredentialSummary(BaseModel):
    """Secret-free view of a stored credential used for administration."""

    user_id: str
    issued_at: datetime
    expires_at: datetime
    usable: bool

    @classmethod
    def from_record(cls, record: CredentialRecord) -> "CredentialSummary":
        return cls(
            user_id=record.user_id,
            issued_at=record.issued_at,
            expires_at=record.expires_at,
            usable=record.is_usable(),
        )


__all__ = ["CredentialRecord", "CredentialSummary", "TokenGrant"]
