"""
Spotify OAuth utilities.

These helpers build the PKCE authorization URL and perform the token endpoint
and profile round trips used by the credential lifecycle.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from fastapi import status

from cleanplayer.core.config import SpotifySettings
from cleanplayer.models.credentials import TokenGrant

logger = logging.getLogger(__name__)


class SpotifyAuthError(Exception):
    """Base class for failures reported by Spotify's accounts service."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TokenExchangeError(SpotifyAuthError):
    """Raised when an authorization code cannot be exchanged for tokens."""


class RedirectMismatchError(SpotifyAuthError):
    """Raised when the redirect URI differs from the one registered with Spotify."""


class RefreshError(SpotifyAuthError):
    """Raised when Spotify rejects a refresh token."""

    @property
    def token_rejected(self) -> bool:
        """True when Spotify refused the token itself rather than failing to answer."""
        return self.status_code in (
            status.HTTP_400_BAD_REQUEST,
            status.HTTP_401_UNAUTHORIZED,
        )


class IdentityResolutionError(SpotifyAuthError):
    """Raised when the profile endpoint rejects an access token."""


def _error_description(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict):
        return str(payload.get("error_description") or payload.get("error") or payload)
    return response.text


def _is_redirect_mismatch(response: httpx.Response) -> bool:
    description = _error_description(response).lower()
    return "redirect" in description and "uri" in description


def _json_object(response: httpx.Response) -> Dict[str, Any]:
    """Decode a JSON object body; any other body raises ``ValueError``."""
    payload = response.json()
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    return payload


def _parse_grant(
    response: httpx.Response,
    error_cls: type[SpotifyAuthError],
    *,
    require_refresh_token: bool,
) -> TokenGrant:
    try:
        payload = _json_object(response)
        grant = TokenGrant(
            access_token=payload.get("access_token") or "",
            refresh_token=payload.get("refresh_token") or None,
            lifetime_seconds=int(payload.get("expires_in") or 0),
        )
    except (ValueError, TypeError, OverflowError) as exc:
        raise error_cls(
            f"Malformed token payload returned from Spotify: {exc}",
            status_code=response.status_code,
        ) from exc

    if (
        not grant.access_token
        or grant.lifetime_seconds <= 0
        or (require_refresh_token and not grant.refresh_token)
    ):
        raise error_cls(
            "Incomplete token payload returned from Spotify.",
            status_code=response.status_code,
        )
    return grant


class SpotifyOAuthClient:
    """Build Spotify authorization URLs and talk to the token and profile endpoints."""

    def __init__(
        self,
        settings: SpotifySettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    @property
    def redirect_uri(self) -> str:
        return self._settings.redirect_uri

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._settings.http_timeout_seconds, transport=self._transport
        )

    def build_authorization_url(self, code_challenge: str) -> str:
        """Construct the Spotify consent URL for a PKCE challenge."""
        params = {
            "client_id": self._settings.client_id,
            "response_type": "code",
            "redirect_uri": self._settings.redirect_uri,
            "scope": " ".join(self._settings.scopes),
            "code_challenge_method": "S256",
            "code_challenge": code_challenge,
        }
        query = urlencode(params)
        return f"{self._settings.authorize_url}?{query}"

    async def exchange_authorization_code(
        self, code: str, *, code_verifier: str, redirect_uri: str
    ) -> TokenGrant:
        """
        Exchange an authorization code for tokens.

        ``redirect_uri`` must be byte-for-byte the value used to start the flow.
        """
        payload = {
            "client_id": self._settings.client_id,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        }

        try:
            async with self._client() as client:
                response = await client.post(str(self._settings.token_url), data=payload)
        except httpx.HTTPError as exc:
            raise TokenExchangeError(f"Token endpoint unreachable: {exc}") from exc

        if response.status_code != status.HTTP_200_OK:
            logger.warning(
                "Spotify token exchange returned %s", response.status_code
            )
            if response.status_code == status.HTTP_400_BAD_REQUEST and _is_redirect_mismatch(
                response
            ):
                raise RedirectMismatchError(
                    _error_description(response), status_code=response.status_code
                )
            raise TokenExchangeError(
                f"Token exchange failed: {_error_description(response)}",
                status_code=response.status_code,
            )

        return _parse_grant(response, TokenExchangeError, require_refresh_token=True)

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        """Refresh the access token using a stored refresh token."""
        payload = {
            "client_id": self._settings.client_id,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }

        try:
            async with self._client() as client:
                response = await client.post(str(self._settings.token_url), data=payload)
        except httpx.HTTPError as exc:
            raise RefreshError(f"Token endpoint unreachable: {exc}") from exc

        if response.status_code != status.HTTP_200_OK:
            logger.warning("Spotify token refresh returned %s", response.status_code)
            raise RefreshError(
                f"Token refresh failed: {_error_description(response)}",
                status_code=response.status_code,
            )

        return _parse_grant(response, RefreshError, require_refresh_token=False)

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        """Return the profile of the user owning ``access_token``."""
        try:
            async with self._client() as client:
                response = await client.get(
                    str(self._settings.profile_url),
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as exc:
            raise IdentityResolutionError(f"Profile endpoint unreachable: {exc}") from exc

        if response.status_code != status.HTTP_200_OK:
            raise IdentityResolutionError(
                f"Profile lookup failed: {_error_description(response)}",
                status_code=response.status_code,
            )
        try:
            return _json_object(response)
        except ValueError as exc:
            raise IdentityResolutionError(
                f"Malformed profile returned from Spotify: {exc}",
                status_code=response.status_code,
            ) from exc

    async def fetch_user_id(self, access_token: str) -> str:
        profile = await self.fetch_profile(access_token)
        user_id = profile.get("id")
        if not isinstance(user_id, str) or not user_id:
            raise IdentityResolutionError("Spotify profile did not include an id.")
        return user_id


__all__ = [
    "IdentityResolutionError",
    "RedirectMismatchError",
    "RefreshError",
    "SpotifyAuthError",
    "SpotifyOAuthClient",
    "TokenExchangeError",
]
