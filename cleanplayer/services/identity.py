"""Resolve the canonical Spotify user id that keys the shared credential store."""

from __future__ import annotations

import logging
from typing import Protocol

from cleanplayer.clients.spotify_auth import IdentityResolutionError

logger = logging.getLogger(__name__)


class ProfileClient(Protocol):
    async def fetch_user_id(self, access_token: str) -> str: ...


class IdentityResolver:
    """Ask the profile endpoint who owns an access token.

    Results are not cached here; the lifecycle service keeps the resolved id in
    its per-session state so that logging out forgets it.
    """

    def __init__(self, client: ProfileClient) -> None:
        self._client = client

    async def resolve(self, access_token: str) -> str:
        if not access_token:
            raise IdentityResolutionError("No access token available to resolve identity.")
        user_id = await self._client.fetch_user_id(access_token)
        logger.info("Resolved Spotify identity %s", user_id)
        return user_id


__all__ = ["IdentityResolver", "ProfileClient"]
