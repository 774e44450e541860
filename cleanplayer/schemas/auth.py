"""Schemas related to the Spotify login flow and token access."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class AuthorizationStart(BaseModel):
    """Returned when a login is started for non-browser clients."""

    authorization_url: str = Field(..., description="Spotify consent URL to open.")


class LoginResult(BaseModel):
    status: str = Field(..., description="'connected' once tokens are stored.")
    user_id: Optional[str] = None


class AccessTokenResponse(BaseModel):
    """Usable bearer token for the web playback client."""

    access_token: str
    token_type: str = "Bearer"


class LogoutResult(BaseModel):
    status: str = "logged_out"


__all__ = ["AccessTokenResponse", "AuthorizationStart", "LoginResult", "LogoutResult"]
