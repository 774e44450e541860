"""
FastAPI routes for the player's Spotify login and token access.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from cleanplayer.clients import StoreUnavailableError
from cleanplayer.dependencies import get_app_settings, get_spotify_token_service
from cleanplayer.models.credentials import CredentialSummary
from cleanplayer.schemas import (
    AccessTokenResponse,
    AuthorizationStart,
    LoginResult,
    LogoutResult,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/spotify/login", status_code=HTTPStatus.OK)
async def start_spotify_login(
    request: Request,
    token_service: Annotated[Any, Depends(get_spotify_token_service)],
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the Spotify consent screen.",
    ),
) -> Any:
    """
    Kick off the PKCE flow by storing a verifier and building the consent URL.
    """
    authorization_url = await token_service.begin_login()
    if authorization_url is None:
        raise HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            detail="Could not start Spotify login.",
        )

    if redirect or _wants_html(request):
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return AuthorizationStart(authorization_url=authorization_url)


@router.get("/auth/spotify/callback", status_code=HTTPStatus.OK)
async def handle_spotify_callback(
    request: Request,
    token_service: Annotated[Any, Depends(get_spotify_token_service)],
    settings: Annotated[Any, Depends(get_app_settings)],
    code: str | None = Query(default=None, description="Authorization code from Spotify."),
    error: str | None = Query(default=None, description="Error reported by Spotify."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    """Complete the code exchange and store the credential."""
    if error or not code:
        await token_service.cancel_login(error or "missing authorization code")
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail=f"Spotify authorization failed: {error or 'missing code'}.",
        )

    if not await token_service.complete_login(code):
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Failed to exchange authorization code. Please log in again.",
        )

    result = LoginResult(status="connected", user_id=token_service.current_user_id)
    redirect_target = settings.frontend_base_url
    if redirect_target and (redirect or _wants_html(request)):
        return RedirectResponse(url=str(redirect_target), status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return JSONResponse(content=result.model_dump())


@router.get("/auth/spotify/token", response_model=AccessTokenResponse)
async def get_access_token(
    token_service: Annotated[Any, Depends(get_spotify_token_service)],
) -> AccessTokenResponse:
    """Hand the player a token that is valid right now."""
    access_token = await token_service.get_usable_token()
    if access_token is None:
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="Spotify account not connected.",
        )
    return AccessTokenResponse(access_token=access_token)


@router.post("/auth/spotify/logout", response_model=LogoutResult)
async def log_out(
    token_service: Annotated[Any, Depends(get_spotify_token_service)],
) -> LogoutResult:
    await token_service.log_out()
    return LogoutResult()


@router.get("/admin/credentials", response_model=list[CredentialSummary])
async def list_credentials(
    token_service: Annotated[Any, Depends(get_spotify_token_service)],
) -> list[CredentialSummary]:
    """List stored credentials without exposing any token."""
    try:
        return token_service.list_credentials()
    except StoreUnavailableError as exc:
        logger.error("Credential listing failed: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail="Credential store unavailable.",
        ) from exc


@router.delete("/admin/credentials/{user_id}", status_code=HTTPStatus.NO_CONTENT)
async def delete_credential(
    user_id: str,
    token_service: Annotated[Any, Depends(get_spotify_token_service)],
) -> Response:
    """Remove a stored credential; the user must consent again on next login."""
    try:
        token_service.forget_remote(user_id)
    except StoreUnavailableError as exc:
        logger.error("Credential deletion failed for %s: %s", user_id, exc)
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail="Credential store unavailable.",
        ) from exc
    return Response(status_code=HTTPStatus.NO_CONTENT)
