"""Public schema exports."""

from .auth import AccessTokenResponse, AuthorizationStart, LoginResult, LogoutResult

__all__ = [
    "AccessTokenResponse",
    "AuthorizationStart",
    "LoginResult",
    "LogoutResult",
]
