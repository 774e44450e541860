"""
Lifecycle management for Spotify credentials.

``SpotifyTokenService`` is the only component the rest of the application asks
for an access token. It drives the PKCE login, moves tokens left on the device
by older releases into the shared store, refreshes stale tokens, and turns
every failure into ``None``/``False`` plus a user-visible notice.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from cleanplayer.clients.credential_store import CredentialStore, StoreUnavailableError
from cleanplayer.clients.local_store import (
    ACCESS_TOKEN_KEY,
    AUTH_KEYS,
    REFRESH_TOKEN_KEY,
    TOKEN_KEYS,
    USER_ID_KEY,
    VERIFIER_KEY,
    LocalCredentialStore,
)
from cleanplayer.clients.spotify_auth import (
    IdentityResolutionError,
    RedirectMismatchError,
    RefreshError,
    SpotifyAuthError,
    SpotifyOAuthClient,
)
from cleanplayer.models.credentials import CredentialRecord, CredentialSummary
from cleanplayer.services.identity import IdentityResolver
from cleanplayer.services.pkce import MAX_VERIFIER_LENGTH, PkceError, generate_pkce_pair
from cleanplayer.services.session_events import SessionEvent, SessionEventBus

logger = logging.getLogger(__name__)


class CredentialState(str, enum.Enum):
    NO_CREDENTIAL = "no_credential"
    AUTHORIZING = "authorizing"
    EXCHANGING = "exchanging"
    LOCAL_ONLY = "local_only"
    MIGRATING = "migrating"
    REMOTE_RESIDENT = "remote_resident"
    REFRESHING = "refreshing"
    FAILED = "failed"


@dataclass
class CredentialSession:
    """In-memory state owned by one service instance."""

    state: CredentialState = CredentialState.NO_CREDENTIAL
    user_id: Optional[str] = None
    last_error: Optional[Exception] = None
    # Refresh token Spotify refused this session; never sent again.
    rejected_refresh_token: Optional[str] = None

    def reset(self) -> None:
        self.state = CredentialState.NO_CREDENTIAL
        self.user_id = None
        self.last_error = None
        self.rejected_refresh_token = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SpotifyTokenService:
    """Obtain, migrate and refresh Spotify credentials for one session."""

    def __init__(
        self,
        *,
        oauth_client: SpotifyOAuthClient,
        identity_resolver: IdentityResolver,
        local_store: LocalCredentialStore,
        remote_store: CredentialStore,
        events: Optional[SessionEventBus] = None,
        verifier_length: int = MAX_VERIFIER_LENGTH,
    ) -> None:
        self._oauth = oauth_client
        self._identity = identity_resolver
        self._local = local_store
        self._remote = remote_store
        self._events = events or SessionEventBus()
        self._verifier_length = verifier_length
        self._session = CredentialSession()
        self._identity_lock = asyncio.Lock()
        self._refreshes: dict[str, asyncio.Task] = {}

    @property
    def events(self) -> SessionEventBus:
        return self._events

    @property
    def state(self) -> CredentialState:
        return self._session.state

    @property
    def current_user_id(self) -> Optional[str]:
        return self._session.user_id

    @property
    def last_error(self) -> Optional[Exception]:
        return self._session.last_error

    async def begin_login(self) -> Optional[str]:
        """Create a PKCE pair, remember the verifier and return the consent URL."""
        try:
            pair = generate_pkce_pair(self._verifier_length)
            self._local.set(VERIFIER_KEY, pair.verifier)
        except (PkceError, StoreUnavailableError) as exc:
            await self._fail(exc, "Could not start Spotify login")
            return None

        self._transition(CredentialState.AUTHORIZING)
        return self._oauth.build_authorization_url(pair.challenge)

    async def complete_login(self, code: str, *, redirect_uri: Optional[str] = None) -> bool:
        """Exchange the authorization code and store the credential remotely.

        The stored verifier is discarded whatever the outcome.
        """
        self._transition(CredentialState.EXCHANGING)
        try:
            if redirect_uri is not None and redirect_uri != self._oauth.redirect_uri:
                raise RedirectMismatchError(
                    f"Callback received on {redirect_uri!r} but the flow was "
                    f"started with {self._oauth.redirect_uri!r}."
                )
            verifier = self._local.get(VERIFIER_KEY)
            if not verifier:
                raise PkceError("No PKCE verifier stored; start the login flow first.")
            grant = await self._oauth.exchange_authorization_code(
                code, code_verifier=verifier, redirect_uri=self._oauth.redirect_uri
            )
        except (PkceError, SpotifyAuthError, StoreUnavailableError) as exc:
            await self._fail(exc, "Login failed, please log in again")
            return False
        finally:
            self._discard_verifier()

        record = CredentialRecord.from_grant("", grant, issued_at=_utcnow())
        try:
            user_id = await self._identity.resolve(grant.access_token)
        except IdentityResolutionError as exc:
            self._park_locally(record)
            await self._fail(exc, "Logged in, but your Spotify account could not be verified")
            return False

        record = record.model_copy(update={"user_id": user_id})
        try:
            self._remote.upsert(user_id, record)
            self._local.set(USER_ID_KEY, user_id)
            self._local.remove(*TOKEN_KEYS)
        except StoreUnavailableError as exc:
            self._park_locally(record)
            await self._fail(exc, "Logged in, but your login could not be saved")
            return False

        self._session.user_id = user_id
        self._session.last_error = None
        self._session.rejected_refresh_token = None
        self._transition(CredentialState.REMOTE_RESIDENT)
        await self._notify("Logged in!")
        return True

    async def cancel_login(self, reason: str) -> None:
        """Abandon a login the user declined or that Spotify aborted."""
        self._discard_verifier()
        logger.warning("Spotify authorization was not completed: %s", reason)
        self._transition(CredentialState.NO_CREDENTIAL)
        await self._notify("Login cancelled")

    async def get_usable_token(self) -> Optional[str]:
        """Return an access token that is valid right now, or ``None``.

        ``None`` means the caller has to send the user through login again.
        """
        try:
            user_id = await self._resolve_session_user()
            if user_id is None:
                return None
            record = self._remote.get(user_id)
        except (SpotifyAuthError, StoreUnavailableError) as exc:
            await self._fail(exc, "Could not load your Spotify login")
            return None

        if record is None or record.is_absent:
            logger.info("No stored credential for %s; login required", user_id)
            self._transition(CredentialState.NO_CREDENTIAL)
            return None

        if record.is_usable():
            self._transition(CredentialState.REMOTE_RESIDENT)
            return record.access_token

        if record.refresh_token == self._session.rejected_refresh_token:
            logger.info("Refresh token for %s was rejected earlier; login required", user_id)
            self._transition(CredentialState.FAILED)
            return None

        return await self._refresh_once(record)

    async def log_out(self) -> None:
        """Forget this device's login without touching the shared store."""
        try:
            self._local.remove(*AUTH_KEYS)
        except StoreUnavailableError as exc:
            logger.error("Failed to clear local credentials during logout: %s", exc)
        self._session.reset()
        self._refreshes.clear()
        await self._notify("Logged out!")
        await self._events.publish(SessionEvent.RESET)

    def list_credentials(self) -> list[CredentialSummary]:
        return [CredentialSummary.from_record(record) for record in self._remote.list_all()]

    def forget_remote(self, user_id: str) -> None:
        """Delete the shared record for ``user_id``; consent is needed to log in again."""
        self._remote.delete(user_id)
        if self._session.user_id == user_id:
            self._session.reset()
        if self._local.get(USER_ID_KEY) == user_id:
            self._local.remove(USER_ID_KEY)
        logger.info("Deleted stored credential for %s", user_id)

    async def _resolve_session_user(self) -> Optional[str]:
        if self._session.user_id:
            return self._session.user_id

        async with self._identity_lock:
            if self._session.user_id:
                return self._session.user_id

            local_values = self._local.get_many(TOKEN_KEYS + (USER_ID_KEY,))
            if local_values.get(ACCESS_TOKEN_KEY) and local_values.get(REFRESH_TOKEN_KEY):
                self._transition(CredentialState.LOCAL_ONLY)
                return await self._migrate(CredentialRecord.from_local_values(local_values))

            pointer = local_values.get(USER_ID_KEY)
            if pointer:
                self._session.user_id = pointer
                return pointer

            self._transition(CredentialState.NO_CREDENTIAL)
            return None

    async def _migrate(self, local_record: CredentialRecord) -> Optional[str]:
        try:
            user_id = await self._identity.resolve(local_record.access_token)
        except IdentityResolutionError as exc:
            # Tokens stay on the device so the refresh token is not lost.
            await self._fail(exc, "Please log in to Spotify again")
            return None

        self._transition(CredentialState.MIGRATING)
        record = local_record.model_copy(update={"user_id": user_id})
        existing = self._remote.get(user_id)
        if existing is not None and not existing.is_absent and existing.issued_at > record.issued_at:
            logger.info("Shared credential for %s is newer than the local copy; keeping it", user_id)
        else:
            self._remote.upsert(user_id, record)
        self._local.set(USER_ID_KEY, user_id)
        self._local.remove(*TOKEN_KEYS)
        self._session.user_id = user_id
        logger.info("Migrated local credential for %s to the shared store", user_id)
        return user_id

    async def _refresh_once(self, record: CredentialRecord) -> Optional[str]:
        user_id = record.user_id
        task = self._refreshes.get(user_id)
        if task is None:
            task = asyncio.ensure_future(self._refresh(record))
            self._refreshes[user_id] = task
            task.add_done_callback(lambda done, uid=user_id: self._forget_refresh(uid, done))
        return await asyncio.shield(task)

    def _forget_refresh(self, user_id: str, task: asyncio.Task) -> None:
        if self._refreshes.get(user_id) is task:
            del self._refreshes[user_id]

    async def _refresh(self, record: CredentialRecord) -> Optional[str]:
        self._transition(CredentialState.REFRESHING)
        logger.info("Access token for %s expired, refreshing", record.user_id)
        try:
            grant = await self._oauth.refresh_token(record.refresh_token)
        except SpotifyAuthError as exc:
            if isinstance(exc, RefreshError) and exc.token_rejected:
                self._session.rejected_refresh_token = record.refresh_token
            await self._fail(exc, "Error refreshing token")
            return None

        refreshed = record.apply_grant(grant, issued_at=_utcnow())
        try:
            self._remote.upsert(refreshed.user_id, refreshed)
        except StoreUnavailableError as exc:
            # The old refresh token may already be revoked by rotation.
            self._park_locally(refreshed)
            await self._fail(exc, "Error refreshing token")
            return None

        self._transition(CredentialState.REMOTE_RESIDENT)
        await self._notify("Regenerated access token")
        return refreshed.access_token

    def _park_locally(self, record: CredentialRecord) -> None:
        """Keep tokens on the device so the next token request migrates them."""
        try:
            self._local.update(record.to_local_values())
        except StoreUnavailableError as exc:
            logger.error("Could not keep tokens on this device; they are lost: %s", exc)
            return
        self._session.user_id = None
        self._transition(CredentialState.LOCAL_ONLY)

    def _discard_verifier(self) -> None:
        try:
            self._local.remove(VERIFIER_KEY)
        except StoreUnavailableError as exc:
            logger.error("Could not discard the PKCE verifier: %s", exc)

    async def _fail(self, exc: Exception, message: str) -> None:
        self._session.last_error = exc
        if self._session.state is not CredentialState.LOCAL_ONLY:
            self._transition(CredentialState.FAILED)
        if isinstance(exc, RedirectMismatchError):
            logger.critical(
                "Redirect URI mismatch; SPOTIFY_REDIRECT_URI must match the Spotify "
                "app settings exactly: %s",
                exc,
            )
        else:
            logger.error("%s: %s", message, exc)
        await self._notify(message)

    async def _notify(self, message: str) -> None:
        await self._events.publish(SessionEvent.NOTICE, message)

    def _transition(self, state: CredentialState) -> None:
        if state is not self._session.state:
            logger.debug("Credential state %s -> %s", self._session.state.value, state.value)
        self._session.state = state


__all__ = ["CredentialSession", "CredentialState", "SpotifyTokenService"]
