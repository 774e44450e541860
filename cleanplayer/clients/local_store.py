"""SQLite-backed substitute for the browser's per-device localStorage."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional

from cleanplayer.clients.credential_store import StoreUnavailableError

VERIFIER_KEY = "verifier"
ACCESS_TOKEN_KEY = "accessToken"
REFRESH_TOKEN_KEY = "refreshToken"
EXPIRY_TIME_KEY = "expiryTime"
TOKEN_GENERATION_TIME_KEY = "tokenGenerationTime"
USER_ID_KEY = "spotifyUserId"

TOKEN_KEYS = (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    EXPIRY_TIME_KEY,
    TOKEN_GENERATION_TIME_KEY,
)
# Cleared on logout; the user id pointer is deliberately not part of this set.
AUTH_KEYS = TOKEN_KEYS + (VERIFIER_KEY,)


class LocalCredentialStore:
    """String key/value store that survives restarts but is never shared."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            with self._connect() as conn:
                yield conn
        except sqlite3.Error as exc:
            raise StoreUnavailableError(
                f"Local store at {self._db_path} is unavailable: {exc}"
            ) from exc

    def _ensure_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS local_storage (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    def get(self, key: str) -> Optional[str]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT value FROM local_storage WHERE key = ?", (key,)
            ).fetchone()
        if not row:
            return None
        return row["value"]

    def set(self, key: str, value: str) -> None:
        self.update({key: value})

    def update(self, values: Dict[str, str]) -> None:
        """Write several keys in one transaction."""
        with self._transaction() as conn:
            conn.executemany(
                """
                INSERT INTO local_storage (key, value)
                VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                [(key, str(value)) for key, value in values.items()],
            )

    def remove(self, *keys: str) -> None:
        if not keys:
            return
        with self._transaction() as conn:
            conn.executemany(
                "DELETE FROM local_storage WHERE key = ?", [(key,) for key in keys]
            )

    def get_many(self, keys: Iterable[str]) -> Dict[str, Optional[str]]:
        return {key: self.get(key) for key in keys}


__all__ = [
    "ACCESS_TOKEN_KEY",
    "AUTH_KEYS",
    "EXPIRY_TIME_KEY",
    "LocalCredentialStore",
    "REFRESH_TOKEN_KEY",
    "TOKEN_GENERATION_TIME_KEY",
    "TOKEN_KEYS",
    "USER_ID_KEY",
    "VERIFIER_KEY",
]
