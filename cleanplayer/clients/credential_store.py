"""
Shared, identity-keyed storage for Spotify credentials.

Two adapters implement the same contract: a SQLite table for single-host
deployments and a DynamoDB table for shared ones. Tokens are encrypted at rest;
items written before encryption was introduced are still readable.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional, Protocol

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from cleanplayer.models.credentials import CredentialRecord

if TYPE_CHECKING:
    from cleanplayer.services.token_cipher import TokenCipherService

SORT_KEY = "oauth#spotify"


class StoreUnavailableError(Exception):
    """Raised when a credential store is unreachable, misconfigured or corrupt."""


class CredentialStore(Protocol):
    """Operations the credential lifecycle needs from the shared store."""

    def upsert(self, user_id: str, record: CredentialRecord) -> None: ...

    def get(self, user_id: str) -> Optional[CredentialRecord]: ...

    def delete(self, user_id: str) -> None: ...

    def list_all(self) -> list[CredentialRecord]: ...


def record_to_item(record: CredentialRecord, cipher: "TokenCipherService") -> Dict[str, Any]:
    """Serialize a record using the column names of the original users table."""
    return {
        "spotify_user_id": record.user_id,
        "access_token_encrypted": cipher.encrypt(record.access_token),
        "refresh_token_encrypted": cipher.encrypt(record.refresh_token),
        "expires_in": record.lifetime_seconds,
        "token_generated_at": record.issued_at.isoformat(),
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }


def item_to_record(item: Dict[str, Any], cipher: "TokenCipherService") -> CredentialRecord:
    encrypted_access = item.get("access_token_encrypted")
    encrypted_refresh = item.get("refresh_token_encrypted")
    try:
        access_token = (
            cipher.decrypt(encrypted_access)
            if encrypted_access
            else item.get("access_token") or ""
        )
        refresh_token = (
            cipher.decrypt(encrypted_refresh)
            if encrypted_refresh
            else item.get("refresh_token") or ""
        )
    except ValueError as exc:
        raise StoreUnavailableError(
            f"Stored credential for {item.get('spotify_user_id')} cannot be decrypted."
        ) from exc

    generated_at = item.get("token_generated_at")
    return CredentialRecord(
        user_id=str(item["spotify_user_id"]),
        access_token=access_token,
        refresh_token=refresh_token,
        issued_at=(
            datetime.fromisoformat(generated_at)
            if generated_at
            else datetime.fromtimestamp(0, tz=timezone.utc)
        ),
        lifetime_seconds=int(item.get("expires_in") or 0),
    )


class SQLiteCredentialStore:
    """Credential table keyed by Spotify user id."""

    def __init__(self, db_path: str, cipher: "TokenCipherService") -> None:
        self._db_path = Path(db_path)
        self._cipher = cipher
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
                f"Credential store at {self._db_path} is unavailable: {exc}"
            ) from exc

    def _ensure_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS spotify_credentials (
                    spotify_user_id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def upsert(self, user_id: str, record: CredentialRecord) -> None:
        if not user_id:
            raise ValueError("Credential records must be keyed by a user id")
        item = record_to_item(record.model_copy(update={"user_id": user_id}), self._cipher)
        now = item["updated_at"]
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO spotify_credentials (spotify_user_id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(spotify_user_id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
                """,
                (user_id, json.dumps(item), now, now),
            )

    def get(self, user_id: str) -> Optional[CredentialRecord]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT data FROM spotify_credentials WHERE spotify_user_id = ?",
                (user_id,),
            ).fetchone()
        if not row:
            return None
        return item_to_record(json.loads(row["data"]), self._cipher)

    def delete(self, user_id: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                "DELETE FROM spotify_credentials WHERE spotify_user_id = ?",
                (user_id,),
            )

    def list_all(self) -> list[CredentialRecord]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT data FROM spotify_credentials ORDER BY created_at DESC"
            ).fetchall()
        return [item_to_record(json.loads(row["data"]), self._cipher) for row in rows]


class DynamoDBCredentialStore:
    """Credential items stored under ``user#<id>`` / ``oauth#spotify``."""

    def __init__(
        self,
        *,
        table_name: Optional[str],
        region_name: str,
        cipher: "TokenCipherService",
        resource: Any = None,
    ) -> None:
        if not table_name:
            raise StoreUnavailableError("DYNAMODB_TABLE_NAME is not configured.")
        self._cipher = cipher
        self._resource = resource or boto3.resource("dynamodb", region_name=region_name)
        self._table = self._resource.Table(table_name)

    @staticmethod
    def _key(user_id: str) -> Dict[str, str]:
        return {"pk": f"user#{user_id}", "sk": SORT_KEY}

    @contextmanager
    def _guard(self) -> Iterator[None]:
        try:
            yield
        except (BotoCoreError, ClientError) as exc:
            raise StoreUnavailableError(f"DynamoDB credential store failed: {exc}") from exc

    def upsert(self, user_id: str, record: CredentialRecord) -> None:
        if not user_id:
            raise ValueError("Credential records must be keyed by a user id")
        item = record_to_item(record.model_copy(update={"user_id": user_id}), self._cipher)
        item.update(self._key(user_id))
        with self._guard():
            self._table.put_item(Item=item)

    def get(self, user_id: str) -> Optional[CredentialRecord]:
        with self._guard():
            response = self._table.get_item(Key=self._key(user_id))
        item = response.get("Item")
        if not item:
            return None
        return item_to_record(item, self._cipher)

    def delete(self, user_id: str) -> None:
        with self._guard():
            self._table.delete_item(Key=self._key(user_id))

    def list_all(self) -> list[CredentialRecord]:
        items: list[Dict[str, Any]] = []
        scan_kwargs: Dict[str, Any] = {"FilterExpression": Attr("sk").eq(SORT_KEY)}
        with self._guard():
            while True:
                response = self._table.scan(**scan_kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                scan_kwargs["ExclusiveStartKey"] = last_key
        return [item_to_record(item, self._cipher) for item in items]


__all__ = [
    "CredentialStore",
    "DynamoDBCredentialStore",
    "SQLiteCredentialStore",
    "StoreUnavailableError",
    "item_to_record",
    "record_to_item",
]
