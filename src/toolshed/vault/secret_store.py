"""
Write-once secret storage.

Secrets are operator-entered values (API keys, tokens) that tools declare
they need. Each is stored under "{toolName}-{secretName}".

Policy:
    - set_secret_once() never overwrites: the first stored value wins and
      repeated calls are no-ops
    - Rotating a secret means delete_secret() followed by set_secret_once()

Values are stored as plain text in SQLite; protect the database file with
filesystem permissions.
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from toolshed.errors import StorageConnectionError, StorageReadError, StorageWriteError
from toolshed.store.db import now_iso

logger = logging.getLogger(__name__)

CREATE_SECRETS_SQL = """
CREATE TABLE IF NOT EXISTS tool_secrets (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    created_at TEXT NOT NULL
);
"""


def secret_key(tool_name: str, secret_name: str) -> str:
    """Storage key for one secret of one tool."""
    return f"{tool_name}-{secret_name}"


class SecretStore(ABC):
    """Interface for durable, write-once secret persistence."""

    @abstractmethod
    def init(self) -> None:
        """Prepare the backing storage. Idempotent."""
        ...

    @abstractmethod
    def get_secret(self, key: str) -> str | None:
        """Return the stored value, or None if absent."""
        ...

    @abstractmethod
    def set_secret_once(self, key: str, value: str) -> bool:
        """
        Store a value unless the key already has one.

        Returns:
            True if the value was newly stored, False if the key was taken
        """
        ...

    @abstractmethod
    def delete_secret(self, key: str) -> bool:
        """Remove a secret. Returns whether it existed."""
        ...

    @abstractmethod
    def clear_all_secrets(self) -> int:
        """Remove every secret. Returns how many were removed."""
        ...

    @abstractmethod
    def list_keys(self, prefix: str | None = None) -> list[str]:
        """Stored keys (never values), optionally filtered by prefix."""
        ...


class SqliteSecretStore(SecretStore):
    """
    SecretStore backed by a SQLite table.

    Usage:
        with SqliteSecretStore("secrets.db") as secrets:
            secrets.init()
            secrets.set_secret_once(secret_key("weather", "api_key"), "...")
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def init(self) -> None:
        if self._conn is not None:
            return
        try:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
        except (sqlite3.Error, OSError) as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connect",
                message=f"Failed to open secret store: {e}",
            ) from e

        try:
            conn.executescript(CREATE_SECRETS_SQL).close()
            conn.commit()
        except sqlite3.Error as e:
            conn.close()
            raise StorageWriteError(
                operation="init_secrets",
                underlying_error=str(e),
            ) from e
        self._conn = conn

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self.init()
        return self._conn

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "SqliteSecretStore":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def get_secret(self, key: str) -> str | None:
        try:
            row = self._connection().execute(
                "SELECT value FROM tool_secrets WHERE key = ?",
                (key,),
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(operation="get_secret", underlying_error=str(e)) from e
        return row["value"] if row is not None else None

    def set_secret_once(self, key: str, value: str) -> bool:
        conn = self._connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO tool_secrets (key, value, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO NOTHING
                """,
                (key, value, now_iso()),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(operation="set_secret_once", underlying_error=str(e)) from e

        stored = cursor.rowcount > 0
        if not stored:
            logger.debug("Secret %s already set; keeping existing value", key)
        return stored

    def delete_secret(self, key: str) -> bool:
        conn = self._connection()
        try:
            cursor = conn.execute("DELETE FROM tool_secrets WHERE key = ?", (key,))
            conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(operation="delete_secret", underlying_error=str(e)) from e
        return cursor.rowcount > 0

    def clear_all_secrets(self) -> int:
        conn = self._connection()
        try:
            cursor = conn.execute("DELETE FROM tool_secrets")
            conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(operation="clear_all_secrets", underlying_error=str(e)) from e
        return cursor.rowcount

    def list_keys(self, prefix: str | None = None) -> list[str]:
        sql = "SELECT key FROM tool_secrets"
        params: tuple[Any, ...] = ()
        if prefix:
            sql += " WHERE substr(key, 1, length(?)) = ?"
            params = (prefix, prefix)
        sql += " ORDER BY key"
        try:
            rows = self._connection().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageReadError(operation="list_keys", underlying_error=str(e)) from e
        return [row["key"] for row in rows]
