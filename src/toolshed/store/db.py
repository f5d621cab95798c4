"""
SQLite storage for toolshed.

This module provides persistent memory for the agent: chat messages,
remembered facts and the tool execution log. Everything lives in a single
SQLite database file.

Design Principles:
    - Append-only execution log: records are never modified
    - Integrity: input/output hashes on every execution record
    - Self-contained: one .db file holds the whole history

Tables:
    - chat_messages: Chat transcript, oldest first by id
    - facts: Key/value facts, upserted by key
    - execution_logs: One row per tool invocation attempt
"""

import hashlib
import json
import sqlite3
import uuid
from collections.abc import Iterable, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Generator

from toolshed.errors import StorageConnectionError, StorageReadError, StorageWriteError
from toolshed.schema import ChatMessage, ExecutionLog, FactRecord, LogStatus, Role

# Schema version for migrations
SCHEMA_VERSION = 1

# SQL for creating tables
CREATE_TABLES_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

-- Chat transcript
CREATE TABLE IF NOT EXISTS chat_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    timestamp TEXT NOT NULL
);

-- Remembered facts
CREATE TABLE IF NOT EXISTS facts (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Tool execution log
CREATE TABLE IF NOT EXISTS execution_logs (
    log_id TEXT PRIMARY KEY,
    tool_name TEXT NOT NULL,
    input_json TEXT,
    output_json TEXT,
    error TEXT,
    status TEXT NOT NULL,
    started_at TEXT NOT NULL,
    finished_at TEXT NOT NULL,
    input_hash TEXT NOT NULL,
    output_hash TEXT NOT NULL
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_execution_logs_tool_name ON execution_logs(tool_name);
CREATE INDEX IF NOT EXISTS idx_execution_logs_started_at ON execution_logs(started_at);
"""


def generate_id() -> str:
    """Generate a short unique ID for log records and invocations."""
    return str(uuid.uuid4())[:8]


def compute_hash(data: Any) -> str:
    """Compute SHA256 hash of data."""
    if data is None:
        return ""
    if isinstance(data, str):
        content = data.encode("utf-8")
    elif isinstance(data, bytes):
        content = data
    else:
        content = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def now_iso() -> str:
    """Get current UTC time in ISO format."""
    return datetime.now(UTC).isoformat()


def _dump_json(data: Any) -> str | None:
    return json.dumps(data, default=str) if data is not None else None


class ToolshedDB:
    """
    SQLite database for chat memory and the execution log.

    Usage:
        db = ToolshedDB("toolshed.db")
        db.save_message(ChatMessage.user("hi"))
        db.record_execution(log)
        db.close()

    Or use as context manager:
        with ToolshedDB("toolshed.db") as db:
            ...
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file, or ":memory:".
                     Will be created if it doesn't exist.
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._connect()
        self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
        except (sqlite3.Error, OSError) as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connect",
                message=f"Failed to connect to database: {e}",
            ) from e

    def _init_schema(self) -> None:
        """Initialize database schema if needed."""
        try:
            cursor = self._conn.executescript(CREATE_TABLES_SQL)
            cursor.close()

            cursor = self._conn.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            row = cursor.fetchone()
            if row is None:
                self._conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, now_iso()),
                )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="init_schema",
                underlying_error=str(e),
            ) from e

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """Context manager for database transactions."""
        try:
            yield
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "ToolshedDB":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager."""
        self.close()

    # =========================================================================
    # Chat Messages
    # =========================================================================

    def save_message(self, message: ChatMessage) -> None:
        """Append a message to the transcript."""
        try:
            self._conn.execute(
                "INSERT INTO chat_messages (role, content, timestamp) VALUES (?, ?, ?)",
                (message.role.value, message.content, now_iso()),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="save_message",
                underlying_error=str(e),
            ) from e

    def get_recent_messages(self, limit: int = 20) -> list[ChatMessage]:
        """
        Get the most recent messages.

        Args:
            limit: Maximum number of messages to return

        Returns:
            Messages in chronological order (oldest first)
        """
        try:
            cursor = self._conn.execute(
                "SELECT role, content FROM chat_messages ORDER BY id DESC LIMIT ?",
                (limit,),
            )
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="get_recent_messages",
                underlying_error=str(e),
            ) from e
        return [
            ChatMessage(role=Role(row["role"]), content=row["content"])
            for row in reversed(rows)
        ]

    def clear_chat_history(self) -> int:
        """Delete the whole transcript. Returns the number of messages removed."""
        try:
            cursor = self._conn.execute("DELETE FROM chat_messages")
            self._conn.commit()
            return cursor.rowcount
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="clear_chat_history",
                underlying_error=str(e),
            ) from e

    # =========================================================================
    # Facts
    # =========================================================================

    def upsert_facts(self, facts: Mapping[str, str]) -> int:
        """
        Insert or update facts by key.

        Blank keys are skipped.

        Returns:
            Number of facts written
        """
        rows = [
            (key.strip(), str(value), now_iso())
            for key, value in facts.items()
            if key and key.strip()
        ]
        if not rows:
            return 0

        try:
            with self.transaction():
                self._conn.executemany(
                    """
                    INSERT INTO facts (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    rows,
                )
            return len(rows)
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="upsert_facts",
                underlying_error=str(e),
            ) from e

    def search_facts(self, terms: Iterable[str], limit: int = 10) -> list[FactRecord]:
        """
        Find facts whose key or value contains any of the terms.

        Matching is case-insensitive. Blank terms are ignored; with no
        usable terms the result is empty.

        Returns:
            Matching facts, most recently updated first
        """
        normalized = [term.strip().lower() for term in terms if term and term.strip()]
        if not normalized:
            return []

        clauses = []
        params: list[Any] = []
        for term in normalized:
            pattern = f"%{term}%"
            clauses.append("LOWER(key) LIKE ?")
            clauses.append("LOWER(value) LIKE ?")
            params.extend([pattern, pattern])
        params.append(limit)

        sql = (
            "SELECT key, value, updated_at FROM facts "
            f"WHERE {' OR '.join(clauses)} "
            "ORDER BY updated_at DESC LIMIT ?"
        )
        try:
            cursor = self._conn.execute(sql, params)
            return [self._row_to_fact(row) for row in cursor]
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="search_facts",
                underlying_error=str(e),
            ) from e

    def get_all_facts(self) -> list[FactRecord]:
        """All facts, sorted by key."""
        try:
            cursor = self._conn.execute(
                "SELECT key, value, updated_at FROM facts ORDER BY key"
            )
            return [self._row_to_fact(row) for row in cursor]
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="get_all_facts",
                underlying_error=str(e),
            ) from e

    def clear_facts(self) -> int:
        """Delete every fact. Returns the number removed."""
        try:
            cursor = self._conn.execute("DELETE FROM facts")
            self._conn.commit()
            return cursor.rowcount
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="clear_facts",
                underlying_error=str(e),
            ) from e

    @staticmethod
    def _row_to_fact(row: sqlite3.Row) -> FactRecord:
        return FactRecord(
            key=row["key"],
            value=row["value"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    # =========================================================================
    # Execution Log
    # =========================================================================

    def record_execution(self, log: ExecutionLog) -> str:
        """
        Append an execution record.

        Hashes are computed here when the record does not carry them.

        Returns:
            The stored log_id
        """
        log_id = log.log_id or generate_id()
        input_hash = log.input_hash or compute_hash(log.input)
        output_hash = log.output_hash or compute_hash(log.output)

        try:
            self._conn.execute(
                """
                INSERT INTO execution_logs (
                    log_id, tool_name, input_json, output_json, error,
                    status, started_at, finished_at, input_hash, output_hash
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    log_id,
                    log.tool_name,
                    _dump_json(log.input),
                    _dump_json(log.output),
                    log.error,
                    log.status.value,
                    log.started_at.isoformat(),
                    log.finished_at.isoformat(),
                    input_hash,
                    output_hash,
                ),
            )
            self._conn.commit()
            return log_id
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="record_execution",
                underlying_error=str(e),
            ) from e

    def get_execution(self, log_id: str) -> ExecutionLog | None:
        """Get one execution record by id."""
        try:
            cursor = self._conn.execute(
                "SELECT * FROM execution_logs WHERE log_id = ?",
                (log_id,),
            )
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="get_execution",
                underlying_error=str(e),
            ) from e
        return self._row_to_log(row) if row is not None else None

    def list_executions(self, limit: int = 50, tool_name: str | None = None) -> list[ExecutionLog]:
        """
        List recent execution records.

        Args:
            limit: Maximum number of records
            tool_name: Only records for this tool

        Returns:
            Records, most recent first
        """
        sql = "SELECT * FROM execution_logs"
        params: list[Any] = []
        if tool_name:
            sql += " WHERE tool_name = ?"
            params.append(tool_name)
        sql += " ORDER BY started_at DESC, rowid DESC LIMIT ?"
        params.append(limit)

        try:
            cursor = self._conn.execute(sql, params)
            return [self._row_to_log(row) for row in cursor]
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="list_executions",
                underlying_error=str(e),
            ) from e

    @staticmethod
    def _row_to_log(row: sqlite3.Row) -> ExecutionLog:
        return ExecutionLog(
            log_id=row["log_id"],
            tool_name=row["tool_name"],
            input=json.loads(row["input_json"]) if row["input_json"] else None,
            output=json.loads(row["output_json"]) if row["output_json"] else None,
            error=row["error"],
            status=LogStatus(row["status"]),
            started_at=datetime.fromisoformat(row["started_at"]),
            finished_at=datetime.fromisoformat(row["finished_at"]),
            input_hash=row["input_hash"],
            output_hash=row["output_hash"],
        )
