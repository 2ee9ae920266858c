"""SQLite-backed storage for task conversation messages."""

from __future__ import annotations

import contextlib
import sqlite3
from pathlib import Path
from threading import RLock
from typing import Any


class MessageStore:
    """Append-only message storage with per-user read receipts."""

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    message_id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL REFERENCES tasks(task_id) ON DELETE CASCADE,
                    sender_id TEXT NOT NULL,
                    content TEXT,
                    attachment_url TEXT,
                    attachment_name TEXT,
                    attachment_type TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_messages_task ON messages(task_id, created_at);

                CREATE TABLE IF NOT EXISTS message_reads (
                    message_id TEXT NOT NULL REFERENCES messages(message_id) ON DELETE CASCADE,
                    user_id TEXT NOT NULL,
                    read_at TEXT NOT NULL,
                    PRIMARY KEY (message_id, user_id)
                );
                """
            )
            self._db.commit()

    def _read_by(self, message_ids: list[str]) -> dict[str, list[str]]:
        if len(message_ids) == 0:
            return {}
        placeholders = ", ".join("?" for _ in message_ids)
        rows = self._db.execute(
            f"SELECT message_id, user_id FROM message_reads WHERE message_id IN ({placeholders}) "  # nosec B608
            "ORDER BY read_at, user_id",
            message_ids,
        ).fetchall()
        readers: dict[str, list[str]] = {message_id: [] for message_id in message_ids}
        for row in rows:
            readers[row["message_id"]].append(row["user_id"])
        return readers

    @staticmethod
    def _row_to_message(row: sqlite3.Row, read_by: list[str]) -> dict[str, Any]:
        attachment: dict[str, Any] | None = None
        if row["attachment_url"] is not None:
            attachment = {
                "url": row["attachment_url"],
                "name": row["attachment_name"],
                "content_type": row["attachment_type"],
            }
        return {
            "message_id": row["message_id"],
            "task_id": row["task_id"],
            "sender_id": row["sender_id"],
            "content": row["content"],
            "attachment": attachment,
            "read_by": read_by,
            "created_at": row["created_at"],
        }

    def insert_message(self, message_data: dict[str, Any]) -> None:
        """Insert a message and record the sender as its first reader."""
        attachment = message_data["attachment"] or {}
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                self._db.execute(
                    """
                    INSERT INTO messages (
                        message_id, task_id, sender_id, content,
                        attachment_url, attachment_name, attachment_type, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        message_data["message_id"],
                        message_data["task_id"],
                        message_data["sender_id"],
                        message_data["content"],
                        attachment.get("url"),
                        attachment.get("name"),
                        attachment.get("content_type"),
                        message_data["created_at"],
                    ),
                )
                self._db.execute(
                    "INSERT INTO message_reads (message_id, user_id, read_at) VALUES (?, ?, ?)",
                    (
                        message_data["message_id"],
                        message_data["sender_id"],
                        message_data["created_at"],
                    ),
                )
                self._db.commit()
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise

    def get_message(self, message_id: str, task_id: str) -> dict[str, Any] | None:
        """Fetch a message by message_id and task_id."""
        with self._lock:
            row = self._db.execute(
                "SELECT * FROM messages WHERE message_id = ? AND task_id = ?",
                (message_id, task_id),
            ).fetchone()
            if row is None:
                return None
            readers = self._read_by([message_id])
        return self._row_to_message(row, readers[message_id])

    def list_messages(self, task_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
        """Fetch a page of a task's messages in chronological order."""
        with self._lock:
            rows = self._db.execute(
                "SELECT * FROM messages WHERE task_id = ? "
                "ORDER BY created_at, message_id LIMIT ? OFFSET ?",
                (task_id, limit, offset),
            ).fetchall()
            readers = self._read_by([row["message_id"] for row in rows])
        return [self._row_to_message(row, readers[row["message_id"]]) for row in rows]

    def count_messages(self, task_id: str) -> int:
        """Count messages in a task's conversation."""
        with self._lock:
            row = self._db.execute(
                "SELECT COUNT(*) FROM messages WHERE task_id = ?",
                (task_id,),
            ).fetchone()
        return int(row[0]) if row is not None else 0

    def mark_read(self, message_ids: list[str], user_id: str, read_at: str) -> int:
        """Add ``user_id`` to the readers of each message. Re-marking is a no-op."""
        if len(message_ids) == 0:
            return 0
        with self._lock:
            cursor = self._db.executemany(
                "INSERT OR IGNORE INTO message_reads (message_id, user_id, read_at) VALUES (?, ?, ?)",
                [(message_id, user_id, read_at) for message_id in message_ids],
            )
            self._db.commit()
        return int(cursor.rowcount)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
