"""SQLite-backed notification outbox."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from threading import RLock
from typing import Any


class NotificationStore:
    """Per-recipient notification storage."""

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
                CREATE TABLE IF NOT EXISTS notifications (
                    notification_id TEXT PRIMARY KEY,
                    recipient_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    title TEXT NOT NULL,
                    message TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    is_read INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    read_at TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_notifications_recipient
                    ON notifications(recipient_id, created_at);
                """
            )
            self._db.commit()

    @staticmethod
    def _row_to_notification(row: sqlite3.Row) -> dict[str, Any]:
        return {
            "notification_id": row["notification_id"],
            "recipient_id": row["recipient_id"],
            "type": row["type"],
            "title": row["title"],
            "message": row["message"],
            "payload": json.loads(row["payload"]),
            "is_read": bool(row["is_read"]),
            "created_at": row["created_at"],
            "read_at": row["read_at"],
        }

    def insert_notification(self, notification_data: dict[str, Any]) -> None:
        """Insert one notification in its own transaction."""
        with self._lock:
            self._db.execute(
                """
                INSERT INTO notifications (
                    notification_id, recipient_id, type, title, message,
                    payload, is_read, created_at, read_at
                ) VALUES (?, ?, ?, ?, ?, ?, 0, ?, NULL)
                """,
                (
                    notification_data["notification_id"],
                    notification_data["recipient_id"],
                    notification_data["type"],
                    notification_data["title"],
                    notification_data["message"],
                    json.dumps(notification_data["payload"]),
                    notification_data["created_at"],
                ),
            )
            self._db.commit()

    def get_notification(self, notification_id: str) -> dict[str, Any] | None:
        """Fetch a notification by ID."""
        with self._lock:
            row = self._db.execute(
                "SELECT * FROM notifications WHERE notification_id = ?",
                (notification_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_notification(row)

    def list_notifications(
        self,
        recipient_id: str,
        *,
        unread_only: bool,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        """Fetch a page of a recipient's notifications, newest first."""
        query = "SELECT * FROM notifications WHERE recipient_id = ?"
        params: list[object] = [recipient_id]
        if unread_only:
            query += " AND is_read = 0"
        query += " ORDER BY created_at DESC, notification_id LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._lock:
            rows = self._db.execute(query, params).fetchall()
        return [self._row_to_notification(row) for row in rows]

    def count_notifications(self, recipient_id: str, *, unread_only: bool) -> int:
        """Count a recipient's notifications."""
        query = "SELECT COUNT(*) FROM notifications WHERE recipient_id = ?"
        if unread_only:
            query += " AND is_read = 0"
        with self._lock:
            row = self._db.execute(query, (recipient_id,)).fetchone()
        return int(row[0]) if row is not None else 0

    def mark_read(self, notification_id: str, recipient_id: str, read_at: str) -> int:
        """Mark one unread notification as read."""
        with self._lock:
            cursor = self._db.execute(
                "UPDATE notifications SET is_read = 1, read_at = ? "
                "WHERE notification_id = ? AND recipient_id = ? AND is_read = 0",
                (read_at, notification_id, recipient_id),
            )
            self._db.commit()
        return int(cursor.rowcount)

    def mark_all_read(self, recipient_id: str, read_at: str) -> int:
        """Mark every unread notification of a recipient as read."""
        with self._lock:
            cursor = self._db.execute(
                "UPDATE notifications SET is_read = 1, read_at = ? "
                "WHERE recipient_id = ? AND is_read = 0",
                (read_at, recipient_id),
            )
            self._db.commit()
        return int(cursor.rowcount)

    def delete_notification(self, notification_id: str, recipient_id: str) -> int:
        """Delete a recipient's own notification."""
        with self._lock:
            cursor = self._db.execute(
                "DELETE FROM notifications WHERE notification_id = ? AND recipient_id = ?",
                (notification_id, recipient_id),
            )
            self._db.commit()
        return int(cursor.rowcount)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
