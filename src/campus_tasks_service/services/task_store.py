"""SQLite-backed task, application, and profile counter storage."""

from __future__ import annotations

import contextlib
import sqlite3
from pathlib import Path
from threading import RLock
from typing import Any

PROFILE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS user_profiles (
    user_id TEXT PRIMARY KEY,
    rating REAL,
    review_count INTEGER NOT NULL DEFAULT 0,
    completed_tasks INTEGER NOT NULL DEFAULT 0,
    created_tasks INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);
"""


class DuplicateTaskError(Exception):
    """Raised when attempting to insert a task with a duplicate task_id."""


class DuplicateApplicationError(Exception):
    """Raised when a user applies to the same task twice."""


class StaleStateError(Exception):
    """Raised when a conditional write observes a status other than the one read."""


class TaskStore:
    """SQLite-backed storage for tasks, applications, and profile counters."""

    _TASK_COLUMNS: tuple[str, ...] = (
        "task_id",
        "requester_id",
        "title",
        "description",
        "category_id",
        "price_cents",
        "location",
        "deadline",
        "status",
        "assignee_id",
        "accepted_application_id",
        "refund_required",
        "created_at",
        "updated_at",
        "accepted_at",
        "completed_at",
        "completed_by",
        "cancelled_at",
        "cancelled_by",
    )
    _APPLICATION_COLUMNS: tuple[str, ...] = (
        "application_id",
        "task_id",
        "applicant_id",
        "status",
        "proposed_price_cents",
        "message",
        "created_at",
        "updated_at",
    )
    _PROFILE_COLUMNS: tuple[str, ...] = (
        "user_id",
        "rating",
        "review_count",
        "completed_tasks",
        "created_tasks",
        "updated_at",
    )

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._task_columns_sql = ", ".join(self._TASK_COLUMNS)
        self._application_columns_sql = ", ".join(self._APPLICATION_COLUMNS)
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    task_id TEXT PRIMARY KEY,
                    requester_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    category_id TEXT,
                    price_cents INTEGER NOT NULL,
                    location TEXT,
                    deadline TEXT,
                    status TEXT NOT NULL DEFAULT 'open',
                    assignee_id TEXT,
                    accepted_application_id TEXT,
                    refund_required INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    accepted_at TEXT,
                    completed_at TEXT,
                    completed_by TEXT,
                    cancelled_at TEXT,
                    cancelled_by TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);
                CREATE INDEX IF NOT EXISTS idx_tasks_requester ON tasks(requester_id);

                CREATE TABLE IF NOT EXISTS applications (
                    application_id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL REFERENCES tasks(task_id) ON DELETE CASCADE,
                    applicant_id TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    proposed_price_cents INTEGER,
                    message TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(task_id, applicant_id)
                );
                """
                + PROFILE_TABLE_SQL
            )
            self._db.commit()

    def _row_to_task(self, row: sqlite3.Row) -> dict[str, Any]:
        return {column: row[column] for column in self._TASK_COLUMNS}

    def _row_to_application(self, row: sqlite3.Row) -> dict[str, Any]:
        return {column: row[column] for column in self._APPLICATION_COLUMNS}

    def _rollback(self) -> None:
        with contextlib.suppress(sqlite3.Error):
            self._db.execute("ROLLBACK")

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def insert_task(self, task_data: dict[str, Any]) -> None:
        """Insert a new task row."""
        values = tuple(task_data[column] for column in self._TASK_COLUMNS)
        placeholders = ", ".join("?" for _ in self._TASK_COLUMNS)

        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                self._db.execute(
                    f"INSERT INTO tasks ({self._task_columns_sql}) VALUES ({placeholders})",  # nosec B608
                    values,
                )
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                self._rollback()
                if "unique" in str(exc).lower():
                    raise DuplicateTaskError(
                        f"A task with task_id={task_data['task_id']} already exists"
                    ) from exc
                raise
            except Exception:
                self._rollback()
                raise

    def get_task(self, task_id: str) -> dict[str, Any] | None:
        """Fetch a task by ID."""
        with self._lock:
            row = self._db.execute(
                f"SELECT {self._task_columns_sql} FROM tasks WHERE task_id = ?",  # nosec B608
                (task_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def update_task(
        self,
        task_id: str,
        updates: dict[str, Any],
        *,
        expected_status: str | None,
    ) -> int:
        """Update task columns and return the number of affected rows."""
        if len(updates) == 0:
            return 0

        if any(column not in self._TASK_COLUMNS for column in updates):
            msg = "Attempted to update unknown task column"
            raise ValueError(msg)

        set_clause = ", ".join(f"{column} = ?" for column in updates)
        params: list[object] = list(updates.values())

        query = "UPDATE tasks SET " + set_clause + " WHERE task_id = ?"  # nosec B608
        params.append(task_id)
        if expected_status is not None:
            query += " AND status = ?"
            params.append(expected_status)

        with self._lock:
            cursor = self._db.execute(query, params)
            self._db.commit()
        return int(cursor.rowcount)

    def delete_task(self, task_id: str, *, expected_status: str) -> int:
        """
        Delete a task whose status is still ``expected_status``.

        Applications and messages go with it through ON DELETE CASCADE,
        inside the same transaction.
        """
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                cursor = self._db.execute(
                    "DELETE FROM tasks WHERE task_id = ? AND status = ?",
                    (task_id, expected_status),
                )
                self._db.commit()
            except Exception:
                self._rollback()
                raise
        return int(cursor.rowcount)

    def list_tasks(
        self,
        *,
        status: str | None = None,
        requester_id: str | None = None,
        assignee_id: str | None = None,
        category_id: str | None = None,
        min_price_cents: int | None = None,
        max_price_cents: int | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        """List tasks with optional filters, newest first."""
        query = f"SELECT {self._task_columns_sql} FROM tasks"  # nosec B608
        clauses: list[str] = []
        params: list[object] = []

        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if requester_id is not None:
            clauses.append("requester_id = ?")
            params.append(requester_id)
        if assignee_id is not None:
            clauses.append("assignee_id = ?")
            params.append(assignee_id)
        if category_id is not None:
            clauses.append("category_id = ?")
            params.append(category_id)
        if min_price_cents is not None:
            clauses.append("price_cents >= ?")
            params.append(min_price_cents)
        if max_price_cents is not None:
            clauses.append("price_cents <= ?")
            params.append(max_price_cents)

        if len(clauses) > 0:
            query += " WHERE " + " AND ".join(clauses)

        query += " ORDER BY created_at DESC, task_id"

        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
            if offset is not None:
                query += " OFFSET ?"
                params.append(offset)

        with self._lock:
            rows = self._db.execute(query, params).fetchall()
        return [self._row_to_task(row) for row in rows]

    def count_tasks_by_status(self) -> dict[str, int]:
        """Count tasks grouped by status."""
        with self._lock:
            rows = self._db.execute("SELECT status, COUNT(*) FROM tasks GROUP BY status").fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    def insert_application(self, application_data: dict[str, Any]) -> None:
        """
        Insert an application while its task is still open.

        The (task_id, applicant_id) pair is unique. If the task left 'open'
        after the caller read it, nothing is written and StaleStateError is
        raised.
        """
        values = tuple(application_data[column] for column in self._APPLICATION_COLUMNS)
        placeholders = ", ".join("?" for _ in self._APPLICATION_COLUMNS)

        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                cursor = self._db.execute(
                    f"INSERT INTO applications ({self._application_columns_sql}) "  # nosec B608
                    f"SELECT {placeholders} WHERE EXISTS "
                    "(SELECT 1 FROM tasks WHERE task_id = ? AND status = 'open')",
                    (*values, application_data["task_id"]),
                )
                if cursor.rowcount != 1:
                    raise StaleStateError(f"Task {application_data['task_id']} is no longer open")
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                self._rollback()
                if "unique" in str(exc).lower():
                    raise DuplicateApplicationError(
                        "This user already applied to this task"
                    ) from exc
                raise
            except Exception:
                self._rollback()
                raise

    def get_application(self, application_id: str, task_id: str) -> dict[str, Any] | None:
        """Fetch an application by application_id and task_id."""
        with self._lock:
            row = self._db.execute(
                f"SELECT {self._application_columns_sql} FROM applications "  # nosec B608
                "WHERE application_id = ? AND task_id = ?",
                (application_id, task_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_application(row)

    def get_applications_for_task(self, task_id: str) -> list[dict[str, Any]]:
        """Fetch all applications for a task, oldest first."""
        with self._lock:
            rows = self._db.execute(
                f"SELECT {self._application_columns_sql} FROM applications "  # nosec B608
                "WHERE task_id = ? ORDER BY created_at, application_id",
                (task_id,),
            ).fetchall()
        return [self._row_to_application(row) for row in rows]

    def update_application_status(
        self,
        application_id: str,
        status: str,
        updated_at: str,
        *,
        expected_status: str,
    ) -> int:
        """Move a single application from ``expected_status`` to ``status``."""
        with self._lock:
            cursor = self._db.execute(
                "UPDATE applications SET status = ?, updated_at = ? "
                "WHERE application_id = ? AND status = ?",
                (status, updated_at, application_id, expected_status),
            )
            self._db.commit()
        return int(cursor.rowcount)

    def delete_application(self, application_id: str, *, expected_status: str) -> int:
        """Delete an application whose status is still ``expected_status``."""
        with self._lock:
            cursor = self._db.execute(
                "DELETE FROM applications WHERE application_id = ? AND status = ?",
                (application_id, expected_status),
            )
            self._db.commit()
        return int(cursor.rowcount)

    def accept_application(
        self,
        task_id: str,
        application_id: str,
        assignee_id: str,
        accepted_at: str,
    ) -> list[dict[str, Any]]:
        """
        Accept one application and start the task in a single transaction.

        The target goes pending -> accepted, every other pending application
        of the task goes pending -> rejected, and the task goes
        open -> in_progress with the assignee recorded. If the target is no
        longer pending or the task is no longer open, everything is rolled
        back and StaleStateError is raised.

        Returns:
            The applications that were rejected by this acceptance.
        """
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                accepted = self._db.execute(
                    "UPDATE applications SET status = 'accepted', updated_at = ? "
                    "WHERE application_id = ? AND task_id = ? AND status = 'pending'",
                    (accepted_at, application_id, task_id),
                )
                if accepted.rowcount != 1:
                    raise StaleStateError(f"Application {application_id} is no longer pending")

                losers = self._db.execute(
                    f"SELECT {self._application_columns_sql} FROM applications "  # nosec B608
                    "WHERE task_id = ? AND status = 'pending' ORDER BY created_at, application_id",
                    (task_id,),
                ).fetchall()
                self._db.execute(
                    "UPDATE applications SET status = 'rejected', updated_at = ? "
                    "WHERE task_id = ? AND status = 'pending'",
                    (accepted_at, task_id),
                )

                started = self._db.execute(
                    "UPDATE tasks SET status = 'in_progress', assignee_id = ?, "
                    "accepted_application_id = ?, accepted_at = ?, updated_at = ? "
                    "WHERE task_id = ? AND status = 'open'",
                    (assignee_id, application_id, accepted_at, accepted_at, task_id),
                )
                if started.rowcount != 1:
                    raise StaleStateError(f"Task {task_id} is no longer open")

                self._db.commit()
            except Exception:
                self._rollback()
                raise

        rejected = [self._row_to_application(row) for row in losers]
        for application in rejected:
            application["status"] = "rejected"
            application["updated_at"] = accepted_at
        return rejected

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def get_profile(self, user_id: str) -> dict[str, Any] | None:
        """Fetch a user's profile row."""
        with self._lock:
            row = self._db.execute(
                "SELECT user_id, rating, review_count, completed_tasks, created_tasks, updated_at "
                "FROM user_profiles WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return {column: row[column] for column in self._PROFILE_COLUMNS}

    def increment_completion_counters(
        self,
        assignee_id: str,
        requester_id: str,
        updated_at: str,
    ) -> None:
        """Bump completed_tasks for the assignee and created_tasks for the requester."""
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                self._db.execute(
                    "INSERT INTO user_profiles (user_id, completed_tasks, updated_at) "
                    "VALUES (?, 1, ?) "
                    "ON CONFLICT(user_id) DO UPDATE SET "
                    "completed_tasks = completed_tasks + 1, updated_at = excluded.updated_at",
                    (assignee_id, updated_at),
                )
                self._db.execute(
                    "INSERT INTO user_profiles (user_id, created_tasks, updated_at) "
                    "VALUES (?, 1, ?) "
                    "ON CONFLICT(user_id) DO UPDATE SET "
                    "created_tasks = created_tasks + 1, updated_at = excluded.updated_at",
                    (requester_id, updated_at),
                )
                self._db.commit()
            except Exception:
                self._rollback()
                raise

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
