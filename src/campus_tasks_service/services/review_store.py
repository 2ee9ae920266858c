"""SQLite-backed review storage and profile rating writes."""

from __future__ import annotations

import contextlib
import sqlite3
from pathlib import Path
from threading import RLock
from typing import Any

from campus_tasks_service.services.task_store import PROFILE_TABLE_SQL


class DuplicateReviewError(Exception):
    """Raised when a reviewer submits a second review for the same task."""


class ReviewStore:
    """SQLite-backed storage for reviews."""

    _REVIEW_COLUMNS: tuple[str, ...] = (
        "review_id",
        "task_id",
        "reviewer_id",
        "reviewee_id",
        "rating",
        "comment",
        "is_reviewing_requester",
        "created_at",
    )

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
                CREATE TABLE IF NOT EXISTS reviews (
                    review_id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL,
                    reviewer_id TEXT NOT NULL,
                    reviewee_id TEXT NOT NULL,
                    rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
                    comment TEXT,
                    is_reviewing_requester INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE(task_id, reviewer_id)
                );

                CREATE INDEX IF NOT EXISTS idx_reviews_reviewee ON reviews(reviewee_id);
                """
                + PROFILE_TABLE_SQL
            )
            self._db.commit()

    def _row_to_review(self, row: sqlite3.Row) -> dict[str, Any]:
        review = {column: row[column] for column in self._REVIEW_COLUMNS}
        review["is_reviewing_requester"] = bool(review["is_reviewing_requester"])
        return review

    def insert_review(self, review_data: dict[str, Any]) -> None:
        """Insert a review. One review per (task, reviewer)."""
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                self._db.execute(
                    """
                    INSERT INTO reviews (
                        review_id, task_id, reviewer_id, reviewee_id,
                        rating, comment, is_reviewing_requester, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        review_data["review_id"],
                        review_data["task_id"],
                        review_data["reviewer_id"],
                        review_data["reviewee_id"],
                        review_data["rating"],
                        review_data["comment"],
                        1 if review_data["is_reviewing_requester"] else 0,
                        review_data["created_at"],
                    ),
                )
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                if "unique" in str(exc).lower():
                    raise DuplicateReviewError("This user already reviewed this task") from exc
                raise
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise

    def get_reviews_for_task(self, task_id: str) -> list[dict[str, Any]]:
        """Fetch all reviews of a task, newest first."""
        with self._lock:
            rows = self._db.execute(
                "SELECT * FROM reviews WHERE task_id = ? ORDER BY created_at DESC, review_id",
                (task_id,),
            ).fetchall()
        return [self._row_to_review(row) for row in rows]

    def get_ratings_received(self, user_id: str) -> list[int]:
        """Every rating value a user has received."""
        with self._lock:
            rows = self._db.execute(
                "SELECT rating FROM reviews WHERE reviewee_id = ?",
                (user_id,),
            ).fetchall()
        return [int(row["rating"]) for row in rows]

    def set_profile_rating(
        self,
        user_id: str,
        rating: float | None,
        review_count: int,
        updated_at: str,
    ) -> None:
        """Overwrite the stored rating aggregate for a user."""
        with self._lock:
            self._db.execute(
                "INSERT INTO user_profiles (user_id, rating, review_count, updated_at) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT(user_id) DO UPDATE SET rating = excluded.rating, "
                "review_count = excluded.review_count, updated_at = excluded.updated_at",
                (user_id, rating, review_count, updated_at),
            )
            self._db.commit()

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
