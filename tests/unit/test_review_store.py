"""Unit tests for ReviewStore."""

import pytest

from campus_tasks_service.services.review_store import DuplicateReviewError, ReviewStore
from campus_tasks_service.services.task_store import TaskStore


def _review(review_id: str, reviewer_id: str, reviewee_id: str, rating: int, created_at: str):
    return {
        "review_id": review_id,
        "task_id": "t-1",
        "reviewer_id": reviewer_id,
        "reviewee_id": reviewee_id,
        "rating": rating,
        "comment": None,
        "is_reviewing_requester": reviewee_id == "u-requester",
        "created_at": created_at,
    }


@pytest.mark.unit
def test_one_review_per_reviewer_and_task(tmp_path) -> None:
    store = ReviewStore(db_path=str(tmp_path / "campus-tasks.db"))
    store.insert_review(_review("rev-1", "u-requester", "u-worker", 5, "2026-01-01T00:00:01Z"))

    with pytest.raises(DuplicateReviewError):
        store.insert_review(_review("rev-2", "u-requester", "u-worker", 1, "2026-01-01T00:00:02Z"))
    assert store.get_ratings_received("u-worker") == [5]
    store.close()


@pytest.mark.unit
def test_reviews_listed_newest_first(tmp_path) -> None:
    store = ReviewStore(db_path=str(tmp_path / "campus-tasks.db"))
    store.insert_review(_review("rev-1", "u-requester", "u-worker", 4, "2026-01-01T00:00:01Z"))
    store.insert_review(_review("rev-2", "u-worker", "u-requester", 3, "2026-01-01T00:00:02Z"))

    reviews = store.get_reviews_for_task("t-1")

    assert [r["review_id"] for r in reviews] == ["rev-2", "rev-1"]
    assert reviews[0]["is_reviewing_requester"] is True
    store.close()


@pytest.mark.unit
def test_rating_write_preserves_counters(tmp_path) -> None:
    """The rating upsert and the completion counters share one profile row."""
    db_path = str(tmp_path / "campus-tasks.db")
    task_store = TaskStore(db_path=db_path)
    store = ReviewStore(db_path=db_path)
    task_store.increment_completion_counters("u-worker", "u-requester", "2026-01-01T00:00:00Z")

    store.set_profile_rating("u-worker", 4.5, 2, "2026-01-02T00:00:00Z")

    profile = task_store.get_profile("u-worker")
    assert profile["rating"] == 4.5
    assert profile["review_count"] == 2
    assert profile["completed_tasks"] == 1
    store.close()
    task_store.close()
