"""Unit tests for TaskStore."""

import pytest

from campus_tasks_service.services.task_store import (
    DuplicateApplicationError,
    DuplicateTaskError,
    StaleStateError,
    TaskStore,
)
from tests.helpers import application_row, task_row


def _store(tmp_path) -> TaskStore:
    return TaskStore(db_path=str(tmp_path / "campus-tasks.db"))


@pytest.mark.unit
def test_task_crud_and_counts(tmp_path) -> None:
    """Task operations persist, update, list, and count correctly."""
    store = _store(tmp_path)
    store.insert_task(task_row("t-1", created_at="2026-01-01T00:00:00.000000Z"))
    store.insert_task(
        task_row("t-2", status="in_progress", created_at="2026-01-02T00:00:00.000000Z")
    )

    task = store.get_task("t-1")
    assert task is not None
    assert task["status"] == "open"
    assert task["price_cents"] == 2500

    assert store.update_task("t-1", {"title": "Renamed"}, expected_status="open") == 1
    assert store.update_task("t-2", {"status": "completed"}, expected_status="open") == 0
    assert store.get_task("t-2")["status"] == "in_progress"

    listed = store.list_tasks()
    assert [row["task_id"] for row in listed] == ["t-2", "t-1"]
    assert store.count_tasks_by_status() == {"open": 1, "in_progress": 1}
    store.close()


@pytest.mark.unit
def test_duplicate_task_id_raises(tmp_path) -> None:
    store = _store(tmp_path)
    store.insert_task(task_row("t-1"))
    with pytest.raises(DuplicateTaskError):
        store.insert_task(task_row("t-1"))
    store.close()


@pytest.mark.unit
def test_update_rejects_unknown_column(tmp_path) -> None:
    store = _store(tmp_path)
    store.insert_task(task_row("t-1"))
    with pytest.raises(ValueError, match="unknown task column"):
        store.update_task("t-1", {"bogus": 1}, expected_status=None)
    store.close()


@pytest.mark.unit
def test_list_filters(tmp_path) -> None:
    """Status, owner, category, and price filters combine with AND."""
    store = _store(tmp_path)
    store.insert_task(task_row("t-1", price_cents=500))
    store.insert_task(task_row("t-2", price_cents=1500, requester_id="u-someone"))
    store.insert_task(task_row("t-3", price_cents=3000, status="cancelled"))

    assert {t["task_id"] for t in store.list_tasks(status="open")} == {"t-1", "t-2"}
    assert [t["task_id"] for t in store.list_tasks(requester_id="u-someone")] == ["t-2"]
    priced = store.list_tasks(min_price_cents=1000, max_price_cents=2000)
    assert [t["task_id"] for t in priced] == ["t-2"]
    assert store.list_tasks(category_id="unknown") == []
    assert len(store.list_tasks(limit=2, offset=0)) == 2
    assert len(store.list_tasks(limit=2, offset=2)) == 1
    store.close()


@pytest.mark.unit
def test_application_uniqueness_and_status(tmp_path) -> None:
    """One application per (task, applicant); status moves conditionally."""
    store = _store(tmp_path)
    store.insert_task(task_row("t-1"))
    store.insert_application(application_row("app-1", "t-1", "u-a"))

    with pytest.raises(DuplicateApplicationError):
        store.insert_application(application_row("app-2", "t-1", "u-a"))

    assert store.get_application("app-1", "t-other") is None
    changed = store.update_application_status(
        "app-1", "withdrawn", "2026-01-01T00:00:00Z", expected_status="pending"
    )
    assert changed == 1
    unchanged = store.update_application_status(
        "app-1", "rejected", "2026-01-01T00:00:00Z", expected_status="pending"
    )
    assert unchanged == 0
    assert store.get_application("app-1", "t-1")["status"] == "withdrawn"
    store.close()


@pytest.mark.unit
def test_accept_application_is_one_group_transition(tmp_path) -> None:
    """Target accepted, pending siblings rejected, task started, all together."""
    store = _store(tmp_path)
    store.insert_task(task_row("t-1"))
    store.insert_application(application_row("app-1", "t-1", "u-a", created_at="2026-01-01T00:00:01Z"))
    store.insert_application(application_row("app-2", "t-1", "u-b", created_at="2026-01-01T00:00:02Z"))
    store.insert_application(
        application_row("app-3", "t-1", "u-c", status="withdrawn", created_at="2026-01-01T00:00:03Z")
    )

    rejected = store.accept_application("t-1", "app-1", "u-a", "2026-01-02T00:00:00Z")

    assert [app["application_id"] for app in rejected] == ["app-2"]
    assert rejected[0]["status"] == "rejected"
    statuses = {app["application_id"]: app["status"] for app in store.get_applications_for_task("t-1")}
    assert statuses == {"app-1": "accepted", "app-2": "rejected", "app-3": "withdrawn"}
    task = store.get_task("t-1")
    assert task["status"] == "in_progress"
    assert task["assignee_id"] == "u-a"
    assert task["accepted_application_id"] == "app-1"
    assert task["accepted_at"] == "2026-01-02T00:00:00Z"
    store.close()


@pytest.mark.unit
def test_accept_application_rolls_back_when_task_not_open(tmp_path) -> None:
    """A stale task status leaves every application untouched."""
    store = _store(tmp_path)
    store.insert_task(task_row("t-1"))
    store.insert_application(application_row("app-1", "t-1", "u-a"))
    store.insert_application(application_row("app-2", "t-1", "u-b"))
    store.update_task("t-1", {"status": "cancelled"}, expected_status="open")

    with pytest.raises(StaleStateError):
        store.accept_application("t-1", "app-1", "u-a", "2026-01-02T00:00:00Z")

    statuses = {app["status"] for app in store.get_applications_for_task("t-1")}
    assert statuses == {"pending"}
    assert store.get_task("t-1")["assignee_id"] is None
    store.close()


@pytest.mark.unit
def test_insert_application_requires_open_task(tmp_path) -> None:
    """An application never lands on a task that already left 'open'."""
    store = _store(tmp_path)
    store.insert_task(task_row("t-1", status="in_progress", assignee_id="u-a"))

    with pytest.raises(StaleStateError):
        store.insert_application(application_row("app-1", "t-1", "u-b"))

    assert store.get_applications_for_task("t-1") == []
    store.close()


@pytest.mark.unit
def test_accept_application_rejects_non_pending_target(tmp_path) -> None:
    store = _store(tmp_path)
    store.insert_task(task_row("t-1"))
    store.insert_application(application_row("app-1", "t-1", "u-a", status="withdrawn"))

    with pytest.raises(StaleStateError):
        store.accept_application("t-1", "app-1", "u-a", "2026-01-02T00:00:00Z")
    assert store.get_task("t-1")["status"] == "open"
    store.close()


@pytest.mark.unit
def test_delete_task_cascades_to_applications(tmp_path) -> None:
    store = _store(tmp_path)
    store.insert_task(task_row("t-1"))
    store.insert_application(application_row("app-1", "t-1", "u-a"))

    assert store.delete_task("t-1", expected_status="in_progress") == 0
    assert store.delete_task("t-1", expected_status="open") == 1
    assert store.get_task("t-1") is None
    assert store.get_applications_for_task("t-1") == []
    store.close()


@pytest.mark.unit
def test_completion_counters_upsert_profiles(tmp_path) -> None:
    store = _store(tmp_path)
    assert store.get_profile("u-a") is None

    store.increment_completion_counters("u-a", "u-r", "2026-01-01T00:00:00Z")
    store.increment_completion_counters("u-a", "u-r", "2026-01-02T00:00:00Z")

    assignee = store.get_profile("u-a")
    requester = store.get_profile("u-r")
    assert assignee["completed_tasks"] == 2
    assert assignee["created_tasks"] == 0
    assert requester["created_tasks"] == 2
    assert requester["updated_at"] == "2026-01-02T00:00:00Z"
    store.close()
