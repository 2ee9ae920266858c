"""Shared test helpers: config text, row builders, and a wired service graph."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

from campus_tasks_service.services.application_manager import ApplicationManager
from campus_tasks_service.services.authorization import Actor
from campus_tasks_service.services.message_store import MessageStore
from campus_tasks_service.services.message_thread import MessageThread
from campus_tasks_service.services.notification_dispatcher import NotificationDispatcher
from campus_tasks_service.services.notification_store import NotificationStore
from campus_tasks_service.services.rating_aggregator import RatingAggregator
from campus_tasks_service.services.review_store import ReviewStore
from campus_tasks_service.services.task_cache import TaskCache
from campus_tasks_service.services.task_lifecycle import TaskLifecycleController
from campus_tasks_service.services.task_store import TaskStore
from campus_tasks_service.services.timestamps import now_iso

if TYPE_CHECKING:
    from pathlib import Path

REQUESTER = Actor(user_id="u-requester")
WORKER = Actor(user_id="u-worker")
OTHER_WORKER = Actor(user_id="u-other-worker")
STRANGER = Actor(user_id="u-stranger")
ADMIN = Actor(user_id="u-admin", is_admin=True)


def make_config_yaml(
    db_path: Path | str,
    log_directory: Path | str,
    *,
    allow_after_completion: bool = False,
    max_body_size: int = 1048576,
) -> str:
    """Render a complete service config for tests."""
    return f"""\
service:
  name: "campus-tasks"
  version: "0.1.0"
server:
  host: "0.0.0.0"
  port: 8010
  log_level: "info"
logging:
  level: "WARNING"
  directory: "{log_directory}"
database:
  path: "{db_path}"
identity:
  base_url: "http://localhost:8001"
  resolve_session_path: "/sessions/resolve"
  timeout_seconds: 10
notifications:
  delivery_base_url: null
  delivery_path: "/deliveries"
  timeout_seconds: 5
messaging:
  allow_after_completion: {"true" if allow_after_completion else "false"}
cache:
  ttl_seconds: 300
  max_entries: 100
request:
  max_body_size: {max_body_size}
"""


def task_row(
    task_id: str,
    *,
    requester_id: str = REQUESTER.user_id,
    status: str = "open",
    assignee_id: str | None = None,
    price_cents: int = 2500,
    created_at: str | None = None,
) -> dict[str, Any]:
    """A full task row as TaskStore.insert_task expects it."""
    timestamp = created_at or now_iso()
    return {
        "task_id": task_id,
        "requester_id": requester_id,
        "title": f"Task {task_id}",
        "description": "Carry boxes to the library",
        "category_id": "moving",
        "price_cents": price_cents,
        "location": "Main campus",
        "deadline": None,
        "status": status,
        "assignee_id": assignee_id,
        "accepted_application_id": None,
        "refund_required": 0,
        "created_at": timestamp,
        "updated_at": timestamp,
        "accepted_at": None,
        "completed_at": None,
        "completed_by": None,
        "cancelled_at": None,
        "cancelled_by": None,
    }


def application_row(
    application_id: str,
    task_id: str,
    applicant_id: str,
    *,
    status: str = "pending",
    created_at: str | None = None,
) -> dict[str, Any]:
    """A full application row as TaskStore.insert_application expects it."""
    timestamp = created_at or now_iso()
    return {
        "application_id": application_id,
        "task_id": task_id,
        "applicant_id": applicant_id,
        "status": status,
        "proposed_price_cents": None,
        "message": None,
        "created_at": timestamp,
        "updated_at": timestamp,
    }


@dataclass
class ServiceGraph:
    """Every store and service wired against one temporary database."""

    task_store: TaskStore
    message_store: MessageStore
    review_store: ReviewStore
    notification_store: NotificationStore
    cache: TaskCache
    delivery_client: AsyncMock
    dispatcher: NotificationDispatcher
    applications: ApplicationManager
    lifecycle: TaskLifecycleController
    thread: MessageThread

    def notifications_for(self, user_id: str) -> list[dict[str, Any]]:
        return self.notification_store.list_notifications(
            user_id, unread_only=False, limit=100, offset=0
        )

    def count_task_notifications(self, task_id: str, notification_type: str, *user_ids: str) -> int:
        """Notifications of one type emitted for a task, across the given inboxes."""
        return sum(
            1
            for user_id in user_ids
            for notification in self.notifications_for(user_id)
            if notification["type"] == notification_type
            and notification["payload"].get("task_id") == task_id
        )

    def close(self) -> None:
        self.task_store.close()
        self.message_store.close()
        self.review_store.close()
        self.notification_store.close()


def build_graph(tmp_path: Path, *, allow_after_completion: bool = False) -> ServiceGraph:
    """Wire the services the way the lifespan does, with a mocked delivery client."""
    db_path = str(tmp_path / "campus-tasks.db")
    task_store = TaskStore(db_path=db_path)
    message_store = MessageStore(db_path=db_path)
    review_store = ReviewStore(db_path=db_path)
    notification_store = NotificationStore(db_path=db_path)
    cache = TaskCache(ttl_seconds=300, max_entries=100)
    delivery_client = AsyncMock()
    dispatcher = NotificationDispatcher(store=notification_store, delivery_client=delivery_client)
    return ServiceGraph(
        task_store=task_store,
        message_store=message_store,
        review_store=review_store,
        notification_store=notification_store,
        cache=cache,
        delivery_client=delivery_client,
        dispatcher=dispatcher,
        applications=ApplicationManager(store=task_store, dispatcher=dispatcher, cache=cache),
        lifecycle=TaskLifecycleController(
            store=task_store,
            review_store=review_store,
            rating_aggregator=RatingAggregator(review_store=review_store),
            dispatcher=dispatcher,
            cache=cache,
        ),
        thread=MessageThread(
            task_store=task_store,
            message_store=message_store,
            dispatcher=dispatcher,
            allow_after_completion=allow_after_completion,
        ),
    )


async def create_open_task(graph: ServiceGraph, **overrides: Any) -> dict[str, Any]:
    """Create an open task owned by REQUESTER through the lifecycle controller."""
    body: dict[str, Any] = {
        "title": "Pick up lab notes",
        "description": "Collect printed notes from the chemistry building",
        "price": "12.50",
    }
    body.update(overrides)
    return await graph.lifecycle.create_task(REQUESTER, body)


async def create_in_progress_task(graph: ServiceGraph) -> dict[str, Any]:
    """Create a task, have WORKER apply, and accept the application."""
    task = await create_open_task(graph)
    application = await graph.applications.apply(WORKER, task["task_id"], {})
    await graph.applications.accept(REQUESTER, task["task_id"], application["application_id"])
    return await graph.lifecycle.get_task(task["task_id"])


async def create_completed_task(graph: ServiceGraph) -> dict[str, Any]:
    """An in-progress task completed by its requester."""
    task = await create_in_progress_task(graph)
    return await graph.lifecycle.complete_task(REQUESTER, task["task_id"])
