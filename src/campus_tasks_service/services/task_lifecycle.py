"""Task lifecycle management: the task state machine, reviews, and profiles."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Any

from campus_tasks_service.core.exceptions import (
    ConflictRetry,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from campus_tasks_service.logging import get_logger
from campus_tasks_service.services import authorization as guard
from campus_tasks_service.services.fields import (
    MAX_QUERY_INT,
    first_present,
    format_price,
    optional_text,
    optional_timestamp,
    parse_price,
    require_text,
)
from campus_tasks_service.services.notification_dispatcher import (
    NEW_REVIEW,
    TASK_CANCELLED,
    TASK_COMPLETED,
)
from campus_tasks_service.services.review_store import DuplicateReviewError
from campus_tasks_service.services.timestamps import new_id, now_iso

if TYPE_CHECKING:
    from campus_tasks_service.services.authorization import Actor
    from campus_tasks_service.services.notification_dispatcher import NotificationDispatcher
    from campus_tasks_service.services.rating_aggregator import RatingAggregator
    from campus_tasks_service.services.review_store import ReviewStore
    from campus_tasks_service.services.task_cache import TaskCache
    from campus_tasks_service.services.task_store import TaskStore

OPEN = "open"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
CANCELLED = "cancelled"

VALID_STATUSES: frozenset[str] = frozenset({OPEN, IN_PROGRESS, COMPLETED, CANCELLED})
CANCELLABLE_STATUSES: frozenset[str] = frozenset({OPEN, IN_PROGRESS})
UNDELETABLE_STATUSES: frozenset[str] = frozenset({IN_PROGRESS, COMPLETED})

MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 10000
MAX_LOCATION_LENGTH = 255
MAX_CATEGORY_LENGTH = 100
MAX_COMMENT_LENGTH = 1000
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# body keys (snake_case and camelCase) -> task column
_EDITABLE_FIELDS: dict[str, str] = {
    "title": "title",
    "description": "description",
    "price": "price_cents",
    "category_id": "category_id",
    "categoryId": "category_id",
    "location": "location",
    "deadline": "deadline",
}
_IMMUTABLE_FIELDS: frozenset[str] = frozenset(
    {
        "task_id",
        "requester_id",
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
    }
)


def task_to_response(row: dict[str, Any]) -> dict[str, Any]:
    """Convert a task row to its API representation."""
    return {
        "task_id": row["task_id"],
        "title": row["title"],
        "description": row["description"],
        "category_id": row["category_id"],
        "price": format_price(row["price_cents"]),
        "location": row["location"],
        "deadline": row["deadline"],
        "status": row["status"],
        "requester_id": row["requester_id"],
        "assignee_id": row["assignee_id"],
        "accepted_application_id": row["accepted_application_id"],
        "refund_required": bool(row["refund_required"]),
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "accepted_at": row["accepted_at"],
        "completed_at": row["completed_at"],
        "completed_by": row["completed_by"],
        "cancelled_at": row["cancelled_at"],
        "cancelled_by": row["cancelled_by"],
    }


def _parse_page(value: object, field_name: str, default: int, minimum: int) -> int:
    if value is None:
        return default
    try:
        parsed = int(str(value))
    except ValueError as exc:
        raise ValidationError(
            f"Query parameter '{field_name}' must be an integer",
            {"field": field_name},
        ) from exc
    if parsed < minimum:
        raise ValidationError(
            f"Query parameter '{field_name}' must be at least {minimum}",
            {"field": field_name},
        )
    if parsed > MAX_QUERY_INT:
        raise ValidationError(
            f"Query parameter '{field_name}' is out of range",
            {"field": field_name},
        )
    return parsed


def _parse_rating(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("Field 'rating' must be an integer", {"field": "rating"})
    if value < 1 or value > 5:
        raise ValidationError("Field 'rating' must be between 1 and 5", {"field": "rating"})
    return value


def _empty_profile(user_id: str) -> dict[str, Any]:
    return {
        "user_id": user_id,
        "rating": None,
        "review_count": 0,
        "completed_tasks": 0,
        "created_tasks": 0,
        "updated_at": None,
    }


class TaskLifecycleController:
    """
    Manages the task lifecycle: creation, editing, completion, cancellation,
    deletion, and the reviews that follow completion.

    Every status change is a conditional write on the status read at the
    start of the operation. Zero affected rows means another writer got
    there first, surfaced as ConflictRetry. Notifications, counters, and
    rating recomputation run only after the transition committed.
    """

    def __init__(
        self,
        store: TaskStore,
        review_store: ReviewStore,
        rating_aggregator: RatingAggregator,
        dispatcher: NotificationDispatcher,
        cache: TaskCache,
    ) -> None:
        self._store = store
        self._review_store = review_store
        self._rating_aggregator = rating_aggregator
        self._dispatcher = dispatcher
        self._cache = cache
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Private helper methods
    # ------------------------------------------------------------------

    def _load_task(self, task_id: str) -> dict[str, Any]:
        task = self._store.get_task(task_id)
        if task is None:
            raise NotFound("Task not found", error="TASK_NOT_FOUND")
        return task

    def _reload(self, task_id: str) -> dict[str, Any]:
        updated = self._store.get_task(task_id)
        if updated is None:
            msg = f"Task {task_id} not found after update"
            raise RuntimeError(msg)
        return task_to_response(updated)

    def _transition(
        self,
        actor: Actor,
        task: dict[str, Any],
        to_status: str,
        updates: dict[str, Any],
    ) -> None:
        """Apply a conditional status change, raising ConflictRetry on a lost race."""
        task_id = task["task_id"]
        from_status = task["status"]
        updated = self._store.update_task(
            task_id,
            {"status": to_status, **updates},
            expected_status=from_status,
        )
        if updated == 0:
            self._logger.warning(
                "Task transition lost a race",
                extra={
                    "task_id": task_id,
                    "actor_id": actor.user_id,
                    "from_status": from_status,
                    "to_status": to_status,
                },
            )
            raise ConflictRetry(
                "Task changed concurrently, re-read and retry",
                {"task_id": task_id, "expected_status": from_status},
            )

        self._cache.invalidate_task(task_id)
        self._logger.info(
            "Task transition",
            extra={
                "task_id": task_id,
                "actor_id": actor.user_id,
                "from_status": from_status,
                "to_status": to_status,
            },
        )

    def _editable_updates(self, body: dict[str, Any]) -> dict[str, Any]:
        immutable = sorted(key for key in body if key in _IMMUTABLE_FIELDS)
        if immutable:
            raise ValidationError(
                f"Field '{immutable[0]}' cannot be edited",
                {"field": immutable[0]},
            )
        unknown = sorted(key for key in body if key not in _EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Unknown field: {unknown[0]}",
                {"field": unknown[0]},
            )

        updates: dict[str, Any] = {}
        if "title" in body:
            updates["title"] = require_text(body, "title", MAX_TITLE_LENGTH)
        if "description" in body:
            updates["description"] = require_text(body, "description", MAX_DESCRIPTION_LENGTH)
        if "price" in body:
            updates["price_cents"] = parse_price(body["price"], "price")
        if "category_id" in body or "categoryId" in body:
            updates["category_id"] = optional_text(
                {"category_id": first_present(body, "category_id", "categoryId")},
                "category_id",
                MAX_CATEGORY_LENGTH,
            )
        if "location" in body:
            updates["location"] = optional_text(body, "location", MAX_LOCATION_LENGTH)
        if "deadline" in body:
            updates["deadline"] = optional_timestamp(body, "deadline")

        if len(updates) == 0:
            raise ValidationError("No editable fields supplied")
        return updates

    # ------------------------------------------------------------------
    # Public methods — called by routers
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Task counts for the health endpoint."""
        by_status = self._store.count_tasks_by_status()
        return {"total_tasks": sum(by_status.values()), "tasks_by_status": by_status}

    async def create_task(self, actor: Actor, body: dict[str, Any]) -> dict[str, Any]:
        """Create an open task owned by the actor."""
        title = require_text(body, "title", MAX_TITLE_LENGTH)
        description = require_text(body, "description", MAX_DESCRIPTION_LENGTH)
        if "price" not in body or body["price"] is None:
            raise ValidationError("Missing required field: price", {"field": "price"})
        price_cents = parse_price(body["price"], "price")
        category_id = optional_text(
            {"category_id": first_present(body, "category_id", "categoryId")},
            "category_id",
            MAX_CATEGORY_LENGTH,
        )
        location = optional_text(body, "location", MAX_LOCATION_LENGTH)
        deadline = optional_timestamp(body, "deadline")

        created_at = now_iso()
        task = {
            "task_id": new_id("t"),
            "requester_id": actor.user_id,
            "title": title,
            "description": description,
            "category_id": category_id,
            "price_cents": price_cents,
            "location": location,
            "deadline": deadline,
            "status": OPEN,
            "assignee_id": None,
            "accepted_application_id": None,
            "refund_required": 0,
            "created_at": created_at,
            "updated_at": created_at,
            "accepted_at": None,
            "completed_at": None,
            "completed_by": None,
            "cancelled_at": None,
            "cancelled_by": None,
        }
        self._store.insert_task(task)

        self._logger.info(
            "Task created",
            extra={"task_id": task["task_id"], "actor_id": actor.user_id, "to_status": OPEN},
        )
        return task_to_response(task)

    async def get_task(self, task_id: str) -> dict[str, Any]:
        """Task detail, read through the cache."""
        cached = self._cache.get_task(task_id)
        if cached is not None:
            return cached
        response = task_to_response(self._load_task(task_id))
        self._cache.set_task(task_id, response)
        return response

    async def list_tasks(self, params: dict[str, Any]) -> dict[str, Any]:
        """List tasks with optional filters, newest first."""
        status = params.get("status")
        if status is not None and status not in VALID_STATUSES:
            raise ValidationError(
                f"Invalid status filter: {status}",
                {"field": "status"},
            )

        min_price = params.get("min_price")
        max_price = params.get("max_price")
        limit = _parse_page(params.get("limit"), "limit", DEFAULT_PAGE_SIZE, 1)
        if limit > MAX_PAGE_SIZE:
            raise ValidationError(
                f"Query parameter 'limit' must be at most {MAX_PAGE_SIZE}",
                {"field": "limit"},
            )
        offset = _parse_page(params.get("offset"), "offset", 0, 0)

        rows = self._store.list_tasks(
            status=status,
            requester_id=params.get("requester_id"),
            assignee_id=params.get("assignee_id"),
            category_id=params.get("category_id"),
            min_price_cents=None if min_price is None else parse_price(min_price, "min_price"),
            max_price_cents=None if max_price is None else parse_price(max_price, "max_price"),
            limit=limit,
            offset=offset,
        )
        return {"tasks": [task_to_response(row) for row in rows]}

    async def update_task(
        self,
        actor: Actor,
        task_id: str,
        body: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Edit an open task.

        Error precedence:
        1. TASK_NOT_FOUND
        2. FORBIDDEN — actor is not requester or admin
        3. INVALID_TRANSITION — task is not open
        4. INVALID_PAYLOAD — immutable, unknown, or invalid fields
        5. CONFLICT_RETRY — status changed between read and write
        """
        task = self._load_task(task_id)
        guard.require(actor, guard.EDIT_TASK, task)

        if task["status"] != OPEN:
            raise InvalidTransition(
                f"Cannot edit a task in '{task['status']}' status, must be 'open'",
                {"status": task["status"]},
            )

        updates = self._editable_updates(body)
        updates["updated_at"] = now_iso()

        updated = self._store.update_task(task_id, updates, expected_status=OPEN)
        if updated == 0:
            raise ConflictRetry(
                "Task changed concurrently, re-read and retry",
                {"task_id": task_id, "expected_status": OPEN},
            )

        self._cache.invalidate_task(task_id)
        return self._reload(task_id)

    async def delete_task(self, actor: Actor, task_id: str) -> dict[str, Any]:
        """Delete a task with its applications and messages."""
        task = self._load_task(task_id)
        guard.require(actor, guard.DELETE_TASK, task)

        if task["status"] in UNDELETABLE_STATUSES:
            raise InvalidTransition(
                f"Cannot delete a task in '{task['status']}' status",
                {"status": task["status"]},
            )

        deleted = self._store.delete_task(task_id, expected_status=task["status"])
        if deleted == 0:
            raise ConflictRetry(
                "Task changed concurrently, re-read and retry",
                {"task_id": task_id, "expected_status": task["status"]},
            )

        self._cache.invalidate_task(task_id)
        self._logger.info(
            "Task deleted",
            extra={"task_id": task_id, "actor_id": actor.user_id, "from_status": task["status"]},
        )
        return {"task_id": task_id, "deleted": True}

    async def complete_task(self, actor: Actor, task_id: str) -> dict[str, Any]:
        """
        Mark an in-progress task completed.

        Error precedence:
        1. TASK_NOT_FOUND
        2. FORBIDDEN — actor is not requester, assignee, or admin
        3. INVALID_TRANSITION — task is not in_progress
        4. CONFLICT_RETRY — status changed between read and write
        """
        task = self._load_task(task_id)
        guard.require(actor, guard.COMPLETE_TASK, task)

        if task["status"] != IN_PROGRESS:
            raise InvalidTransition(
                f"Cannot complete a task in '{task['status']}' status, must be 'in_progress'",
                {"status": task["status"]},
            )

        completed_at = now_iso()
        self._transition(
            actor,
            task,
            COMPLETED,
            {
                "completed_at": completed_at,
                "completed_by": actor.user_id,
                "updated_at": completed_at,
            },
        )

        try:
            self._store.increment_completion_counters(
                task["assignee_id"], task["requester_id"], completed_at
            )
        except sqlite3.Error:
            self._logger.error(
                "Completion counter update failed",
                exc_info=True,
                extra={
                    "task_id": task_id,
                    "assignee_id": task["assignee_id"],
                    "requester_id": task["requester_id"],
                },
            )
        self._cache.invalidate_profile(task["assignee_id"])
        self._cache.invalidate_profile(task["requester_id"])

        await self._dispatcher.dispatch(
            TASK_COMPLETED,
            task,
            actor.user_id,
            [task["requester_id"], task["assignee_id"]],
        )
        return self._reload(task_id)

    async def cancel_task(self, actor: Actor, task_id: str) -> dict[str, Any]:
        """
        Cancel an open or in-progress task and flag it for refund.

        The refund itself belongs to the payment collaborator; only the
        flag is recorded here.
        """
        task = self._load_task(task_id)
        guard.require(actor, guard.CANCEL_TASK, task)

        if task["status"] not in CANCELLABLE_STATUSES:
            raise InvalidTransition(
                f"Cannot cancel a task in '{task['status']}' status",
                {"status": task["status"]},
            )

        cancelled_at = now_iso()
        self._transition(
            actor,
            task,
            CANCELLED,
            {
                "cancelled_at": cancelled_at,
                "cancelled_by": actor.user_id,
                "refund_required": 1,
                "assignee_id": None,
                "updated_at": cancelled_at,
            },
        )

        await self._dispatcher.dispatch(
            TASK_CANCELLED,
            task,
            actor.user_id,
            [task["requester_id"], task["assignee_id"]],
            {"refund_required": True},
        )
        return self._reload(task_id)

    # ------------------------------------------------------------------
    # Reviews and profiles
    # ------------------------------------------------------------------

    async def submit_review(
        self,
        actor: Actor,
        task_id: str,
        body: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Review the counter-party of a completed task.

        Error precedence:
        1. TASK_NOT_FOUND
        2. INVALID_TRANSITION — task is not completed
        3. FORBIDDEN — actor is neither requester nor assignee
        4. INVALID_PAYLOAD — rating or comment invalid
        5. ALREADY_REVIEWED — actor already reviewed this task
        """
        task = self._load_task(task_id)

        if task["status"] != COMPLETED:
            raise InvalidTransition(
                f"Cannot review a task in '{task['status']}' status, must be 'completed'",
                {"status": task["status"]},
            )

        decision = guard.require(actor, guard.SUBMIT_REVIEW, task)

        rating = _parse_rating(body.get("rating"))
        comment = optional_text(body, "comment", MAX_COMMENT_LENGTH)

        if guard.REQUESTER in decision.roles:
            reviewee_id = task["assignee_id"]
        else:
            reviewee_id = task["requester_id"]

        review = {
            "review_id": new_id("rev"),
            "task_id": task_id,
            "reviewer_id": actor.user_id,
            "reviewee_id": reviewee_id,
            "rating": rating,
            "comment": comment,
            "is_reviewing_requester": reviewee_id == task["requester_id"],
            "created_at": now_iso(),
        }
        try:
            self._review_store.insert_review(review)
        except DuplicateReviewError as exc:
            raise ValidationError(
                "You have already reviewed this task",
                error="ALREADY_REVIEWED",
            ) from exc

        try:
            self._rating_aggregator.recompute(reviewee_id)
        except sqlite3.Error:
            self._logger.error(
                "Rating recomputation failed",
                exc_info=True,
                extra={
                    "task_id": task_id,
                    "review_id": review["review_id"],
                    "reviewee_id": reviewee_id,
                },
            )
        self._cache.invalidate_profile(reviewee_id)

        await self._dispatcher.dispatch(
            NEW_REVIEW,
            task,
            actor.user_id,
            [reviewee_id],
            {"review_id": review["review_id"], "rating": rating},
        )
        return review

    async def list_reviews(self, task_id: str) -> dict[str, Any]:
        """Reviews of a task, newest first."""
        self._load_task(task_id)
        return {"task_id": task_id, "reviews": self._review_store.get_reviews_for_task(task_id)}

    async def get_profile(self, user_id: str) -> dict[str, Any]:
        """Rating and task counters, read through the cache."""
        cached = self._cache.get_profile(user_id)
        if cached is not None:
            return cached
        profile = self._store.get_profile(user_id) or _empty_profile(user_id)
        self._cache.set_profile(user_id, profile)
        return profile

    async def recompute_rating(self, actor: Actor, user_id: str) -> dict[str, Any]:
        """Admin reconciliation: rebuild a user's rating from their reviews."""
        guard.require(actor, guard.RECOMPUTE_RATING)
        self._rating_aggregator.recompute(user_id)
        self._cache.invalidate_profile(user_id)
        return await self.get_profile(user_id)
