"""Application state machine: apply, accept, reject, withdraw, delete."""

from __future__ import annotations

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
    first_present,
    format_price,
    optional_text,
    parse_price,
)
from campus_tasks_service.services.notification_dispatcher import (
    APPLICATION_ACCEPTED,
    APPLICATION_RECEIVED,
    APPLICATION_REJECTED,
    APPLICATION_WITHDRAWN,
)
from campus_tasks_service.services.task_store import DuplicateApplicationError, StaleStateError
from campus_tasks_service.services.timestamps import new_id, now_iso

if TYPE_CHECKING:
    from campus_tasks_service.services.authorization import Actor
    from campus_tasks_service.services.notification_dispatcher import NotificationDispatcher
    from campus_tasks_service.services.task_cache import TaskCache
    from campus_tasks_service.services.task_store import TaskStore

PENDING = "pending"
ACCEPTED = "accepted"
REJECTED = "rejected"
WITHDRAWN = "withdrawn"

VALID_APPLICATION_STATUSES: frozenset[str] = frozenset({PENDING, ACCEPTED, REJECTED, WITHDRAWN})
PATCHABLE_STATUSES: frozenset[str] = frozenset({ACCEPTED, REJECTED, WITHDRAWN})
DELETABLE_STATUSES: frozenset[str] = frozenset({PENDING, WITHDRAWN})

MAX_MESSAGE_LENGTH = 2000


def application_to_response(row: dict[str, Any]) -> dict[str, Any]:
    """Convert an application row to its API representation."""
    return {
        "application_id": row["application_id"],
        "task_id": row["task_id"],
        "applicant_id": row["applicant_id"],
        "status": row["status"],
        "proposed_price": format_price(row["proposed_price_cents"]),
        "message": row["message"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


class ApplicationManager:
    """
    Owns the pending -> accepted | rejected | withdrawn machine.

    Acceptance is the one group transition in the system: the target
    application, every sibling still pending, and the task row change in a
    single store transaction, or none of them do.
    """

    def __init__(
        self,
        store: TaskStore,
        dispatcher: NotificationDispatcher,
        cache: TaskCache,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._cache = cache
        self._logger = get_logger(__name__)

    def _load_task(self, task_id: str) -> dict[str, Any]:
        task = self._store.get_task(task_id)
        if task is None:
            raise NotFound("Task not found", error="TASK_NOT_FOUND")
        return task

    def _load_application(self, task_id: str, application_id: str) -> dict[str, Any]:
        application = self._store.get_application(application_id, task_id)
        if application is None:
            raise NotFound("Application not found", error="APPLICATION_NOT_FOUND")
        return application

    @staticmethod
    def _require_pending(application: dict[str, Any], action: str) -> None:
        if application["status"] != PENDING:
            raise InvalidTransition(
                f"Cannot {action} an application in '{application['status']}' status, "
                "must be 'pending'",
                {"status": application["status"]},
            )

    def _reload(self, task_id: str, application_id: str) -> dict[str, Any]:
        updated = self._store.get_application(application_id, task_id)
        if updated is None:
            msg = f"Application {application_id} not found after update"
            raise RuntimeError(msg)
        return application_to_response(updated)

    # ------------------------------------------------------------------
    # Public methods — called by routers
    # ------------------------------------------------------------------

    async def apply(self, actor: Actor, task_id: str, body: dict[str, Any]) -> dict[str, Any]:
        """
        Submit a pending application to an open task.

        Error precedence:
        1. TASK_NOT_FOUND
        2. FORBIDDEN — actor is the requester
        3. INVALID_TRANSITION — task is not open
        4. INVALID_PAYLOAD — message too long, bad proposed price
        5. ALREADY_APPLIED — actor already has an application on this task
        6. CONFLICT_RETRY — task left open between read and write
        """
        task = self._load_task(task_id)
        guard.require(actor, guard.APPLY, task)

        if task["status"] != "open":
            raise InvalidTransition(
                f"Cannot apply to a task in '{task['status']}' status, must be 'open'",
                {"status": task["status"]},
            )

        message = optional_text(body, "message", MAX_MESSAGE_LENGTH)
        raw_price = first_present(body, "proposed_price", "proposedPrice")
        proposed_price_cents = (
            None if raw_price is None else parse_price(raw_price, "proposed_price")
        )

        created_at = now_iso()
        application = {
            "application_id": new_id("app"),
            "task_id": task_id,
            "applicant_id": actor.user_id,
            "status": PENDING,
            "proposed_price_cents": proposed_price_cents,
            "message": message,
            "created_at": created_at,
            "updated_at": created_at,
        }
        try:
            self._store.insert_application(application)
        except DuplicateApplicationError as exc:
            raise ValidationError(
                "You have already applied to this task",
                error="ALREADY_APPLIED",
            ) from exc
        except StaleStateError as exc:
            self._logger.warning(
                "Application lost a race with a task transition",
                extra={"task_id": task_id, "actor_id": actor.user_id},
            )
            raise ConflictRetry(
                "Task changed concurrently, re-read and retry",
                {"task_id": task_id},
            ) from exc

        self._logger.info(
            "Application submitted",
            extra={
                "task_id": task_id,
                "application_id": application["application_id"],
                "actor_id": actor.user_id,
            },
        )
        await self._dispatcher.dispatch(
            APPLICATION_RECEIVED,
            task,
            actor.user_id,
            [task["requester_id"]],
            {"application_id": application["application_id"]},
        )
        return application_to_response(application)

    async def list_for_task(self, actor: Actor, task_id: str) -> dict[str, Any]:
        """All applications of a task, oldest first. Requester or admin only."""
        task = self._load_task(task_id)
        guard.require(actor, guard.LIST_APPLICATIONS, task)
        applications = self._store.get_applications_for_task(task_id)
        return {
            "task_id": task_id,
            "applications": [application_to_response(row) for row in applications],
        }

    async def get(self, actor: Actor, task_id: str, application_id: str) -> dict[str, Any]:
        """A single application, visible to requester, applicant, or admin."""
        task = self._load_task(task_id)
        application = self._load_application(task_id, application_id)
        guard.require(actor, guard.VIEW_APPLICATION, task, application)
        return application_to_response(application)

    async def accept(self, actor: Actor, task_id: str, application_id: str) -> dict[str, Any]:
        """
        Accept one application and start the task.

        Error precedence:
        1. TASK_NOT_FOUND / APPLICATION_NOT_FOUND
        2. FORBIDDEN — actor is not requester or admin
        3. INVALID_TRANSITION — application not pending, or task not open
        4. CONFLICT_RETRY — state changed between read and write
        """
        task = self._load_task(task_id)
        application = self._load_application(task_id, application_id)
        guard.require(actor, guard.ACCEPT_APPLICATION, task, application)
        self._require_pending(application, "accept")

        if task["status"] != "open":
            raise InvalidTransition(
                f"Cannot accept an application on a task in '{task['status']}' status, "
                "must be 'open'",
                {"status": task["status"]},
            )

        accepted_at = now_iso()
        try:
            rejected = self._store.accept_application(
                task_id,
                application_id,
                application["applicant_id"],
                accepted_at,
            )
        except StaleStateError as exc:
            self._logger.warning(
                "Application acceptance lost a race",
                extra={
                    "task_id": task_id,
                    "application_id": application_id,
                    "actor_id": actor.user_id,
                },
            )
            raise ConflictRetry(
                "Task or application changed concurrently, re-read and retry",
                {"task_id": task_id, "application_id": application_id},
            ) from exc

        self._cache.invalidate_task(task_id)
        self._logger.info(
            "Task transition",
            extra={
                "task_id": task_id,
                "actor_id": actor.user_id,
                "from_status": "open",
                "to_status": "in_progress",
                "application_id": application_id,
                "rejected_count": len(rejected),
            },
        )

        await self._dispatcher.dispatch(
            APPLICATION_ACCEPTED,
            task,
            actor.user_id,
            [application["applicant_id"]],
            {"application_id": application_id},
        )
        for loser in rejected:
            await self._dispatcher.dispatch(
                APPLICATION_REJECTED,
                task,
                actor.user_id,
                [loser["applicant_id"]],
                {"application_id": loser["application_id"]},
            )
        return self._reload(task_id, application_id)

    async def reject(self, actor: Actor, task_id: str, application_id: str) -> dict[str, Any]:
        """Reject a pending application. The task is not touched."""
        task = self._load_task(task_id)
        application = self._load_application(task_id, application_id)
        guard.require(actor, guard.REJECT_APPLICATION, task, application)
        self._require_pending(application, "reject")

        updated = self._store.update_application_status(
            application_id, REJECTED, now_iso(), expected_status=PENDING
        )
        if updated == 0:
            raise ConflictRetry(
                "Application changed concurrently, re-read and retry",
                {"application_id": application_id},
            )

        await self._dispatcher.dispatch(
            APPLICATION_REJECTED,
            task,
            actor.user_id,
            [application["applicant_id"]],
            {"application_id": application_id},
        )
        return self._reload(task_id, application_id)

    async def withdraw(self, actor: Actor, task_id: str, application_id: str) -> dict[str, Any]:
        """Withdraw the actor's own pending application."""
        task = self._load_task(task_id)
        application = self._load_application(task_id, application_id)
        guard.require(actor, guard.WITHDRAW_APPLICATION, task, application)
        self._require_pending(application, "withdraw")

        updated = self._store.update_application_status(
            application_id, WITHDRAWN, now_iso(), expected_status=PENDING
        )
        if updated == 0:
            raise ConflictRetry(
                "Application changed concurrently, re-read and retry",
                {"application_id": application_id},
            )

        await self._dispatcher.dispatch(
            APPLICATION_WITHDRAWN,
            task,
            actor.user_id,
            [task["requester_id"]],
            {"application_id": application_id},
        )
        return self._reload(task_id, application_id)

    async def update_status(
        self,
        actor: Actor,
        task_id: str,
        application_id: str,
        body: dict[str, Any],
    ) -> dict[str, Any]:
        """Dispatch a ``{"status": accepted|rejected|withdrawn}`` patch."""
        status = body.get("status")
        if not isinstance(status, str) or status not in PATCHABLE_STATUSES:
            raise ValidationError(
                "Field 'status' must be one of: accepted, rejected, withdrawn",
                {"field": "status"},
            )

        if status == ACCEPTED:
            return await self.accept(actor, task_id, application_id)
        if status == REJECTED:
            return await self.reject(actor, task_id, application_id)
        return await self.withdraw(actor, task_id, application_id)

    async def delete(self, actor: Actor, task_id: str, application_id: str) -> dict[str, Any]:
        """
        Delete an application.

        Accepted and rejected applications stay as an audit trail; only an
        admin may remove them.
        """
        task = self._load_task(task_id)
        application = self._load_application(task_id, application_id)
        decision = guard.require(actor, guard.DELETE_APPLICATION, task, application)

        if application["status"] not in DELETABLE_STATUSES and guard.ADMIN not in decision.roles:
            raise InvalidTransition(
                f"Cannot delete an application in '{application['status']}' status",
                {"status": application["status"]},
            )

        deleted = self._store.delete_application(
            application_id, expected_status=application["status"]
        )
        if deleted == 0:
            raise ConflictRetry(
                "Application changed concurrently, re-read and retry",
                {"application_id": application_id},
            )

        self._logger.info(
            "Application deleted",
            extra={
                "task_id": task_id,
                "application_id": application_id,
                "actor_id": actor.user_id,
                "status": application["status"],
            },
        )
        return {"application_id": application_id, "deleted": True}
