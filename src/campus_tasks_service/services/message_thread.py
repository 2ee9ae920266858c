"""Append-only task conversations."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from campus_tasks_service.core.exceptions import InvalidTransition, NotFound, ValidationError
from campus_tasks_service.logging import get_logger
from campus_tasks_service.services import authorization as guard
from campus_tasks_service.services.fields import optional_text
from campus_tasks_service.services.notification_dispatcher import NEW_MESSAGE
from campus_tasks_service.services.timestamps import new_id, now_iso

if TYPE_CHECKING:
    from campus_tasks_service.services.authorization import Actor
    from campus_tasks_service.services.message_store import MessageStore
    from campus_tasks_service.services.notification_dispatcher import NotificationDispatcher
    from campus_tasks_service.services.task_store import TaskStore

MAX_CONTENT_LENGTH = 5000
MAX_ATTACHMENT_FIELD_LENGTH = 2048
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def _parse_attachment(value: object) -> dict[str, Any] | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError("Field 'attachment' must be an object", {"field": "attachment"})

    url = value.get("url")
    if not isinstance(url, str) or url.strip() == "":
        raise ValidationError(
            "Field 'attachment.url' must be a non-empty string",
            {"field": "attachment.url"},
        )
    attachment: dict[str, Any] = {"url": url.strip(), "name": None, "content_type": None}
    for key in ("name", "content_type"):
        item = value.get(key)
        if item is None:
            continue
        if not isinstance(item, str) or len(item) > MAX_ATTACHMENT_FIELD_LENGTH:
            raise ValidationError(
                f"Field 'attachment.{key}' must be a string",
                {"field": f"attachment.{key}"},
            )
        attachment[key] = item
    if len(attachment["url"]) > MAX_ATTACHMENT_FIELD_LENGTH:
        raise ValidationError("Field 'attachment.url' is too long", {"field": "attachment.url"})
    return attachment


class MessageThread:
    """
    Conversation between a task's requester and assignee, plus admins.

    Messages are never edited or deleted. Read receipts only grow.
    """

    def __init__(
        self,
        task_store: TaskStore,
        message_store: MessageStore,
        dispatcher: NotificationDispatcher,
        allow_after_completion: bool,
    ) -> None:
        self._task_store = task_store
        self._message_store = message_store
        self._dispatcher = dispatcher
        self._allow_after_completion = allow_after_completion
        self._logger = get_logger(__name__)

    def _load_task(self, task_id: str) -> dict[str, Any]:
        task = self._task_store.get_task(task_id)
        if task is None:
            raise NotFound("Task not found", error="TASK_NOT_FOUND")
        return task

    async def post(self, actor: Actor, task_id: str, body: dict[str, Any]) -> dict[str, Any]:
        """Append a message to the task conversation."""
        task = self._load_task(task_id)
        decision = guard.require(actor, guard.POST_MESSAGE, task)

        if (
            task["status"] == "completed"
            and not self._allow_after_completion
            and guard.ADMIN not in decision.roles
        ):
            raise InvalidTransition(
                "Messaging is closed on completed tasks",
                {"status": task["status"]},
            )

        content = optional_text(body, "content", MAX_CONTENT_LENGTH)
        attachment = _parse_attachment(body.get("attachment"))
        if content is None and attachment is None:
            raise ValidationError("Message must have content or an attachment")

        message = {
            "message_id": new_id("msg"),
            "task_id": task_id,
            "sender_id": actor.user_id,
            "content": content,
            "attachment": attachment,
            "read_by": [actor.user_id],
            "created_at": now_iso(),
        }
        self._message_store.insert_message(message)

        await self._dispatcher.dispatch(
            NEW_MESSAGE,
            task,
            actor.user_id,
            [task["requester_id"], task["assignee_id"]],
            {"message_id": message["message_id"]},
        )
        return message

    async def list_messages(
        self,
        actor: Actor,
        task_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> dict[str, Any]:
        """A page of the conversation, oldest first, marked read for the actor."""
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationError("offset must be non-negative")

        task = self._load_task(task_id)
        guard.require(actor, guard.READ_MESSAGES, task)

        messages = self._message_store.list_messages(task_id, limit, offset)
        unread = [m["message_id"] for m in messages if actor.user_id not in m["read_by"]]
        self._message_store.mark_read(unread, actor.user_id, now_iso())
        for message in messages:
            if message["message_id"] in unread:
                message["read_by"].append(actor.user_id)

        total = self._message_store.count_messages(task_id)
        return {
            "task_id": task_id,
            "messages": messages,
            "total": total,
            "has_more": offset + len(messages) < total,
        }

    async def mark_read(self, actor: Actor, task_id: str, message_id: str) -> dict[str, Any]:
        """Add the actor to a message's readers. Repeating it changes nothing."""
        task = self._load_task(task_id)
        guard.require(actor, guard.MARK_MESSAGE_READ, task)

        message = self._message_store.get_message(message_id, task_id)
        if message is None:
            raise NotFound("Message not found", error="MESSAGE_NOT_FOUND")

        if actor.user_id not in message["read_by"]:
            self._message_store.mark_read([message_id], actor.user_id, now_iso())
            message["read_by"].append(actor.user_id)
        return message
