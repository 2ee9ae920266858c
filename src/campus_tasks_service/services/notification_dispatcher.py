"""Lifecycle event fanout into per-recipient notifications."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Any

from campus_tasks_service.core.exceptions import DependencyFailure, NotFound, ValidationError
from campus_tasks_service.logging import get_logger
from campus_tasks_service.services.timestamps import new_id, now_iso

if TYPE_CHECKING:
    from collections.abc import Iterable

    from campus_tasks_service.clients.delivery_client import DeliveryClient
    from campus_tasks_service.services.notification_store import NotificationStore

APPLICATION_RECEIVED = "application_received"
APPLICATION_ACCEPTED = "application_accepted"
APPLICATION_REJECTED = "application_rejected"
APPLICATION_WITHDRAWN = "application_withdrawn"
TASK_COMPLETED = "task_completed"
TASK_CANCELLED = "task_cancelled"
NEW_REVIEW = "new_review"
NEW_MESSAGE = "new_message"

# event type -> (title, message template); templates receive the task title
EVENT_TEMPLATES: dict[str, tuple[str, str]] = {
    APPLICATION_RECEIVED: ("New application", 'Someone applied to your task "{title}"'),
    APPLICATION_ACCEPTED: ("Application accepted", 'Your application for "{title}" was accepted'),
    APPLICATION_REJECTED: ("Application rejected", 'Your application for "{title}" was not selected'),
    APPLICATION_WITHDRAWN: ("Application withdrawn", 'An applicant withdrew from "{title}"'),
    TASK_COMPLETED: ("Task Completed", 'Task "{title}" has been marked as completed'),
    TASK_CANCELLED: ("Task cancelled", 'Task "{title}" has been cancelled'),
    NEW_REVIEW: ("New review", 'You received a new review for "{title}"'),
    NEW_MESSAGE: ("New message", 'You have a new message in task "{title}"'),
}

MAX_PAGE_SIZE = 100


class NotificationDispatcher:
    """
    Translates lifecycle events into notification rows and serves the inbox.

    ``dispatch`` runs after the triggering transaction has committed. Each
    recipient's notification is inserted on its own; a failed insert is
    logged for reconciliation and never raised, so the lifecycle result
    stands regardless of notification persistence or delivery.
    """

    def __init__(
        self,
        store: NotificationStore,
        delivery_client: DeliveryClient | None,
    ) -> None:
        self._store = store
        self._delivery_client = delivery_client
        self._logger = get_logger(__name__)

    def set_delivery_client(self, delivery_client: DeliveryClient | None) -> None:
        """Swap the delivery client. None disables delivery."""
        self._delivery_client = delivery_client

    @staticmethod
    def recipients_for(actor_id: str, candidates: Iterable[str | None]) -> list[str]:
        """Deduplicate candidates, dropping None and the actor, keeping order."""
        recipients: list[str] = []
        for candidate in candidates:
            if candidate is None or candidate == actor_id or candidate in recipients:
                continue
            recipients.append(candidate)
        return recipients

    async def dispatch(
        self,
        event_type: str,
        task: dict[str, Any],
        actor_id: str,
        recipients: Iterable[str | None],
        extra: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Emit one notification of ``event_type`` per recipient, excluding the actor.

        Returns:
            The notifications that were persisted.
        """
        if event_type not in EVENT_TEMPLATES:
            msg = f"Unknown notification type: {event_type}"
            raise ValueError(msg)

        title, template = EVENT_TEMPLATES[event_type]
        payload: dict[str, Any] = {"task_id": task["task_id"], "actor_id": actor_id}
        if extra is not None:
            payload.update(extra)

        persisted: list[dict[str, Any]] = []
        for recipient_id in self.recipients_for(actor_id, recipients):
            notification = {
                "notification_id": new_id("ntf"),
                "recipient_id": recipient_id,
                "type": event_type,
                "title": title,
                "message": template.format(title=task["title"]),
                "payload": payload,
                "is_read": False,
                "created_at": now_iso(),
                "read_at": None,
            }
            try:
                self._store.insert_notification(notification)
            except sqlite3.Error:
                self._logger.error(
                    "Notification persistence failed",
                    exc_info=True,
                    extra={
                        "task_id": task["task_id"],
                        "recipient_id": recipient_id,
                        "type": event_type,
                    },
                )
                continue
            persisted.append(notification)

        for notification in persisted:
            await self._deliver(notification)
        return persisted

    async def _deliver(self, notification: dict[str, Any]) -> None:
        if self._delivery_client is None:
            return
        try:
            await self._delivery_client.deliver(notification)
        except DependencyFailure:
            self._logger.warning(
                "Notification delivery failed",
                extra={
                    "notification_id": notification["notification_id"],
                    "recipient_id": notification["recipient_id"],
                    "type": notification["type"],
                },
            )

    # ------------------------------------------------------------------
    # Recipient inbox
    # ------------------------------------------------------------------

    def list_for_recipient(
        self,
        recipient_id: str,
        *,
        limit: int,
        offset: int,
        unread_only: bool,
    ) -> dict[str, Any]:
        """Page through a recipient's notifications, newest first."""
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationError("offset must be non-negative")

        notifications = self._store.list_notifications(
            recipient_id, unread_only=unread_only, limit=limit, offset=offset
        )
        total = self._store.count_notifications(recipient_id, unread_only=unread_only)
        unread_count = self._store.count_notifications(recipient_id, unread_only=True)
        return {
            "notifications": notifications,
            "total": total,
            "unread_count": unread_count,
            "has_more": offset + len(notifications) < total,
        }

    def _get_own(self, notification_id: str, recipient_id: str) -> dict[str, Any]:
        notification = self._store.get_notification(notification_id)
        if notification is None or notification["recipient_id"] != recipient_id:
            raise NotFound("Notification not found", error="NOTIFICATION_NOT_FOUND")
        return notification

    def mark_read(self, notification_id: str, recipient_id: str) -> dict[str, Any]:
        """Mark one of the recipient's notifications read. Already-read is a no-op."""
        notification = self._get_own(notification_id, recipient_id)
        if notification["is_read"]:
            return notification
        self._store.mark_read(notification_id, recipient_id, now_iso())
        return self._get_own(notification_id, recipient_id)

    def mark_all_read(self, recipient_id: str) -> dict[str, Any]:
        """Mark every notification of the recipient read."""
        self._store.mark_all_read(recipient_id, now_iso())
        return {"unread_count": self._store.count_notifications(recipient_id, unread_only=True)}

    def delete(self, notification_id: str, recipient_id: str) -> dict[str, Any]:
        """Delete one of the recipient's own notifications."""
        self._get_own(notification_id, recipient_id)
        self._store.delete_notification(notification_id, recipient_id)
        return {"unread_count": self._store.count_notifications(recipient_id, unread_only=True)}
