"""Application state management."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from campus_tasks_service.clients.delivery_client import DeliveryClient
    from campus_tasks_service.clients.identity_client import IdentityClient
    from campus_tasks_service.services.application_manager import ApplicationManager
    from campus_tasks_service.services.message_store import MessageStore
    from campus_tasks_service.services.message_thread import MessageThread
    from campus_tasks_service.services.notification_dispatcher import NotificationDispatcher
    from campus_tasks_service.services.notification_store import NotificationStore
    from campus_tasks_service.services.review_store import ReviewStore
    from campus_tasks_service.services.session_resolver import SessionResolver
    from campus_tasks_service.services.task_cache import TaskCache
    from campus_tasks_service.services.task_lifecycle import TaskLifecycleController
    from campus_tasks_service.services.task_store import TaskStore


@dataclass
class AppState:
    """Runtime application state."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    task_store: TaskStore | None = None
    message_store: MessageStore | None = None
    review_store: ReviewStore | None = None
    notification_store: NotificationStore | None = None
    cache: TaskCache | None = None
    identity_client: IdentityClient | None = None
    delivery_client: DeliveryClient | None = None
    session_resolver: SessionResolver | None = None
    dispatcher: NotificationDispatcher | None = None
    application_manager: ApplicationManager | None = None
    lifecycle: TaskLifecycleController | None = None
    message_thread: MessageThread | None = None

    def __setattr__(self, name: str, value: Any) -> None:
        """Keep collaborator references in sync when a client is swapped."""
        super().__setattr__(name, value)

        session_resolver = self.__dict__.get("session_resolver")
        if name == "identity_client" and value is not None and session_resolver is not None:
            session_resolver.set_identity_client(value)
        elif name == "session_resolver" and value is not None:
            identity_client = self.__dict__.get("identity_client")
            if identity_client is not None:
                value.set_identity_client(identity_client)

        dispatcher = self.__dict__.get("dispatcher")
        if name == "delivery_client" and dispatcher is not None:
            dispatcher.set_delivery_client(value)

    @property
    def uptime_seconds(self) -> float:
        """Calculate uptime in seconds."""
        return (datetime.now(UTC) - self.start_time).total_seconds()

    @property
    def started_at(self) -> str:
        """ISO format start time."""
        return self.start_time.isoformat(timespec="seconds").replace("+00:00", "Z")


# Global application state container
_state_container: dict[str, AppState | None] = {"app_state": None}


def get_app_state() -> AppState:
    """Get the current application state."""
    app_state = _state_container["app_state"]
    if app_state is None:
        msg = "Application state not initialized"
        raise RuntimeError(msg)
    return app_state


def init_app_state() -> AppState:
    """Initialize application state. Called during startup."""
    app_state = AppState()
    _state_container["app_state"] = app_state
    return app_state


def reset_app_state() -> None:
    """Reset application state. Used in testing."""
    _state_container["app_state"] = None
