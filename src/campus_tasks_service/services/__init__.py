"""Service layer components."""

from campus_tasks_service.services.application_manager import ApplicationManager
from campus_tasks_service.services.message_thread import MessageThread
from campus_tasks_service.services.notification_dispatcher import NotificationDispatcher
from campus_tasks_service.services.rating_aggregator import RatingAggregator
from campus_tasks_service.services.session_resolver import SessionResolver
from campus_tasks_service.services.task_cache import TaskCache
from campus_tasks_service.services.task_lifecycle import TaskLifecycleController

__all__ = [
    "ApplicationManager",
    "MessageThread",
    "NotificationDispatcher",
    "RatingAggregator",
    "SessionResolver",
    "TaskCache",
    "TaskLifecycleController",
]
