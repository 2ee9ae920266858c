"""API routers."""

from campus_tasks_service.routers import (
    applications,
    health,
    messages,
    notifications,
    reviews,
    tasks,
)

__all__ = ["applications", "health", "messages", "notifications", "reviews", "tasks"]
