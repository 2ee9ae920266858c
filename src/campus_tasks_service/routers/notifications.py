"""Notification inbox endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request

from campus_tasks_service.core.state import get_app_state
from campus_tasks_service.routers.validation import (
    parse_bool_query,
    parse_int_query,
    resolve_actor,
)

if TYPE_CHECKING:
    from campus_tasks_service.services.notification_dispatcher import NotificationDispatcher

router = APIRouter()

DEFAULT_PAGE_SIZE = 20


def _dispatcher() -> NotificationDispatcher:
    state = get_app_state()
    if state.dispatcher is None:
        msg = "NotificationDispatcher not initialized"
        raise RuntimeError(msg)
    return state.dispatcher


@router.get("/notifications")
async def list_notifications(request: Request) -> dict[str, Any]:
    """The caller's notifications, newest first."""
    actor = await resolve_actor(request)
    return _dispatcher().list_for_recipient(
        actor.user_id,
        limit=parse_int_query(request, "limit", DEFAULT_PAGE_SIZE),
        offset=parse_int_query(request, "offset", 0),
        unread_only=parse_bool_query(request, "unread_only"),
    )


@router.put("/notifications")
async def mark_all_read(request: Request) -> dict[str, Any]:
    """Mark all of the caller's notifications read."""
    actor = await resolve_actor(request)
    return _dispatcher().mark_all_read(actor.user_id)


@router.put("/notifications/{notification_id}")
async def mark_read(notification_id: str, request: Request) -> dict[str, Any]:
    """Mark one notification read."""
    actor = await resolve_actor(request)
    return _dispatcher().mark_read(notification_id, actor.user_id)


@router.delete("/notifications/{notification_id}")
async def delete_notification(notification_id: str, request: Request) -> dict[str, Any]:
    """Delete one of the caller's notifications."""
    actor = await resolve_actor(request)
    return _dispatcher().delete(notification_id, actor.user_id)
