"""Review and profile endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from campus_tasks_service.core.state import get_app_state
from campus_tasks_service.routers.validation import read_json_body, resolve_actor

if TYPE_CHECKING:
    from campus_tasks_service.services.task_lifecycle import TaskLifecycleController

router = APIRouter()


def _lifecycle() -> TaskLifecycleController:
    state = get_app_state()
    if state.lifecycle is None:
        msg = "TaskLifecycleController not initialized"
        raise RuntimeError(msg)
    return state.lifecycle


@router.get("/tasks/{task_id}/reviews")
async def list_reviews(task_id: str, request: Request) -> dict[str, Any]:
    """List reviews of a task."""
    await resolve_actor(request)
    return await _lifecycle().list_reviews(task_id)


@router.post("/tasks/{task_id}/reviews", status_code=201)
async def submit_review(task_id: str, request: Request) -> JSONResponse:
    """Review the counter-party of a completed task."""
    actor = await resolve_actor(request)
    data = await read_json_body(request)
    result = await _lifecycle().submit_review(actor, task_id, data)
    return JSONResponse(status_code=201, content=result)


@router.get("/users/{user_id}/profile")
async def get_profile(user_id: str, request: Request) -> dict[str, Any]:
    """Rating and task counters of a user."""
    await resolve_actor(request)
    return await _lifecycle().get_profile(user_id)


@router.post("/users/{user_id}/rating/recompute")
async def recompute_rating(user_id: str, request: Request) -> JSONResponse:
    """Rebuild a user's rating from the review table. Admin only."""
    actor = await resolve_actor(request)
    result = await _lifecycle().recompute_rating(actor, user_id)
    return JSONResponse(status_code=200, content=result)
