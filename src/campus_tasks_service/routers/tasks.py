"""Task lifecycle endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from campus_tasks_service.core.exceptions import ServiceError
from campus_tasks_service.core.state import get_app_state
from campus_tasks_service.routers.validation import read_json_body, resolve_actor

if TYPE_CHECKING:
    from campus_tasks_service.services.task_lifecycle import TaskLifecycleController

router = APIRouter()

_LIST_FILTERS = (
    "status",
    "requester_id",
    "assignee_id",
    "category_id",
    "min_price",
    "max_price",
    "limit",
    "offset",
)


def _lifecycle() -> TaskLifecycleController:
    state = get_app_state()
    if state.lifecycle is None:
        msg = "TaskLifecycleController not initialized"
        raise RuntimeError(msg)
    return state.lifecycle


# ---------------------------------------------------------------------------
# POST /tasks — create task (MUST be before GET /tasks/{task_id})
# ---------------------------------------------------------------------------


@router.post("/tasks", status_code=201)
async def create_task(request: Request) -> JSONResponse:
    """Create a new open task owned by the caller."""
    actor = await resolve_actor(request)
    data = await read_json_body(request)
    result = await _lifecycle().create_task(actor, data)
    return JSONResponse(status_code=201, content=result)


# ---------------------------------------------------------------------------
# GET /tasks — list tasks (MUST be before GET /tasks/{task_id})
# ---------------------------------------------------------------------------


@router.get("/tasks")
async def list_tasks(request: Request) -> dict[str, Any]:
    """List tasks with optional filters."""
    await resolve_actor(request)
    params = {name: request.query_params.get(name) for name in _LIST_FILTERS}
    return await _lifecycle().list_tasks(params)


# ---------------------------------------------------------------------------
# Transition endpoints
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/complete")
async def complete_task(task_id: str, request: Request) -> JSONResponse:
    """Mark an in-progress task completed."""
    actor = await resolve_actor(request)
    result = await _lifecycle().complete_task(actor, task_id)
    return JSONResponse(status_code=200, content=result)


@router.post("/tasks/{task_id}/cancel")
async def cancel_task(task_id: str, request: Request) -> JSONResponse:
    """Cancel an open or in-progress task."""
    actor = await resolve_actor(request)
    result = await _lifecycle().cancel_task(actor, task_id)
    return JSONResponse(status_code=200, content=result)


# ---------------------------------------------------------------------------
# Method-not-allowed: action routes
# ---------------------------------------------------------------------------


@router.api_route(
    "/tasks/{task_id}/complete",
    methods=["GET", "PUT", "PATCH", "DELETE"],
)
async def complete_method_not_allowed(task_id: str, request: Request) -> None:
    """Reject wrong methods on /tasks/{task_id}/complete."""
    _ = (task_id, request)
    raise ServiceError("METHOD_NOT_ALLOWED", "Method not allowed", 405, {})


@router.api_route(
    "/tasks/{task_id}/cancel",
    methods=["GET", "PUT", "PATCH", "DELETE"],
)
async def cancel_method_not_allowed(task_id: str, request: Request) -> None:
    """Reject wrong methods on /tasks/{task_id}/cancel."""
    _ = (task_id, request)
    raise ServiceError("METHOD_NOT_ALLOWED", "Method not allowed", 405, {})


# ---------------------------------------------------------------------------
# /tasks/{task_id} — MUST be LAST (parameterized catch-all)
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}")
async def get_task(task_id: str, request: Request) -> dict[str, Any]:
    """Get full task details."""
    await resolve_actor(request)
    return await _lifecycle().get_task(task_id)


@router.patch("/tasks/{task_id}")
async def update_task(task_id: str, request: Request) -> JSONResponse:
    """Edit an open task."""
    actor = await resolve_actor(request)
    data = await read_json_body(request)
    result = await _lifecycle().update_task(actor, task_id, data)
    return JSONResponse(status_code=200, content=result)


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: str, request: Request) -> JSONResponse:
    """Delete a task that has not started or finished."""
    actor = await resolve_actor(request)
    result = await _lifecycle().delete_task(actor, task_id)
    return JSONResponse(status_code=200, content=result)
