"""Application endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from campus_tasks_service.core.state import get_app_state
from campus_tasks_service.routers.validation import read_json_body, resolve_actor

if TYPE_CHECKING:
    from campus_tasks_service.services.application_manager import ApplicationManager

router = APIRouter()


def _applications() -> ApplicationManager:
    state = get_app_state()
    if state.application_manager is None:
        msg = "ApplicationManager not initialized"
        raise RuntimeError(msg)
    return state.application_manager


@router.post("/tasks/{task_id}/applications", status_code=201)
async def apply(task_id: str, request: Request) -> JSONResponse:
    """Apply to an open task."""
    actor = await resolve_actor(request)
    data = await read_json_body(request)
    result = await _applications().apply(actor, task_id, data)
    return JSONResponse(status_code=201, content=result)


@router.get("/tasks/{task_id}/applications")
async def list_applications(task_id: str, request: Request) -> dict[str, Any]:
    """List all applications for a task."""
    actor = await resolve_actor(request)
    return await _applications().list_for_task(actor, task_id)


@router.get("/tasks/{task_id}/applications/{application_id}")
async def get_application(task_id: str, application_id: str, request: Request) -> dict[str, Any]:
    """Get a single application."""
    actor = await resolve_actor(request)
    return await _applications().get(actor, task_id, application_id)


@router.patch("/tasks/{task_id}/applications/{application_id}")
async def update_application_status(
    task_id: str,
    application_id: str,
    request: Request,
) -> JSONResponse:
    """Accept, reject, or withdraw an application."""
    actor = await resolve_actor(request)
    data = await read_json_body(request)
    result = await _applications().update_status(actor, task_id, application_id, data)
    return JSONResponse(status_code=200, content=result)


@router.delete("/tasks/{task_id}/applications/{application_id}")
async def delete_application(task_id: str, application_id: str, request: Request) -> JSONResponse:
    """Delete an application."""
    actor = await resolve_actor(request)
    result = await _applications().delete(actor, task_id, application_id)
    return JSONResponse(status_code=200, content=result)
