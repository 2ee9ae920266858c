"""Task conversation endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from campus_tasks_service.core.state import get_app_state
from campus_tasks_service.routers.validation import parse_int_query, read_json_body, resolve_actor
from campus_tasks_service.services.message_thread import DEFAULT_PAGE_SIZE

if TYPE_CHECKING:
    from campus_tasks_service.services.message_thread import MessageThread

router = APIRouter()


def _thread() -> MessageThread:
    state = get_app_state()
    if state.message_thread is None:
        msg = "MessageThread not initialized"
        raise RuntimeError(msg)
    return state.message_thread


@router.get("/tasks/{task_id}/messages")
async def list_messages(task_id: str, request: Request) -> dict[str, Any]:
    """Read the conversation. Returned messages are marked read for the caller."""
    actor = await resolve_actor(request)
    limit = parse_int_query(request, "limit", DEFAULT_PAGE_SIZE)
    offset = parse_int_query(request, "offset", 0)
    return await _thread().list_messages(actor, task_id, limit, offset)


@router.post("/tasks/{task_id}/messages", status_code=201)
async def post_message(task_id: str, request: Request) -> JSONResponse:
    """Post a message to the conversation."""
    actor = await resolve_actor(request)
    data = await read_json_body(request)
    result = await _thread().post(actor, task_id, data)
    return JSONResponse(status_code=201, content=result)


@router.post("/tasks/{task_id}/messages/{message_id}/read")
async def mark_message_read(task_id: str, message_id: str, request: Request) -> JSONResponse:
    """Mark one message read for the caller."""
    actor = await resolve_actor(request)
    result = await _thread().mark_read(actor, task_id, message_id)
    return JSONResponse(status_code=200, content=result)
