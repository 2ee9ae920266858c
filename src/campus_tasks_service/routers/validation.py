"""Shared request helpers for the routers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from campus_tasks_service.core.exceptions import ValidationError
from campus_tasks_service.core.state import get_app_state
from campus_tasks_service.services.fields import MAX_QUERY_INT

if TYPE_CHECKING:
    from fastapi import Request

    from campus_tasks_service.services.authorization import Actor


def parse_json_body(raw_body: bytes) -> dict[str, Any]:
    """Parse JSON body, raising ValidationError on failure."""
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError("Request body is not valid JSON", error="INVALID_JSON") from exc

    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", error="INVALID_JSON")

    return data


async def read_json_body(request: Request) -> dict[str, Any]:
    """Read and parse the request body. An empty body counts as ``{}``."""
    body = await request.body()
    return {} if body == b"" else parse_json_body(body)


async def resolve_actor(request: Request) -> Actor:
    """Resolve the calling actor from the Authorization header."""
    state = get_app_state()
    if state.session_resolver is None:
        msg = "SessionResolver not initialized"
        raise RuntimeError(msg)
    return await state.session_resolver.resolve(request.headers.get("authorization"))


def parse_int_query(request: Request, name: str, default: int) -> int:
    """Read an integer query parameter."""
    raw = request.query_params.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValidationError(f"{name} must be an integer", {"field": name}) from exc
    if abs(value) > MAX_QUERY_INT:
        raise ValidationError(f"{name} is out of range", {"field": name})
    return value


def parse_bool_query(request: Request, name: str) -> bool:
    """Read a boolean query parameter (true/false/1/0)."""
    raw = request.query_params.get(name)
    if raw is None:
        return False
    value = raw.strip().lower()
    if value in ("true", "1"):
        return True
    if value in ("false", "0"):
        return False
    raise ValidationError(f"{name} must be true or false", {"field": name})
