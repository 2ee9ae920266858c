"""Unit tests for bearer token resolution."""

from unittest.mock import AsyncMock

import pytest

from campus_tasks_service.core.exceptions import DependencyFailure, ServiceError
from campus_tasks_service.services.authorization import Actor
from campus_tasks_service.services.session_resolver import SessionResolver, extract_bearer_token


@pytest.mark.unit
@pytest.mark.parametrize("header", [None, "", "   ", "Basic abc", "Bearer", "Bearer   ", "token"])
def test_malformed_headers_are_unauthenticated(header: str | None) -> None:
    with pytest.raises(ServiceError) as exc_info:
        extract_bearer_token(header)
    assert exc_info.value.error == "UNAUTHENTICATED"
    assert exc_info.value.status_code == 401


@pytest.mark.unit
def test_scheme_is_case_insensitive() -> None:
    assert extract_bearer_token("bearer abc123") == "abc123"
    assert extract_bearer_token("Bearer  abc123 ") == "abc123"


@pytest.mark.unit
async def test_resolve_returns_actor() -> None:
    identity = AsyncMock()
    identity.resolve_session.return_value = {"valid": True, "user_id": "u-1", "is_admin": True}

    actor = await SessionResolver(identity).resolve("Bearer tok")

    assert actor == Actor(user_id="u-1", is_admin=True)
    identity.resolve_session.assert_awaited_once_with("tok")


@pytest.mark.unit
async def test_admin_flag_must_be_literal_true() -> None:
    identity = AsyncMock()
    identity.resolve_session.return_value = {"valid": True, "user_id": "u-1", "is_admin": "yes"}
    actor = await SessionResolver(identity).resolve("Bearer tok")
    assert actor.is_admin is False


@pytest.mark.unit
@pytest.mark.parametrize(
    "result",
    [{"valid": False}, {"valid": True}, {"valid": True, "user_id": ""}, {"user_id": "u-1"}],
)
async def test_invalid_sessions_are_unauthenticated(result: dict[str, object]) -> None:
    identity = AsyncMock()
    identity.resolve_session.return_value = result
    with pytest.raises(ServiceError) as exc_info:
        await SessionResolver(identity).resolve("Bearer tok")
    assert exc_info.value.status_code == 401


@pytest.mark.unit
async def test_identity_outage_propagates() -> None:
    identity = AsyncMock()
    identity.resolve_session.side_effect = DependencyFailure(
        "down", error="IDENTITY_SERVICE_UNAVAILABLE"
    )
    with pytest.raises(DependencyFailure):
        await SessionResolver(identity).resolve("Bearer tok")


@pytest.mark.unit
async def test_missing_header_skips_identity_call() -> None:
    identity = AsyncMock()
    with pytest.raises(ServiceError):
        await SessionResolver(identity).resolve(None)
    identity.resolve_session.assert_not_awaited()
