"""Router test fixtures with a mocked identity provider."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from campus_tasks_service.app import create_app
from campus_tasks_service.config import clear_settings_cache
from campus_tasks_service.core.exceptions import DependencyFailure
from campus_tasks_service.core.lifespan import lifespan
from campus_tasks_service.core.state import get_app_state, reset_app_state
from tests.helpers import make_config_yaml

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

# ---------------------------------------------------------------------------
# Fixed user IDs
# ---------------------------------------------------------------------------
REQUESTER_ID = "u-requester"
WORKER_ID = "u-worker"
OTHER_WORKER_ID = "u-other-worker"
STRANGER_ID = "u-stranger"
ADMIN_ID = "u-admin"

MAX_BODY_SIZE = 4096


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------
def auth(user_id: str, *, admin: bool = False) -> dict[str, str]:
    """Authorization header for a user. The mock identity provider trusts it."""
    prefix = "admin" if admin else "user"
    return {"Authorization": f"Bearer {prefix}:{user_id}"}


def _resolve_session(token: str) -> dict[str, Any]:
    """Fake identity provider: ``user:<id>`` and ``admin:<id>`` are valid sessions."""
    kind, _, user_id = token.partition(":")
    if kind not in ("user", "admin") or user_id == "":
        return {"valid": False}
    return {"valid": True, "user_id": user_id, "is_admin": kind == "admin"}


# ---------------------------------------------------------------------------
# App + client fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
async def app(tmp_path: Path) -> AsyncIterator[Any]:
    """Create a test app with temp database and mocked external services."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        make_config_yaml(
            tmp_path / "test.db",
            tmp_path / "logs",
            max_body_size=MAX_BODY_SIZE,
        )
    )

    old_config = os.environ.get("CONFIG_PATH")
    os.environ["CONFIG_PATH"] = str(config_path)

    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    async with lifespan(test_app):
        state = get_app_state()

        # Mock identity provider; AppState hands it to the session resolver
        mock_identity = AsyncMock()
        mock_identity.close = AsyncMock()
        mock_identity.resolve_session = AsyncMock(side_effect=_resolve_session)
        state.identity_client = mock_identity

        # Mock delivery channel; AppState hands it to the dispatcher
        mock_delivery = AsyncMock()
        mock_delivery.close = AsyncMock()
        state.delivery_client = mock_delivery

        yield test_app

    reset_app_state()
    clear_settings_cache()
    if old_config is None:
        os.environ.pop("CONFIG_PATH", None)
    else:
        os.environ["CONFIG_PATH"] = old_config


@pytest.fixture
async def client(app: Any) -> AsyncIterator[AsyncClient]:
    """Create an async HTTP client for the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Mock override fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def mock_identity_unavailable(app: Any) -> None:  # noqa: ARG001
    """Configure the identity mock to simulate an outage."""
    state = get_app_state()
    state.identity_client.resolve_session = AsyncMock(
        side_effect=DependencyFailure(
            "Cannot connect to Identity service",
            error="IDENTITY_SERVICE_UNAVAILABLE",
        )
    )


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------
async def create_task(
    client: AsyncClient,
    requester_id: str = REQUESTER_ID,
    **overrides: Any,
) -> dict[str, Any]:
    """POST /tasks and return the created task."""
    body: dict[str, Any] = {
        "title": "Deliver a parcel",
        "description": "Bring a parcel from the post office to dorm B",
        "price": "15.00",
    }
    body.update(overrides)
    response = await client.post("/tasks", json=body, headers=auth(requester_id))
    assert response.status_code == 201, response.text
    return response.json()


async def apply(client: AsyncClient, task_id: str, applicant_id: str, **body: Any) -> dict[str, Any]:
    """POST an application and return it."""
    response = await client.post(
        f"/tasks/{task_id}/applications",
        json=body,
        headers=auth(applicant_id),
    )
    assert response.status_code == 201, response.text
    return response.json()


async def patch_application(
    client: AsyncClient,
    task_id: str,
    application_id: str,
    status: str,
    user_id: str,
) -> Any:
    """PATCH an application's status and return the raw response."""
    return await client.patch(
        f"/tasks/{task_id}/applications/{application_id}",
        json={"status": status},
        headers=auth(user_id),
    )


async def start_task(client: AsyncClient) -> dict[str, Any]:
    """Create a task and accept WORKER_ID's application. Returns the task."""
    task = await create_task(client)
    application = await apply(client, task["task_id"], WORKER_ID)
    response = await patch_application(
        client, task["task_id"], application["application_id"], "accepted", REQUESTER_ID
    )
    assert response.status_code == 200, response.text
    return task


async def finish_task(client: AsyncClient) -> dict[str, Any]:
    """A task completed by its requester."""
    task = await start_task(client)
    response = await client.post(
        f"/tasks/{task['task_id']}/complete",
        headers=auth(REQUESTER_ID),
    )
    assert response.status_code == 200, response.text
    return response.json()
