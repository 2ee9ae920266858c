"""Application endpoint tests."""

from __future__ import annotations

import pytest

from tests.unit.routers.conftest import (
    ADMIN_ID,
    OTHER_WORKER_ID,
    REQUESTER_ID,
    STRANGER_ID,
    WORKER_ID,
    apply,
    auth,
    create_task,
    patch_application,
)


@pytest.mark.unit
async def test_apply_to_open_task(client) -> None:
    task = await create_task(client)

    response = await client.post(
        f"/tasks/{task['task_id']}/applications",
        json={"message": "Free after 3pm", "proposed_price": "14"},
        headers=auth(WORKER_ID),
    )

    assert response.status_code == 201
    application = response.json()
    assert application["status"] == "pending"
    assert application["proposed_price"] == "14.00"
    assert application["applicant_id"] == WORKER_ID


@pytest.mark.unit
async def test_apply_with_empty_body(client) -> None:
    task = await create_task(client)
    response = await client.post(
        f"/tasks/{task['task_id']}/applications",
        content=b"",
        headers={**auth(WORKER_ID), "Content-Type": "application/json"},
    )
    assert response.status_code == 201


@pytest.mark.unit
async def test_apply_without_body_or_content_type(client) -> None:
    task = await create_task(client)
    response = await client.post(
        f"/tasks/{task['task_id']}/applications",
        headers=auth(WORKER_ID),
    )
    assert response.status_code == 201
    assert response.json()["status"] == "pending"


@pytest.mark.unit
async def test_requester_cannot_apply_to_own_task(client) -> None:
    task = await create_task(client)
    response = await client.post(
        f"/tasks/{task['task_id']}/applications", json={}, headers=auth(REQUESTER_ID)
    )
    assert response.status_code == 403


@pytest.mark.unit
async def test_duplicate_application(client) -> None:
    task = await create_task(client)
    await apply(client, task["task_id"], WORKER_ID)
    response = await client.post(
        f"/tasks/{task['task_id']}/applications", json={}, headers=auth(WORKER_ID)
    )
    assert response.status_code == 400
    assert response.json()["error"] == "ALREADY_APPLIED"


@pytest.mark.unit
async def test_accept_one_application(client) -> None:
    """Two applicants, one accepted: the other is rejected and the task starts."""
    task = await create_task(client)
    task_id = task["task_id"]
    winner = await apply(client, task_id, WORKER_ID)
    loser = await apply(client, task_id, OTHER_WORKER_ID)

    response = await patch_application(
        client, task_id, winner["application_id"], "accepted", REQUESTER_ID
    )

    assert response.status_code == 200
    assert response.json()["status"] == "accepted"

    listed = await client.get(f"/tasks/{task_id}/applications", headers=auth(REQUESTER_ID))
    statuses = {a["application_id"]: a["status"] for a in listed.json()["applications"]}
    assert statuses == {winner["application_id"]: "accepted", loser["application_id"]: "rejected"}

    detail = (await client.get(f"/tasks/{task_id}", headers=auth(REQUESTER_ID))).json()
    assert detail["status"] == "in_progress"
    assert detail["assignee_id"] == WORKER_ID

    winner_inbox = (await client.get("/notifications", headers=auth(WORKER_ID))).json()
    loser_inbox = (await client.get("/notifications", headers=auth(OTHER_WORKER_ID))).json()
    assert [n["type"] for n in winner_inbox["notifications"]] == ["application_accepted"]
    assert [n["type"] for n in loser_inbox["notifications"]] == ["application_rejected"]

    late = await patch_application(
        client, task_id, loser["application_id"], "accepted", REQUESTER_ID
    )
    assert late.status_code == 400
    assert late.json()["error"] == "INVALID_TRANSITION"


@pytest.mark.unit
async def test_only_owner_accepts(client) -> None:
    task = await create_task(client)
    application = await apply(client, task["task_id"], WORKER_ID)
    response = await patch_application(
        client, task["task_id"], application["application_id"], "accepted", WORKER_ID
    )
    assert response.status_code == 403


@pytest.mark.unit
async def test_withdraw_and_reject(client) -> None:
    task = await create_task(client)
    first = await apply(client, task["task_id"], WORKER_ID)
    second = await apply(client, task["task_id"], OTHER_WORKER_ID)

    withdrawn = await patch_application(
        client, task["task_id"], first["application_id"], "withdrawn", WORKER_ID
    )
    rejected = await patch_application(
        client, task["task_id"], second["application_id"], "rejected", REQUESTER_ID
    )

    assert withdrawn.json()["status"] == "withdrawn"
    assert rejected.json()["status"] == "rejected"
    detail = (await client.get(f"/tasks/{task['task_id']}", headers=auth(REQUESTER_ID))).json()
    assert detail["status"] == "open"


@pytest.mark.unit
async def test_patch_requires_valid_status(client) -> None:
    task = await create_task(client)
    application = await apply(client, task["task_id"], WORKER_ID)
    response = await patch_application(
        client, task["task_id"], application["application_id"], "pending", REQUESTER_ID
    )
    assert response.status_code == 400
    assert response.json()["details"] == {"field": "status"}


@pytest.mark.unit
async def test_application_visibility(client) -> None:
    task = await create_task(client)
    application = await apply(client, task["task_id"], WORKER_ID)
    path = f"/tasks/{task['task_id']}/applications/{application['application_id']}"

    assert (await client.get(path, headers=auth(WORKER_ID))).status_code == 200
    assert (await client.get(path, headers=auth(REQUESTER_ID))).status_code == 200
    assert (await client.get(path, headers=auth(STRANGER_ID))).status_code == 403
    listing = await client.get(f"/tasks/{task['task_id']}/applications", headers=auth(WORKER_ID))
    assert listing.status_code == 403


@pytest.mark.unit
async def test_application_not_found(client) -> None:
    task = await create_task(client)
    response = await client.get(
        f"/tasks/{task['task_id']}/applications/app-missing", headers=auth(REQUESTER_ID)
    )
    assert response.status_code == 404
    assert response.json()["error"] == "APPLICATION_NOT_FOUND"


@pytest.mark.unit
async def test_delete_application(client) -> None:
    task = await create_task(client)
    application = await apply(client, task["task_id"], WORKER_ID)
    path = f"/tasks/{task['task_id']}/applications/{application['application_id']}"

    await patch_application(
        client, task["task_id"], application["application_id"], "rejected", REQUESTER_ID
    )
    refused = await client.delete(path, headers=auth(WORKER_ID))
    assert refused.status_code == 400

    response = await client.delete(path, headers=auth(ADMIN_ID, admin=True))
    assert response.status_code == 200
    assert response.json()["deleted"] is True
