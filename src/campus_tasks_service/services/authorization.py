"""
Capability table for every task, application, message, and review operation.

Pure Python, no storage access. Callers load the snapshots, then ask
``require`` whether the actor may proceed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from campus_tasks_service.core.exceptions import Forbidden

REQUESTER = "requester"
ASSIGNEE = "assignee"
APPLICANT = "applicant"
ADMIN = "admin"
AUTHENTICATED = "authenticated"

EDIT_TASK = "edit_task"
CANCEL_TASK = "cancel_task"
DELETE_TASK = "delete_task"
COMPLETE_TASK = "complete_task"
APPLY = "apply"
LIST_APPLICATIONS = "list_applications"
VIEW_APPLICATION = "view_application"
ACCEPT_APPLICATION = "accept_application"
REJECT_APPLICATION = "reject_application"
WITHDRAW_APPLICATION = "withdraw_application"
DELETE_APPLICATION = "delete_application"
READ_MESSAGES = "read_messages"
POST_MESSAGE = "post_message"
MARK_MESSAGE_READ = "mark_message_read"
SUBMIT_REVIEW = "submit_review"
RECOMPUTE_RATING = "recompute_rating"


@dataclass(frozen=True)
class Rule:
    """Roles that grant an operation, and roles that veto it."""

    allowed: frozenset[str]
    denied: frozenset[str] = frozenset()


_PARTICIPANTS = frozenset({REQUESTER, ASSIGNEE, ADMIN})
_OWNER = frozenset({REQUESTER, ADMIN})

CAPABILITIES: dict[str, Rule] = {
    EDIT_TASK: Rule(_OWNER),
    CANCEL_TASK: Rule(_OWNER),
    DELETE_TASK: Rule(_OWNER),
    COMPLETE_TASK: Rule(_PARTICIPANTS),
    APPLY: Rule(frozenset({AUTHENTICATED}), denied=frozenset({REQUESTER})),
    LIST_APPLICATIONS: Rule(_OWNER),
    VIEW_APPLICATION: Rule(frozenset({REQUESTER, APPLICANT, ADMIN})),
    ACCEPT_APPLICATION: Rule(_OWNER),
    REJECT_APPLICATION: Rule(_OWNER),
    WITHDRAW_APPLICATION: Rule(frozenset({APPLICANT})),
    DELETE_APPLICATION: Rule(frozenset({APPLICANT, REQUESTER, ADMIN})),
    READ_MESSAGES: Rule(_PARTICIPANTS),
    POST_MESSAGE: Rule(_PARTICIPANTS),
    MARK_MESSAGE_READ: Rule(_PARTICIPANTS),
    SUBMIT_REVIEW: Rule(frozenset({REQUESTER, ASSIGNEE})),
    RECOMPUTE_RATING: Rule(frozenset({ADMIN})),
}


@dataclass(frozen=True)
class Actor:
    """An authenticated caller."""

    user_id: str
    is_admin: bool = False


@dataclass(frozen=True)
class Decision:
    """Outcome of a capability check."""

    operation: str
    allowed: bool
    roles: frozenset[str]


def roles_for(
    actor: Actor,
    task: dict[str, Any] | None = None,
    application: dict[str, Any] | None = None,
) -> frozenset[str]:
    """Derive the actor's roles from the entity snapshots."""
    roles = {AUTHENTICATED}
    if actor.is_admin:
        roles.add(ADMIN)
    if task is not None:
        if task.get("requester_id") == actor.user_id:
            roles.add(REQUESTER)
        if task.get("assignee_id") is not None and task.get("assignee_id") == actor.user_id:
            roles.add(ASSIGNEE)
    if application is not None and application.get("applicant_id") == actor.user_id:
        roles.add(APPLICANT)
    return frozenset(roles)


def evaluate(
    actor: Actor,
    operation: str,
    task: dict[str, Any] | None = None,
    application: dict[str, Any] | None = None,
) -> Decision:
    """Check ``operation`` against the capability table."""
    rule = CAPABILITIES.get(operation)
    if rule is None:
        msg = f"Unknown operation: {operation}"
        raise ValueError(msg)

    roles = roles_for(actor, task, application)
    allowed = bool(roles & rule.allowed) and not (roles & rule.denied)
    return Decision(operation=operation, allowed=allowed, roles=roles)


def require(
    actor: Actor,
    operation: str,
    task: dict[str, Any] | None = None,
    application: dict[str, Any] | None = None,
) -> Decision:
    """Like ``evaluate``, but raise Forbidden on denial."""
    decision = evaluate(actor, operation, task, application)
    if not decision.allowed:
        raise Forbidden(
            f"Not allowed to {operation.replace('_', ' ')}",
            {"operation": operation},
        )
    return decision
