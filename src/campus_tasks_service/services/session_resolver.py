"""Bearer token to actor resolution."""

from __future__ import annotations

from typing import TYPE_CHECKING

from campus_tasks_service.core.exceptions import ServiceError
from campus_tasks_service.services.authorization import Actor

if TYPE_CHECKING:
    from campus_tasks_service.clients.identity_client import IdentityClient


def _unauthenticated(message: str) -> ServiceError:
    return ServiceError("UNAUTHENTICATED", message, 401, {})


def extract_bearer_token(authorization: str | None) -> str:
    """
    Pull the token out of an ``Authorization: Bearer <token>`` header.

    Raises:
        ServiceError: UNAUTHENTICATED (401) if the header is missing or malformed
    """
    if authorization is None or authorization.strip() == "":
        raise _unauthenticated("Missing Authorization header")

    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or token.strip() == "":
        raise _unauthenticated("Authorization header must be 'Bearer <token>'")
    return token.strip()


class SessionResolver:
    """Turns an Authorization header into an Actor via the identity provider."""

    def __init__(self, identity_client: IdentityClient) -> None:
        self._identity_client = identity_client

    def set_identity_client(self, identity_client: IdentityClient) -> None:
        """Replace the identity client."""
        self._identity_client = identity_client

    async def resolve(self, authorization: str | None) -> Actor:
        """
        Resolve the calling actor.

        Error precedence:
        1. UNAUTHENTICATED — missing or malformed header
        2. IDENTITY_SERVICE_UNAVAILABLE — identity provider unreachable
        3. UNAUTHENTICATED — session not valid
        """
        token = extract_bearer_token(authorization)
        result = await self._identity_client.resolve_session(token)

        user_id = result.get("user_id")
        if not result.get("valid", False) or not isinstance(user_id, str) or user_id == "":
            raise _unauthenticated("Session is not valid")

        return Actor(user_id=user_id, is_admin=result.get("is_admin") is True)
