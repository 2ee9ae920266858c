"""Async HTTP client for the identity provider."""

from __future__ import annotations

from typing import Any

import httpx

from campus_tasks_service.core.exceptions import DependencyFailure
from campus_tasks_service.logging import get_logger


class IdentityClient:
    """
    Client for session resolution against the identity provider.

    Posts the caller's bearer token to the provider and returns its verdict.
    The service never inspects session tokens itself.
    """

    def __init__(
        self,
        base_url: str,
        resolve_session_path: str,
        timeout_seconds: int,
    ) -> None:
        self._base_url = base_url
        self._resolve_session_path = resolve_session_path
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
        )

    async def resolve_session(self, token: str) -> dict[str, Any]:
        """
        Resolve a session token via the identity provider.

        Returns:
            dict with keys: valid (bool), user_id (str), is_admin (bool)

        Raises:
            DependencyFailure: IDENTITY_SERVICE_UNAVAILABLE (502) on connection,
                timeout, or unexpected response errors
        """
        logger = get_logger(__name__)

        try:
            response = await self._client.post(
                self._resolve_session_path,
                json={"token": token},
            )
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            logger.warning(
                "Identity service connection failed",
                extra={"error": str(exc), "base_url": self._base_url},
            )
            raise DependencyFailure(
                "Cannot connect to Identity service",
                error="IDENTITY_SERVICE_UNAVAILABLE",
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Identity service HTTP error",
                extra={"error": str(exc), "base_url": self._base_url},
            )
            raise DependencyFailure(
                "Identity service request failed",
                error="IDENTITY_SERVICE_UNAVAILABLE",
            ) from exc

        if response.status_code != 200:
            logger.warning(
                "Identity service unexpected status",
                extra={"status_code": response.status_code, "base_url": self._base_url},
            )
            raise DependencyFailure(
                "Identity service returned unexpected status",
                error="IDENTITY_SERVICE_UNAVAILABLE",
            )

        try:
            result = response.json()
        except ValueError as exc:
            raise DependencyFailure(
                "Identity service returned invalid JSON",
                error="IDENTITY_SERVICE_UNAVAILABLE",
            ) from exc

        if not isinstance(result, dict):
            raise DependencyFailure(
                "Identity service returned an unexpected body",
                error="IDENTITY_SERVICE_UNAVAILABLE",
            )
        return result

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
