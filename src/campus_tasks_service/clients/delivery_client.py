"""Async HTTP client for the notification delivery channel."""

from __future__ import annotations

from typing import Any

import httpx

from campus_tasks_service.core.exceptions import DependencyFailure


class DeliveryClient:
    """
    Hands persisted notifications to the external delivery channel.

    Delivery is best effort. Failures surface as DependencyFailure and the
    dispatcher decides what to do with them.
    """

    def __init__(
        self,
        base_url: str,
        delivery_path: str,
        timeout_seconds: int,
    ) -> None:
        self._base_url = base_url
        self._delivery_path = delivery_path
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
        )

    async def deliver(self, notification: dict[str, Any]) -> None:
        """
        POST one notification to the delivery channel.

        Raises:
            DependencyFailure: DELIVERY_UNAVAILABLE (502) on transport errors
                or a non-2xx response
        """
        try:
            response = await self._client.post(self._delivery_path, json=notification)
        except httpx.HTTPError as exc:
            raise DependencyFailure(
                "Cannot reach notification delivery channel",
                {"base_url": self._base_url},
                error="DELIVERY_UNAVAILABLE",
            ) from exc

        if response.status_code >= 300:
            raise DependencyFailure(
                "Notification delivery channel rejected the notification",
                {"status_code": response.status_code},
                error="DELIVERY_UNAVAILABLE",
            )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
