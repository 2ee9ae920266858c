"""In-memory TTL cache for task detail and profile reads."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from campus_tasks_service.logging import get_logger


@dataclass
class CacheEntry:
    """Cached value with its expiry."""

    data: dict[str, Any]
    cached_at: datetime
    ttl_seconds: int

    def is_expired(self) -> bool:
        """Check if cache entry has expired."""
        return datetime.now(UTC) >= self.cached_at + timedelta(seconds=self.ttl_seconds)


class TaskCache:
    """
    Bounded TTL cache consulted only by read paths.

    Cache key format: "task:{task_id}" and "profile:{user_id}". Write paths
    call ``invalidate_task`` / ``invalidate_profile`` after they commit.
    When full, the oldest entry is evicted first.
    """

    def __init__(self, ttl_seconds: int, max_entries: int) -> None:
        self._cache: dict[str, CacheEntry] = {}
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        self._logger = get_logger(__name__)

    def _get(self, cache_key: str) -> dict[str, Any] | None:
        entry = self._cache.get(cache_key)
        if entry is None:
            return None
        if entry.is_expired():
            del self._cache[cache_key]
            self._logger.debug("Cache entry expired", extra={"cache_key": cache_key})
            return None
        return copy.deepcopy(entry.data)

    def _set(self, cache_key: str, data: dict[str, Any]) -> None:
        self._cache.pop(cache_key, None)
        while len(self._cache) >= self._max_entries:
            oldest = next(iter(self._cache))
            del self._cache[oldest]
        self._cache[cache_key] = CacheEntry(
            data=copy.deepcopy(data),
            cached_at=datetime.now(UTC),
            ttl_seconds=self._ttl_seconds,
        )

    def get_task(self, task_id: str) -> dict[str, Any] | None:
        """Cached task detail, or None on miss or expiry."""
        return self._get(f"task:{task_id}")

    def set_task(self, task_id: str, task: dict[str, Any]) -> None:
        self._set(f"task:{task_id}", task)

    def invalidate_task(self, task_id: str) -> None:
        self._cache.pop(f"task:{task_id}", None)

    def get_profile(self, user_id: str) -> dict[str, Any] | None:
        """Cached profile, or None on miss or expiry."""
        return self._get(f"profile:{user_id}")

    def set_profile(self, user_id: str, profile: dict[str, Any]) -> None:
        self._set(f"profile:{user_id}", profile)

    def invalidate_profile(self, user_id: str) -> None:
        self._cache.pop(f"profile:{user_id}", None)

    def clear(self) -> None:
        """Clear all cache entries."""
        count = len(self._cache)
        self._cache.clear()
        self._logger.info("Cache cleared", extra={"entries_cleared": count})

    def __len__(self) -> int:
        return len(self._cache)
