"""Identifier and timestamp helpers shared by the services."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime


def now_iso() -> str:
    """Return current UTC time as ISO 8601 string with Z suffix."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def new_id(prefix: str) -> str:
    """Return a prefixed UUID4 identifier such as ``t-<uuid4>``."""
    return f"{prefix}-{uuid.uuid4()}"
