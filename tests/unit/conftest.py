"""Unit test fixtures — auto-clear caches between tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from campus_tasks_service.config import clear_settings_cache
from campus_tasks_service.core.state import reset_app_state
from tests.helpers import build_graph

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from tests.helpers import ServiceGraph


@pytest.fixture(autouse=True)
def _clear_caches():
    """Clear settings cache and app state between tests."""
    clear_settings_cache()
    reset_app_state()
    yield
    clear_settings_cache()
    reset_app_state()


@pytest.fixture
def graph(tmp_path: Path) -> Iterator[ServiceGraph]:
    """All stores and services against a temporary database."""
    services = build_graph(tmp_path)
    yield services
    services.close()
