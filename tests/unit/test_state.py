"""Unit tests for AppState lifecycle helpers."""

from __future__ import annotations

import time
from unittest.mock import MagicMock

import pytest

from campus_tasks_service.core.state import AppState, get_app_state, init_app_state, reset_app_state


@pytest.mark.unit
def test_app_state_init() -> None:
    """AppState initializes with default dependency fields."""
    state = AppState()
    assert state.task_store is None
    assert state.identity_client is None
    assert state.delivery_client is None
    assert state.dispatcher is None
    assert state.lifecycle is None
    assert state.message_thread is None


@pytest.mark.unit
def test_app_state_uptime() -> None:
    """uptime_seconds increases after initialization."""
    state = AppState()
    time.sleep(0.001)
    assert state.uptime_seconds > 0


@pytest.mark.unit
def test_app_state_started_at() -> None:
    """started_at returns a UTC ISO timestamp."""
    state = AppState()
    assert state.started_at.endswith("Z")
    assert "T" in state.started_at


@pytest.mark.unit
def test_get_app_state_uninitialized() -> None:
    """get_app_state raises RuntimeError before initialization."""
    reset_app_state()
    with pytest.raises(RuntimeError):
        _state = get_app_state()


@pytest.mark.unit
def test_init_app_state() -> None:
    """init_app_state creates and stores an AppState instance."""
    state = init_app_state()
    assert isinstance(state, AppState)
    assert get_app_state() is state
    reset_app_state()


@pytest.mark.unit
def test_swapping_identity_client_updates_resolver() -> None:
    state = AppState()
    resolver = MagicMock()
    state.session_resolver = resolver

    replacement = MagicMock()
    state.identity_client = replacement

    resolver.set_identity_client.assert_called_with(replacement)


@pytest.mark.unit
def test_swapping_delivery_client_updates_dispatcher() -> None:
    state = AppState()
    dispatcher = MagicMock()
    state.dispatcher = dispatcher

    state.delivery_client = None

    dispatcher.set_delivery_client.assert_called_once_with(None)
