"""YAML settings loading helpers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import yaml
from pydantic import BaseModel

if TYPE_CHECKING:
    from collections.abc import Callable

REDACTION_MARKER = "***REDACTED***"

_SENSITIVE_KEY_PARTS = ("secret", "password", "token", "private_key", "api_key")

SettingsT = TypeVar("SettingsT", bound=BaseModel)


def get_config_path(env_var_name: str, default_filename: str) -> Path:
    """Resolve the config file from an env var, falling back to the working directory."""
    configured = os.environ.get(env_var_name)
    if configured:
        return Path(configured)
    return Path.cwd() / default_filename


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Read a YAML mapping from disk."""
    if not path.exists():
        msg = f"Configuration file not found: {path}"
        raise FileNotFoundError(msg)

    with path.open(encoding="utf-8") as handle:
        data = yaml.safe_load(handle)

    if not isinstance(data, dict):
        msg = f"Configuration file must contain a mapping: {path}"
        raise ValueError(msg)
    return data


def create_settings_loader(
    settings_cls: type[SettingsT],
    config_path_fn: Callable[[], Path],
) -> tuple[Callable[[], SettingsT], Callable[[], None]]:
    """
    Build a cached ``get_settings`` / ``clear_settings_cache`` pair.

    The YAML file is read and validated once, then reused until the cache
    is cleared.
    """
    cache: dict[str, SettingsT] = {}

    def get_settings() -> SettingsT:
        settings = cache.get("settings")
        if settings is None:
            raw = load_yaml_config(config_path_fn())
            settings = settings_cls.model_validate(raw)
            cache["settings"] = settings
        return settings

    def clear_settings_cache() -> None:
        cache.clear()

    return get_settings, clear_settings_cache


def _redact(value: Any, marker: str) -> Any:
    if isinstance(value, dict):
        return {
            key: marker
            if any(part in key.lower() for part in _SENSITIVE_KEY_PARTS) and item is not None
            else _redact(item, marker)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_redact(item, marker) for item in value]
    return value


def get_safe_model_config(settings: BaseModel, marker: str) -> dict[str, Any]:
    """Dump settings with secret-looking values replaced by ``marker``."""
    redacted: dict[str, Any] = _redact(settings.model_dump(), marker)
    return redacted
