"""
Configuration management for the campus tasks service.

Loads configuration from YAML with ZERO defaults for required sections.
Every value must be explicitly specified or startup fails.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from campus_tasks_service.core.config_loader import (
    REDACTION_MARKER,
    create_settings_loader,
    get_safe_model_config,
)
from campus_tasks_service.core.config_loader import (
    get_config_path as resolve_config_path,
)

if TYPE_CHECKING:
    from pathlib import Path


class ServiceConfig(BaseModel):
    """Service identity configuration."""

    model_config = ConfigDict(extra="forbid")
    name: str
    version: str


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    model_config = ConfigDict(extra="forbid")
    host: str
    port: int
    log_level: str


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")
    level: str
    directory: str


class DatabaseConfig(BaseModel):
    """Database configuration."""

    model_config = ConfigDict(extra="forbid")
    path: str


class IdentityConfig(BaseModel):
    """Identity provider connection configuration."""

    model_config = ConfigDict(extra="forbid")
    base_url: str
    resolve_session_path: str
    timeout_seconds: int


class NotificationsConfig(BaseModel):
    """Notification delivery channel configuration."""

    model_config = ConfigDict(extra="forbid")
    delivery_base_url: str | None
    delivery_path: str
    timeout_seconds: int


class MessagingConfig(BaseModel):
    """Task conversation policy."""

    model_config = ConfigDict(extra="forbid")
    allow_after_completion: bool


class CacheConfig(BaseModel):
    """Read cache sizing."""

    model_config = ConfigDict(extra="forbid")
    ttl_seconds: int = Field(gt=0)
    max_entries: int = Field(gt=0)


class RequestConfig(BaseModel):
    """Request handling configuration."""

    model_config = ConfigDict(extra="forbid")
    max_body_size: int


class Settings(BaseModel):
    """
    Root configuration container.

    All fields are REQUIRED. No defaults exist.
    Missing fields cause immediate startup failure.
    """

    model_config = ConfigDict(extra="forbid")
    service: ServiceConfig
    server: ServerConfig
    logging: LoggingConfig
    database: DatabaseConfig
    identity: IdentityConfig
    notifications: NotificationsConfig
    messaging: MessagingConfig
    cache: CacheConfig
    request: RequestConfig


def get_config_path() -> Path:
    """Determine configuration file path."""
    return resolve_config_path(
        env_var_name="CONFIG_PATH",
        default_filename="config.yaml",
    )


get_settings, clear_settings_cache = create_settings_loader(Settings, get_config_path)  # nosemgrep


def get_safe_config() -> dict[str, Any]:
    """Get configuration with sensitive values redacted."""
    return get_safe_model_config(get_settings(), REDACTION_MARKER)
