"""Configuration management for kb-sync.

Settings are read from environment variables (case-insensitive) and an
optional ``.env`` file. Use ``get_settings()`` to get the cached instance.
"""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_USER = os.getenv("USER", "unknown")

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
VALID_LOG_FORMATS = {"console", "json"}


class Settings(BaseSettings):
    """Process-wide settings shared by the owner and the daemon."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = "INFO"
    log_format: str = "console"

    # Sockets
    daemon_socket_path: str = f"/tmp/kbsync_daemon_{_USER}.sock"
    owner_socket_path: str = f"/tmp/kbsync_owner_{_USER}.sock"
    retrieval_socket_path: str = "/tmp/kbsync_retrieval.sock"
    request_timeout: float = Field(default=10.0, gt=0)

    # Daemon
    metrics_port: int = 9101
    max_connections: int = Field(default=50, ge=1)

    # Search defaults when neither the request nor the base configures a value
    default_document_count: int = Field(default=6, ge=0)
    default_threshold: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        upper = value.upper()
        if upper not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(VALID_LOG_LEVELS)}")
        return upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, value: str) -> str:
        lower = value.lower()
        if lower not in VALID_LOG_FORMATS:
            raise ValueError(f"log_format must be one of {sorted(VALID_LOG_FORMATS)}")
        return lower


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
