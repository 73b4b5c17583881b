"""Pydantic models for kb-sync client responses not covered by the contracts."""

from typing import Optional

from pydantic import BaseModel, Field


class HealthStatus(BaseModel):
    """Health check response."""

    status: str = Field(description="ready, waiting_for_sync or inactive")
    uptime_seconds: Optional[float] = Field(default=None, description="Daemon uptime")
    session_active: bool = Field(default=False)
    base_count: int = Field(default=0, description="Bases held by the replica")
    last_synced_at: Optional[str] = Field(default=None, description="ISO-8601 time of last sync")

    @property
    def is_ready(self) -> bool:
        return self.status == "ready"
