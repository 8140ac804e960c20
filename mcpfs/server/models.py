"""Pydantic models for the API layer."""

from __future__ import annotations

from pydantic import BaseModel


class HealthInfo(BaseModel):
    """GET /health response."""

    status: str
    service: str
    sessions: int


class SessionInfo(BaseModel):
    """Session summary for list responses."""

    session_id: str
    client: str | None
    created_at: str
    last_active_at: str
    request_count: int
