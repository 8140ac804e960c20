"""
Session models for toolhost bookkeeping.
"""

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


def new_session_id() -> str:
    """Generate a fresh, opaque session identifier."""
    return str(uuid.uuid4())


class SessionMeta(BaseModel):
    """Metadata for a toolhost session."""

    session_id: str = Field(default_factory=new_session_id)
    created_at: datetime = Field(default_factory=_utcnow)
    last_active_at: datetime = Field(default_factory=_utcnow)
    request_count: int = 0
    client_name: str | None = None  # From the initialize handshake

    def touch(self) -> None:
        """Record activity on this session."""
        self.last_active_at = _utcnow()
        self.request_count += 1

    def idle_seconds(self, now: datetime | None = None) -> float:
        """Seconds elapsed since the last request on this session."""
        return ((now or _utcnow()) - self.last_active_at).total_seconds()
