"""Read-only view of the live session table."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from mcpfs.core.session_manager import SessionManager
from mcpfs.server.dependencies import get_session_manager
from mcpfs.server.models import SessionInfo

router = APIRouter(tags=["sessions"])


@router.get("/sessions")
async def list_sessions(manager: SessionManager = Depends(get_session_manager)) -> list[SessionInfo]:
    """List live toolhost sessions."""
    results = []
    for session_id in manager.session_ids():
        session = manager.get(session_id)
        if session is None:
            continue
        results.append(
            SessionInfo(
                session_id=session_id,
                client=session.meta.client_name,
                created_at=session.meta.created_at.isoformat(),
                last_active_at=session.meta.last_active_at.isoformat(),
                request_count=session.meta.request_count,
            )
        )
    return results
