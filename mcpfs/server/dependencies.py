"""FastAPI dependency injection for the session manager."""

from __future__ import annotations

from fastapi import Request

from mcpfs.core.session_manager import SessionManager


def get_session_manager(request: Request) -> SessionManager:
    """Return the SessionManager owned by the running application."""
    return request.app.state.session_manager
