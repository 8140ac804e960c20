"""Health check endpoint."""

from fastapi import APIRouter, Depends

from mcpfs.core.session_manager import SessionManager
from mcpfs.server.dependencies import get_session_manager
from mcpfs.server.models import HealthInfo

router = APIRouter()


@router.get("/health")
async def health(manager: SessionManager = Depends(get_session_manager)) -> HealthInfo:
    """Health check."""
    return HealthInfo(status="ok", service="mcpfs", sessions=len(manager))
