"""
POST/DELETE /mcp: the session-oriented JSON-RPC endpoint.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from mcpfs.core.session_manager import SessionManager
from mcpfs.server.dependencies import get_session_manager

logger = logging.getLogger(__name__)

SESSION_HEADER = "mcp-session-id"

router = APIRouter(tags=["mcp"])


@router.post("/mcp")
async def mcp_post(
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
) -> Response:
    """
    Handle a JSON-RPC message or batch.

    A missing or unknown `mcp-session-id` header starts a new session; its id
    is returned in the same response header once initialization succeeds.
    """
    session_id = request.headers.get(SESSION_HEADER)
    raw = await request.body()

    result = await manager.handle(session_id, raw)

    headers = {SESSION_HEADER: result.session_id} if result.session_id else {}
    logger.info(
        "request handled: sid=%s status=%d", result.session_id or "none", result.status_code
    )
    if result.body is None:
        return Response(status_code=result.status_code, headers=headers)
    return JSONResponse(result.body, status_code=result.status_code, headers=headers)


@router.delete("/mcp")
async def mcp_delete(
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
) -> Response:
    """Terminate the session named by the `mcp-session-id` header."""
    session_id = request.headers.get(SESSION_HEADER)
    if not session_id:
        return JSONResponse({"detail": f"Missing {SESSION_HEADER} header"}, status_code=400)
    if manager.close_session(session_id):
        return Response(status_code=204)
    return JSONResponse({"detail": "Session not found"}, status_code=404)


@router.get("/mcp")
async def mcp_get() -> Response:
    """Server-initiated streams are not offered."""
    return Response(status_code=405, headers={"Allow": "POST, DELETE"})
