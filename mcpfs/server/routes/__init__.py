"""Route registration."""

from fastapi import FastAPI


def register_routes(app: FastAPI) -> None:
    """Register all API routes."""
    from mcpfs.server.routes.health import router as health_router
    from mcpfs.server.routes.mcp import router as mcp_router
    from mcpfs.server.routes.sessions import router as sessions_router

    app.include_router(health_router)
    app.include_router(mcp_router)
    app.include_router(sessions_router)
