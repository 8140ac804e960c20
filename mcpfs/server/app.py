"""FastAPI application factory."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from mcpfs import __version__
from mcpfs.core.registry import ToolRegistry
from mcpfs.core.session_manager import SessionManager
from mcpfs.models.config import ToolhostConfig
from mcpfs.server.routes import register_routes
from mcpfs.server.routes.mcp import SESSION_HEADER

logger = logging.getLogger(__name__)


def create_app(
    config: ToolhostConfig | None = None,
    registry_factory: Callable[[], ToolRegistry] | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """
    Create and configure the toolhost application.

    Args:
        config: Toolhost settings (default: ToolhostConfig())
        registry_factory: Builds one fresh registry per session
            (default: every bundled tool)
        cors_origins: Allowed CORS origins (default: all)
    """
    config = config or ToolhostConfig()
    if registry_factory is None:
        from mcpfs.default_tools import build_registry

        def registry_factory() -> ToolRegistry:
            return build_registry(config)

    # Build one registry up front so misconfiguration fails at startup
    probe = registry_factory()
    logger.info(
        "MCP server init: name=%s version=%s default_dir=%s tools=%s",
        config.server_name,
        config.server_version,
        config.resolved_default_dir(),
        ", ".join(probe.names()),
    )

    manager = SessionManager(registry_factory, config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await manager.start()
        yield
        await manager.shutdown()

    app = FastAPI(
        title="mcpfs",
        description="Filesystem toolhost speaking JSON-RPC over a session-aware HTTP endpoint",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.session_manager = manager
    app.state.config = config

    # CORS
    origins = cors_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        t0 = time.monotonic()
        sid = request.headers.get(SESSION_HEADER, "none")
        logger.info("http request: %s %s sid=%s", request.method, request.url.path, sid)
        response = await call_next(request)
        logger.debug(
            "http response: %s %s status=%d duration=%dms",
            request.method,
            request.url.path,
            response.status_code,
            int((time.monotonic() - t0) * 1000),
        )
        return response

    register_routes(app)
    return app
