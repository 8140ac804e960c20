"""
Session manager for the toolhost.

Maps session identifiers to live SessionTransports. Each session owns its own
registry binding and an asyncio.Lock, so requests on one session are handled
one at a time while different sessions proceed concurrently. Sessions end on
explicit close, idle timeout, a fatal transport error, or shutdown.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from mcpfs.core.registry import ToolRegistry
from mcpfs.core.transport import SessionTransport, TransportClosedError
from mcpfs.models.config import ToolhostConfig
from mcpfs.models.jsonrpc import INTERNAL_ERROR, error_response
from mcpfs.models.session import SessionMeta, new_session_id

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """A live binding between one caller and one transport/registry pair."""

    meta: SessionMeta
    transport: SessionTransport
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def session_id(self) -> str:
        return self.meta.session_id

    @property
    def closed(self) -> bool:
        return self.transport.closed


@dataclass
class DispatchResponse:
    """What the HTTP layer sends back for one request."""

    status_code: int
    body: Any = None
    session_id: str | None = None  # Only set once the caller may learn it


class SessionManager:
    """
    Owns the session table.

    Usage::

        manager = SessionManager(build_registry, config)
        await manager.start()           # begins the idle sweep
        resp = await manager.handle(request_session_id, raw_body)
        await manager.shutdown()
    """

    def __init__(
        self,
        registry_factory: Callable[[], ToolRegistry],
        config: ToolhostConfig | None = None,
    ):
        self.config = config or ToolhostConfig()
        self._registry_factory = registry_factory
        self._sessions: dict[str, Session] = {}
        self._sweep_task: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the background idle sweep (no-op when eviction is disabled)."""
        if self.config.idle_timeout_seconds is None or self._sweep_task is not None:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="mcpfs-session-sweep")
        logger.info(
            "Session sweep started: idle_timeout=%ss interval=%ss",
            self.config.idle_timeout_seconds,
            self.config.sweep_interval_seconds,
        )

    async def shutdown(self) -> None:
        """Stop the sweep and close every session."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None
        for session_id in list(self._sessions):
            self._evict(session_id, "shutdown")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.sweep_interval_seconds)
            evicted = self.evict_idle()
            if evicted:
                logger.info("Session sweep evicted %d idle session(s)", len(evicted))

    # ------------------------------------------------------------------
    # Table operations
    # ------------------------------------------------------------------

    def _is_expired(self, session: Session, now: datetime | None = None) -> bool:
        timeout = self.config.idle_timeout_seconds
        if timeout is None or session.lock.locked():
            return False
        return session.meta.idle_seconds(now) > timeout

    def _evict(self, session_id: str, reason: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.transport.close()
        logger.info("session evict: %s reason=%s", session_id, reason)
        return True

    def get(self, session_id: str) -> Session | None:
        """Look up a live session, lazily evicting it if it has gone idle."""
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if session.closed or self._is_expired(session):
            self._evict(session_id, "closed" if session.closed else "idle-timeout")
            return None
        return session

    def _create_session(self) -> Session:
        while True:
            meta = SessionMeta(session_id=new_session_id())
            transport = SessionTransport(
                meta.session_id,
                self._registry_factory(),
                server_name=self.config.server_name,
                server_version=self.config.server_version,
            )
            session = Session(meta=meta, transport=transport)
            # Single insert; a colliding id just draws again.
            if self._sessions.setdefault(meta.session_id, session) is session:
                logger.info("session create: %s", meta.session_id)
                return session

    def resolve_session(self, session_id: str | None) -> tuple[Session, bool]:
        """
        Return the session for `session_id`, creating one if needed.

        Returns:
            (session, created). An absent, unknown or expired id creates a new
            session with a freshly generated id; this is never an error.
        """
        if session_id:
            session = self.get(session_id)
            if session is not None:
                logger.debug("session reuse: %s", session_id)
                return session, False
            logger.info("session unknown: %s, creating a new one", session_id)
        return self._create_session(), True

    def close_session(self, session_id: str) -> bool:
        """Explicitly terminate a session. Returns True if it existed."""
        return self._evict(session_id, "closed-by-client")

    def evict_idle(self, now: datetime | None = None) -> list[str]:
        """Evict every session idle for longer than the configured timeout."""
        expired = [sid for sid, s in self._sessions.items() if self._is_expired(s, now)]
        for sid in expired:
            self._evict(sid, "idle-timeout")
        return expired

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle(self, session_id: str | None, raw: bytes | str) -> DispatchResponse:
        """
        Route one request body to its session's transport.

        The transport's response is passed through unmodified. The session id
        is only returned once the transport reports successful initialization;
        a new session whose first request fails is discarded.
        """
        while True:
            session, created = self.resolve_session(session_id)
            async with session.lock:
                if session.closed:
                    # Evicted while this request waited for the lock
                    continue
                session.meta.touch()
                try:
                    response = await session.transport.handle(raw)
                except TransportClosedError:
                    continue
                except Exception:
                    logger.exception("session %s: fatal transport error", session.session_id)
                    self._evict(session.session_id, "transport-fault")
                    return DispatchResponse(
                        500, error_response(None, INTERNAL_ERROR, "Internal error").to_wire()
                    )
            break

        if session.meta.client_name is None and session.transport.client_info:
            session.meta.client_name = session.transport.client_info.get("name")

        if not session.transport.initialized:
            if created:
                self._evict(session.session_id, "initialization-failed")
            return DispatchResponse(response.status_code, response.body)

        return DispatchResponse(response.status_code, response.body, session.session_id)
