"""
Per-session JSON-RPC transport.

A SessionTransport owns one session's protocol state and its tool registry
binding. It decodes raw request bodies, routes methods (`initialize`,
`tools/list`, `tools/call`, ...) and encodes responses. Protocol problems
become JSON-RPC errors; tool problems stay inside the `tools/call` result.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from mcpfs.core.registry import ToolRegistry
from mcpfs.models.jsonrpc import (
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    JSONRPCRequest,
    JSONRPCResponse,
    error_response,
    success_response,
)

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2025-03-26"


class TransportFault(Exception):
    """A protocol-level failure reported as a JSON-RPC error, not a tool result."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{message} ({code})")


class TransportClosedError(Exception):
    """Raised when a request reaches a transport that was closed or failed."""


@dataclass
class TransportResponse:
    """HTTP-level outcome of one request body."""

    status_code: int
    body: dict[str, Any] | list[dict[str, Any]] | None = None

    @property
    def ok(self) -> bool:
        return self.status_code < 400


MethodHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class SessionTransport:
    """JSON-RPC endpoint state for one toolhost session."""

    def __init__(
        self,
        session_id: str,
        registry: ToolRegistry,
        server_name: str = "fs-toolhost",
        server_version: str = "1.0.0",
    ):
        self.session_id = session_id
        self.registry = registry
        self.server_name = server_name
        self.server_version = server_version
        self.initialized = False
        self.closed = False
        self.client_info: dict[str, Any] | None = None
        self._methods: dict[str, MethodHandler] = {
            "initialize": self._initialize,
            "notifications/initialized": self._initialized_notification,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }

    def close(self) -> None:
        self.closed = True

    async def handle(self, raw: bytes | str) -> TransportResponse:
        """
        Handle one HTTP request body (a single message or a batch).

        The transport counts as initialized once it has served a request
        without an envelope-level error.
        """
        if self.closed:
            raise TransportClosedError(f"Session {self.session_id} is closed")

        try:
            payload = json.loads(raw)
        except (ValueError, UnicodeDecodeError):
            logger.warning("session %s: unparseable request body", self.session_id)
            return TransportResponse(400, error_response(None, PARSE_ERROR, "Parse error").to_wire())

        if isinstance(payload, list):
            response = await self._handle_batch(payload)
        else:
            response = await self._handle_single(payload)

        if response.ok and not self.initialized:
            self.initialized = True
            logger.debug("session %s: transport initialized", self.session_id)
        return response

    async def _handle_batch(self, payload: list[Any]) -> TransportResponse:
        if not payload:
            return TransportResponse(
                400, error_response(None, INVALID_REQUEST, "Empty batch").to_wire()
            )
        replies: list[dict[str, Any]] = []
        for item in payload:
            reply = await self._handle_message(item)
            if reply is not None:
                replies.append(reply.to_wire())
        if not replies:
            return TransportResponse(202)
        return TransportResponse(200, replies)

    async def _handle_single(self, payload: Any) -> TransportResponse:
        reply = await self._handle_message(payload)
        if reply is None:
            return TransportResponse(202)
        if reply.error is not None and reply.error.code in (PARSE_ERROR, INVALID_REQUEST):
            return TransportResponse(400, reply.to_wire())
        return TransportResponse(200, reply.to_wire())

    async def _handle_message(self, item: Any) -> JSONRPCResponse | None:
        try:
            request = JSONRPCRequest.model_validate(item)
        except ValidationError:
            request_id = item.get("id") if isinstance(item, dict) else None
            if not isinstance(request_id, (str, int)):
                request_id = None
            return error_response(request_id, INVALID_REQUEST, "Invalid Request")

        logger.info(
            "session %s: rpc.method=%s id=%s", self.session_id, request.method, request.id
        )

        handler = self._methods.get(request.method)
        if handler is None:
            if request.is_notification:
                return None
            return error_response(request.id, METHOD_NOT_FOUND, f"Method not found: {request.method}")

        params = request.params if request.params is not None else {}
        try:
            if not isinstance(params, dict):
                raise TransportFault(INVALID_PARAMS, "params must be an object")
            result = await handler(params)
        except TransportFault as e:
            if request.is_notification:
                return None
            return error_response(request.id, e.code, e.message)

        if request.is_notification:
            return None
        return success_response(request.id, result)

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------

    async def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        client_info = params.get("clientInfo")
        if isinstance(client_info, dict):
            self.client_info = client_info
        requested = params.get("protocolVersion")
        logger.info(
            "session %s: initialize client=%s protocol=%s",
            self.session_id,
            (self.client_info or {}).get("name", "unknown"),
            requested or "n/a",
        )
        return {
            "protocolVersion": requested if isinstance(requested, str) else PROTOCOL_VERSION,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": self.server_name, "version": self.server_version},
        }

    async def _initialized_notification(self, params: dict[str, Any]) -> None:
        return None

    async def _ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}

    async def _list_tools(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"tools": [d.to_wire() for d in self.registry.describe()]}

    async def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise TransportFault(INVALID_PARAMS, "tools/call requires a string 'name'")

        arguments = params.get("arguments")
        if isinstance(arguments, str):
            # Some clients forward the model's JSON-encoded argument string as-is
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except ValueError:
                pass

        result = await self.registry.dispatch(name, arguments)
        logger.info(
            "session %s: tools/call name=%s isError=%s duration=%sms",
            self.session_id, name, result.is_error, result.duration_ms,
        )
        return result.to_wire()
