"""
HTTP client for the toolhost's JSON-RPC endpoint.

One ToolhostClient holds one toolhost session for its lifetime: the session
id returned by `initialize` is sent with every later request.
"""

from __future__ import annotations

import itertools
import json
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from mcpfs import __version__
from mcpfs.core.registry import ToolDescriptor
from mcpfs.core.transport import PROTOCOL_VERSION
from mcpfs.models.tool_result import ToolResult

logger = logging.getLogger(__name__)

SESSION_HEADER = "mcp-session-id"
DEFAULT_READ_TIMEOUT = 120.0


class ToolhostError(Exception):
    """Protocol or transport failure talking to the toolhost."""

    def __init__(self, message: str, code: int | None = None):
        self.code = code
        super().__init__(message)


class ToolhostClient:
    """
    Async client for a session-oriented toolhost.

    Usage:
        async with ToolhostClient("http://localhost:4001/mcp") as host:
            tools = await host.list_tools()
            result = await host.call_tool("readFile", {"path": "notes.txt"})
    """

    def __init__(
        self,
        url: str,
        client_name: str = "mcpfs-driver",
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.client_name = client_name
        self.session_id: str | None = None
        self.server_info: dict[str, Any] = {}
        self._ids = itertools.count(1)
        read_timeout = timeout if timeout is not None else DEFAULT_READ_TIMEOUT
        self._client = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(10.0, read=read_timeout),
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json, text/event-stream",
            },
        )

    async def __aenter__(self) -> "ToolhostClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    @property
    def connected(self) -> bool:
        return self.session_id is not None

    async def connect(self) -> dict[str, Any]:
        """
        Initialize a session and send the `initialized` notification.

        Returns:
            The server's `initialize` result
        """
        result = await self._request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": self.client_name, "version": __version__},
            },
        )
        self.server_info = result.get("serverInfo", {})
        await self._notify("notifications/initialized")
        logger.info(
            "connected to %s (%s) session=%s",
            self.server_info.get("name", "unknown"),
            self.url,
            self.session_id,
        )
        return result

    async def list_tools(self) -> list[ToolDescriptor]:
        result = await self._request("tools/list", {})
        try:
            return [ToolDescriptor.model_validate(t) for t in result.get("tools") or []]
        except ValidationError as e:
            raise ToolhostError(f"Invalid tools/list result: {e}") from e

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> ToolResult:
        """Invoke a tool. Tool-level failures come back as error-flagged results."""
        result = await self._request("tools/call", {"name": name, "arguments": arguments or {}})
        try:
            return ToolResult.from_wire(result)
        except ValidationError as e:
            raise ToolhostError(f"Invalid tools/call result from {name}: {e}") from e

    async def close(self) -> None:
        """Terminate the session (best effort) and release the connection pool."""
        if self.session_id is not None:
            try:
                await self._client.delete(self.url, headers={SESSION_HEADER: self.session_id})
            except httpx.RequestError as e:
                logger.debug("session close failed: %s", e)
            self.session_id = None
        await self._client.aclose()

    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        return {SESSION_HEADER: self.session_id} if self.session_id else {}

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        try:
            response = await self._client.post(self.url, json=payload, headers=self._headers())
        except httpx.RequestError as e:
            raise ToolhostError(f"Could not reach toolhost at {self.url}: {e}") from e

        sid = response.headers.get(SESSION_HEADER)
        if sid:
            self.session_id = sid
        return response

    async def _notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        payload: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            payload["params"] = params
        response = await self._post(payload)
        if response.status_code >= 400:
            raise ToolhostError(f"{method} rejected: HTTP {response.status_code}")

    async def _request(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        request_id = next(self._ids)
        response = await self._post(
            {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}
        )
        message = self._decode(response)

        error = message.get("error")
        if error:
            raise ToolhostError(
                f"{method} failed: {error.get('message', 'unknown error')}",
                code=error.get("code"),
            )
        if response.status_code >= 400:
            raise ToolhostError(f"{method} failed: HTTP {response.status_code}")
        result = message.get("result")
        if not isinstance(result, dict):
            raise ToolhostError(f"{method} returned no result")
        return result

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        content_type = response.headers.get("content-type", "")
        try:
            if content_type.startswith("text/event-stream"):
                return _last_sse_message(response.text)
            data = response.json()
        except ValueError as e:
            raise ToolhostError(
                f"Invalid response from toolhost (HTTP {response.status_code}): {e}"
            ) from e
        if isinstance(data, list):
            data = data[0] if data else {}
        if not isinstance(data, dict):
            raise ToolhostError("Invalid response from toolhost: expected an object")
        return data


def _last_sse_message(text: str) -> dict[str, Any]:
    """Return the last JSON-RPC message carried in an SSE body."""
    message: dict[str, Any] | None = None
    data_lines: list[str] = []
    for line in text.splitlines() + [""]:
        if line.startswith("data:"):
            data_lines.append(line[5:].lstrip())
        elif not line and data_lines:
            message = json.loads("\n".join(data_lines))
            data_lines = []
    if message is None:
        raise ValueError("no data events in stream")
    return message
