"""
Self-description tools: what this server is and which tools it offers.
"""

from __future__ import annotations

import json
from typing import Any

from mcpfs.core.registry import ToolRegistry
from mcpfs.models.tool_result import ToolResult

SERVER_DESCRIPTION = """MCP Filesystem Toolhost Server

This server provides file system operations such as:
- createFile
- updateFile
- readFile
- appendToFile
- deleteFile
- listFiles

How to use:
- Send JSON-RPC 2.0 messages to this server via the {endpoint} endpoint.
- Call a tool with the 'tools/call' method and {{"name": ..., "arguments": {{...}}}}.
- Each tool expects specific parameters (path, content, etc.).
- Use the tool 'describeTools' to get a list of all available tools with input schemas.

Example call:
{{
  "jsonrpc": "2.0",
  "id": "1",
  "method": "tools/call",
  "params": {{"name": "readFile", "arguments": {{"path": "./example.txt"}}}}
}}

This server is session-aware via the 'mcp-session-id' header."""


def register_describe_tools(registry: ToolRegistry, endpoint: str = "/mcp") -> None:
    """Register describeServer and describeTools on `registry`."""
    text = SERVER_DESCRIPTION.format(endpoint=endpoint)

    async def describe_server(args: dict[str, Any]) -> ToolResult:
        return ToolResult.success(text)

    async def describe_tools(args: dict[str, Any]) -> ToolResult:
        listing = [d.to_wire() for d in registry.describe()]
        return ToolResult.success(json.dumps(listing, indent=2))

    registry.register(
        "describeServer",
        "Returns general information about this MCP server, its purpose, and how to interact with it.",
        None,
        describe_server,
    )
    registry.register(
        "describeTools",
        "Returns every tool offered by this server together with its input schema.",
        None,
        describe_tools,
    )
