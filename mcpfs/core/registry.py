"""
Tool registry: the fixed vocabulary of operations a toolhost session exposes.

A registry is filled at construction time and frozen before any request is
served. Dispatch never raises for tool-level problems; unknown tools, invalid
arguments, handler failures and timeouts all come back as error-flagged
ToolResults so the caller can feed them to the model.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field

from mcpfs.core.schema import InputSchema, InvalidArgumentsError, validate_arguments
from mcpfs.models.tool_result import (
    INVALID_ARGUMENTS,
    IO_ERROR,
    TIMEOUT,
    UNKNOWN_TOOL,
    ToolResult,
    timed_execution,
)

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[ToolResult]]

DEFAULT_TOOL_TIMEOUT = 30.0


class ToolRegistrationError(Exception):
    """Raised at startup when the registry is misconfigured."""


class ToolError(Exception):
    """A tool-level failure raised by a handler and reported as data."""

    def __init__(self, message: str, error_type: str = IO_ERROR):
        self.error_type = error_type
        super().__init__(message)


class ToolDescriptor(BaseModel):
    """Advertised shape of one tool."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(alias="inputSchema")

    model_config = {"populate_by_name": True}

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


@dataclass(frozen=True)
class RegisteredTool:
    name: str
    description: str
    schema: InputSchema
    handler: ToolHandler


class ToolRegistry:
    """Ordered mapping of tool name to description, input schema and handler."""

    def __init__(self, tool_timeout: float | None = DEFAULT_TOOL_TIMEOUT):
        self._tools: dict[str, RegisteredTool] = {}
        self._frozen = False
        self._descriptors: list[ToolDescriptor] | None = None
        self.tool_timeout = tool_timeout

    def register(
        self,
        name: str,
        description: str,
        schema: InputSchema | None,
        handler: ToolHandler,
    ) -> None:
        """
        Register a tool.

        Raises:
            ToolRegistrationError: If the name is taken or the registry is frozen
        """
        if self._frozen:
            raise ToolRegistrationError(
                f"Cannot register '{name}': registry is frozen"
            )
        if not name:
            raise ToolRegistrationError("Tool name must be a non-empty string")
        if name in self._tools:
            raise ToolRegistrationError(f"Tool '{name}' is already registered")
        self._tools[name] = RegisteredTool(name, description, schema or InputSchema(), handler)

    def freeze(self) -> "ToolRegistry":
        """Disallow further registration and cache the descriptors."""
        self._frozen = True
        self._descriptors = self._build_descriptors()
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def names(self) -> list[str]:
        """Registered tool names in registration order."""
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def _build_descriptors(self) -> list[ToolDescriptor]:
        return [
            ToolDescriptor(
                name=tool.name,
                description=tool.description,
                input_schema=tool.schema.to_json_schema(),
            )
            for tool in self._tools.values()
        ]

    def describe(self) -> list[ToolDescriptor]:
        """Descriptors for every registered tool, in registration order."""
        if self._descriptors is not None:
            return list(self._descriptors)
        return self._build_descriptors()

    async def dispatch(self, name: str, arguments: Any) -> ToolResult:
        """
        Validate arguments and invoke the named tool's handler once.

        The handler's result is returned unmodified. Every failure mode is
        reported as an error-flagged ToolResult.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("[tool] %s unknown-tool", name)
            return ToolResult.fail(
                f"Unknown tool: '{name}'. Available tools: {', '.join(self._tools)}",
                error_type=UNKNOWN_TOOL,
                tool_name=name,
            )

        try:
            args = validate_arguments(tool.schema, arguments)
        except InvalidArgumentsError as e:
            logger.warning("[tool] %s invalid-args fields=%s", name, e.fields)
            return ToolResult.fail(
                f"Invalid arguments for '{name}': {e}",
                error_type=INVALID_ARGUMENTS,
                tool_name=name,
            )

        with timed_execution() as timing:
            try:
                result = await asyncio.wait_for(tool.handler(args), timeout=self.tool_timeout)
            except asyncio.TimeoutError:
                logger.error("[tool] %s timeout after %ss", name, self.tool_timeout)
                result = ToolResult.fail(
                    f"Tool '{name}' timed out after {self.tool_timeout} seconds.",
                    error_type=TIMEOUT,
                )
            except InvalidArgumentsError as e:
                logger.warning("[tool] %s invalid-args %s", name, e)
                result = ToolResult.fail(str(e), error_type=INVALID_ARGUMENTS)
            except ToolError as e:
                result = ToolResult.fail(str(e), error_type=e.error_type)
            except Exception as e:
                logger.exception("[tool] %s unexpected error", name)
                result = ToolResult.fail(
                    f"Unexpected error in '{name}': {e}", error_type=IO_ERROR
                )

        if result.tool_name is None:
            result.tool_name = name
        if result.duration_ms is None:
            result.duration_ms = timing.get("duration_ms")
        return result
