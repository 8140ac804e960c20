"""
The driver's tool-call resolution loop.

ToolCallLoop owns the chat transcript. Each user turn re-queries the model
until it answers without tool calls, executing every requested tool call
through the toolhost session in between.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from contextlib import AbstractContextManager
from typing import Any

from mcpfs.core.client import ToolhostClient, ToolhostError
from mcpfs.core.llm import LLMProvider, ModelEndpointError, ModelTimeoutError
from mcpfs.core.models import ToolCallObj
from mcpfs.core.tools import descriptors_to_openai_tools
from mcpfs.models.config import DEFAULT_SYSTEM_PROMPT
from mcpfs.models.tool_result import INVALID_ARGUMENTS, IO_ERROR, ToolResult

logger = logging.getLogger(__name__)

ToolStartCallback = Callable[[ToolCallObj], None]
ToolResultCallback = Callable[[ToolCallObj, ToolResult], None]


class MaxIterationsError(Exception):
    """Raised when the model-tool loop exceeds max_iterations."""

    def __init__(self, iterations: int):
        self.iterations = iterations
        super().__init__(f"Max tool iterations ({iterations}) exceeded")


class ToolCallCorrelationError(ModelEndpointError):
    """The model's tool calls cannot be matched to their results."""


class ToolCallLoop:
    """
    Conversation state plus the model/tool round trip for one chat session.

    Args:
        provider: Model endpoint
        toolhost: Connected toolhost client; every call uses its session
        system_prompt: Seeded as the first transcript message
        max_iterations: Max model calls per user turn
        model_timeout: Deadline in seconds for one model call
        strict_tool_call_ids: Reject tool calls that carry no id
    """

    def __init__(
        self,
        provider: LLMProvider,
        toolhost: ToolhostClient,
        system_prompt: str | None = DEFAULT_SYSTEM_PROMPT,
        max_iterations: int = 20,
        model_timeout: float | None = 300,
        strict_tool_call_ids: bool = False,
    ):
        self.provider = provider
        self.toolhost = toolhost
        self.max_iterations = max_iterations
        self.model_timeout = model_timeout
        self.strict_tool_call_ids = strict_tool_call_ids
        self.tools: list[dict[str, Any]] = []
        self.messages: list[dict[str, Any]] = []
        if system_prompt:
            self.messages.append({"role": "system", "content": system_prompt})

    async def load_tools(self) -> list[dict[str, Any]]:
        """Fetch the toolhost's advertised tools in function-calling format."""
        self.tools = descriptors_to_openai_tools(await self.toolhost.list_tools())
        logger.info("loaded %d tools from toolhost", len(self.tools))
        return self.tools

    async def send_message(
        self,
        text: str,
        on_tool_start: ToolStartCallback | None = None,
        on_tool_result: ToolResultCallback | None = None,
        waiting: Callable[[], AbstractContextManager[Any]] | None = None,
    ) -> str:
        """
        Run one user turn and return the model's final answer.

        Args:
            text: The user's message
            on_tool_start: Called before each tool call executes
            on_tool_result: Called with each tool call's result
            waiting: Factory for a context manager held around each model call

        Raises:
            ModelEndpointError: The model endpoint failed; the turn is over
            MaxIterationsError: The model kept requesting tools
        """
        self.messages.append({"role": "user", "content": text})

        for _ in range(self.max_iterations):
            message = await self._query_model(waiting)
            raw_calls = message.get("tool_calls") or []

            if not raw_calls:
                content = message.get("content") or ""
                self.messages.append({"role": "assistant", "content": content})
                return content

            calls = [ToolCallObj.from_dict(tc) for tc in raw_calls]
            self._check_correlation(calls)

            self.messages.append({"role": "assistant", "content": "", "tool_calls": raw_calls})

            results: list[ToolResult] = []
            for call in calls:
                if on_tool_start:
                    on_tool_start(call)
                result = await self._execute(call)
                results.append(result)
                if on_tool_result:
                    on_tool_result(call, result)

            for call, result in zip(calls, results):
                self.messages.append({
                    "role": "tool",
                    "tool_call_id": call.correlation_id,
                    "content": result.text,
                })

        raise MaxIterationsError(self.max_iterations)

    async def _query_model(
        self, waiting: Callable[[], AbstractContextManager[Any]] | None
    ) -> dict[str, Any]:
        indicator = waiting() if waiting else contextlib.nullcontext()
        with indicator:
            try:
                return await asyncio.wait_for(
                    self.provider.chat(self.messages, self.tools or None),
                    timeout=self.model_timeout,
                )
            except asyncio.TimeoutError as e:
                raise ModelTimeoutError(
                    f"Model '{self.provider.model}' did not answer within {self.model_timeout:g}s"
                ) from e

    def _check_correlation(self, calls: list[ToolCallObj]) -> None:
        missing = [c.name for c in calls if c.id is None]
        if not missing:
            return
        if self.strict_tool_call_ids:
            raise ToolCallCorrelationError(
                f"Model returned tool calls without ids: {', '.join(missing)}"
            )
        duplicates = sorted({n for n in missing if missing.count(n) > 1})
        if duplicates:
            raise ToolCallCorrelationError(
                "Model requested the same tool more than once without call ids "
                f"({', '.join(duplicates)}); results cannot be matched"
            )

    async def _execute(self, call: ToolCallObj) -> ToolResult:
        try:
            arguments = call.parsed_arguments()
        except ValueError as e:
            logger.warning("tool call %s has invalid arguments: %s", call.name, e)
            return ToolResult.fail(
                f"Invalid JSON arguments: {e}",
                error_type=INVALID_ARGUMENTS,
                tool_name=call.name,
            )

        logger.debug("calling tool %s with %s", call.name, arguments)
        try:
            return await self.toolhost.call_tool(call.name, arguments)
        except ToolhostError as e:
            logger.warning("tool call %s failed at the toolhost: %s", call.name, e)
            return ToolResult.fail(f"Error: {e}", error_type=IO_ERROR, tool_name=call.name)
