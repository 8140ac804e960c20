"""
Shared models for the mcpfs driver.
"""

from __future__ import annotations

import json
from typing import Any


class _FunctionObj:
    """Function part of a tool call, matching the OpenAI/LiteLLM interface."""

    __slots__ = ("name", "arguments")

    def __init__(self, name: str, arguments: str | dict[str, Any] | None):
        self.name = name
        self.arguments = arguments


class ToolCallObj:
    """
    One structured tool-call request from the model.

    `arguments` is kept exactly as the model sent it: OpenAI-style endpoints
    send a JSON string, Ollama sends an object.
    """

    __slots__ = ("id", "function")

    def __init__(self, id: str | None, name: str, arguments: str | dict[str, Any] | None):
        self.id = id or None
        self.function = _FunctionObj(name, arguments)

    @property
    def name(self) -> str:
        return self.function.name

    @property
    def correlation_id(self) -> str:
        """Key used to match the tool result message to this request."""
        return self.id or self.function.name

    def parsed_arguments(self) -> dict[str, Any]:
        """
        Decode the arguments into a dict.

        Raises:
            ValueError: If the arguments are not a JSON object
        """
        raw = self.function.arguments
        if raw is None or raw == "":
            return {}
        if isinstance(raw, dict):
            return raw
        if isinstance(raw, str):
            value = json.loads(raw)
            if isinstance(value, dict):
                return value
        raise ValueError(f"expected a JSON object, got {raw!r}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolCallObj":
        function = data.get("function") or {}
        return cls(data.get("id"), function.get("name", ""), function.get("arguments"))

    def __repr__(self) -> str:
        return f"ToolCallObj(id={self.id!r}, name={self.name!r})"
