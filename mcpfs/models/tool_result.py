"""
Structured result model for tool execution.

Every tool invocation, successful or not, produces a ToolResult: a list of
typed content blocks plus an error flag. Failures travel as data so the
driver can hand them back to the model like any other output.
"""

import time
from contextlib import contextmanager
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

# Error classifications carried alongside error-flagged results. They are kept
# for logging and tests only; the wire shape exposes nothing but `isError`.
INVALID_ARGUMENTS = "invalid_arguments"
UNKNOWN_TOOL = "unknown_tool"
NOT_FOUND = "not_found"
ALREADY_EXISTS = "already_exists"
IS_A_DIRECTORY = "is_a_directory"
TIMEOUT = "timeout"
IO_ERROR = "io_error"


class TextContent(BaseModel):
    """A plain-text content block."""

    type: Literal["text"] = "text"
    text: str


class ImageContent(BaseModel):
    """A base64-encoded image content block."""

    type: Literal["image"] = "image"
    data: str
    mime_type: str = Field(alias="mimeType")

    model_config = ConfigDict(populate_by_name=True)


ContentBlock = Annotated[Union[TextContent, ImageContent], Field(discriminator="type")]


class ToolResult(BaseModel):
    """Structured result from any tool execution."""

    content: list[ContentBlock] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    # Execution metadata (never serialized to the wire)
    error_type: str | None = Field(default=None, exclude=True)
    tool_name: str | None = Field(default=None, exclude=True)
    duration_ms: int | None = Field(default=None, exclude=True)

    model_config = ConfigDict(populate_by_name=True)

    @property
    def text(self) -> str:
        """Concatenate all text blocks, ignoring any other media type."""
        return "".join(block.text for block in self.content if isinstance(block, TextContent))

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the `tools/call` result envelope."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "ToolResult":
        """Parse a `tools/call` result envelope.

        Blocks of a type this client does not understand are skipped rather
        than rejected.
        """
        blocks = [
            block
            for block in data.get("content") or []
            if isinstance(block, dict) and block.get("type") in ("text", "image")
        ]
        return cls.model_validate({"content": blocks, "isError": bool(data.get("isError", False))})

    @classmethod
    def success(cls, text: str, **kwargs: Any) -> "ToolResult":
        """Create a success result with a single text block."""
        return cls(content=[TextContent(text=text)], is_error=False, **kwargs)

    @classmethod
    def fail(cls, error: str, error_type: str | None = None, **kwargs: Any) -> "ToolResult":
        """Create an error-flagged result whose text describes the failure."""
        return cls(
            content=[TextContent(text=error)],
            is_error=True,
            error_type=error_type,
            **kwargs,
        )


@contextmanager
def timed_execution():
    """Context manager that yields a dict where 'duration_ms' will be set on exit."""
    timing: dict[str, int] = {}
    start = time.monotonic()
    try:
        yield timing
    finally:
        elapsed = time.monotonic() - start
        timing["duration_ms"] = int(elapsed * 1000)
