"""Core module for mcpfs."""

from mcpfs.core.registry import ToolError, ToolRegistry
from mcpfs.core.schema import BooleanParam, InputSchema, NumberParam, ObjectParam, StringParam
from mcpfs.core.session_manager import SessionManager

__all__ = [
    "BooleanParam",
    "InputSchema",
    "NumberParam",
    "ObjectParam",
    "SessionManager",
    "StringParam",
    "ToolError",
    "ToolRegistry",
]
