"""Data models for mcpfs."""

from mcpfs.models.config import AppConfig, ConfigError, DriverConfig, ToolhostConfig, load_config
from mcpfs.models.session import SessionMeta
from mcpfs.models.tool_result import ImageContent, TextContent, ToolResult

__all__ = [
    "AppConfig",
    "ConfigError",
    "DriverConfig",
    "ImageContent",
    "SessionMeta",
    "TextContent",
    "ToolResult",
    "ToolhostConfig",
    "load_config",
]
