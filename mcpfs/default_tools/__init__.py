"""
Default tools bundled with the mcpfs toolhost.
"""

from __future__ import annotations

from mcpfs.core.registry import ToolRegistry
from mcpfs.default_tools.describe import register_describe_tools
from mcpfs.default_tools.files import register_file_tools
from mcpfs.models.config import ToolhostConfig


def build_registry(config: ToolhostConfig | None = None) -> ToolRegistry:
    """
    Build a fresh, frozen registry with every bundled tool.

    Called once per toolhost session so that sessions never share registry
    instances.
    """
    config = config or ToolhostConfig()
    registry = ToolRegistry(tool_timeout=config.tool_timeout_seconds)
    register_describe_tools(registry)
    register_file_tools(registry, config.resolved_default_dir())
    return registry.freeze()


__all__ = ["build_registry"]
