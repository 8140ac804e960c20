"""
Conversions between toolhost descriptors and the model's function-calling format.
"""

from __future__ import annotations

from typing import Any

from mcpfs.core.registry import ToolDescriptor


def descriptors_to_openai_tools(descriptors: list[ToolDescriptor]) -> list[dict[str, Any]]:
    """
    Convert advertised tool descriptors to OpenAI function-calling format.

    Returns:
        List of {"type": "function", "function": {name, description, parameters}}
    """
    return [
        {
            "type": "function",
            "function": {
                "name": d.name,
                "description": d.description,
                "parameters": d.input_schema or {"type": "object", "properties": {}},
            },
        }
        for d in descriptors
    ]

