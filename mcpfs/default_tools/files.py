"""
File system operation tools.

Single-file create, read, update, append and delete, plus directory listing.
Handlers receive arguments that already passed schema validation and always
return a ToolResult; blocking I/O runs in a worker thread so the event loop
keeps serving other sessions.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Any

from mcpfs.core.registry import ToolRegistry
from mcpfs.core.schema import InputSchema, StringParam
from mcpfs.models.tool_result import (
    ALREADY_EXISTS,
    INVALID_ARGUMENTS,
    IO_ERROR,
    IS_A_DIRECTORY,
    NOT_FOUND,
    ToolResult,
)

logger = logging.getLogger(__name__)

DEFAULT_CREATE_CONTENT = "Default file content generated by the MCP tool."
DEFAULT_APPEND_CONTENT = "Appended content from the MCP tool."


def _elapsed_ms(t0: float) -> int:
    return int((time.monotonic() - t0) * 1000)


def _fail(tool: str, event: str, message: str, error_type: str, path: str | None = None) -> ToolResult:
    """Log a precondition failure and build the matching error result."""
    if error_type == IO_ERROR:
        logger.error('[tool] %s error path="%s" msg=%s', tool, path, message)
    else:
        logger.warning('[tool] %s %s path="%s"', tool, event, path)
    return ToolResult.fail(message, error_type=error_type, tool_name=tool)


def _path_arg(args: dict[str, Any]) -> str | None:
    """Return the normalized path argument, or None when missing or blank."""
    path = args.get("path")
    if not isinstance(path, str) or not path.strip():
        return None
    return os.path.expanduser(path)


def _invalid_path(tool: str) -> ToolResult:
    logger.warning("[tool] %s invalid-arg path", tool)
    return ToolResult.fail(
        "'path' must be a non-empty string.", error_type=INVALID_ARGUMENTS, tool_name=tool
    )


# =============================================================================
# Create File
# =============================================================================


async def create_file(args: dict[str, Any]) -> ToolResult:
    """Create a new file. Never overwrites and never creates parent directories."""
    tool = "createFile"
    t0 = time.monotonic()
    path = _path_arg(args)
    content = args.get("content")
    logger.info('[tool] %s start path="%s" bytes=%d', tool, path, len(content or ""))

    if path is None:
        return _invalid_path(tool)

    final_content = content if isinstance(content, str) and content.strip() else DEFAULT_CREATE_CONTENT
    p = Path(path)

    if await asyncio.to_thread(p.exists):
        return _fail(
            tool, "path-exists",
            f"A file already exists at {path}. Creation aborted.",
            ALREADY_EXISTS, path,
        )

    parent = p.parent
    if not await asyncio.to_thread(parent.is_dir):
        return _fail(
            tool, "parent-missing",
            f'Parent directory "{parent}" does not exist.',
            NOT_FOUND, str(parent),
        )

    def _write() -> None:
        # "x" refuses to clobber a file that appeared after the check above
        with open(p, "x", encoding="utf-8", newline="") as f:
            f.write(final_content)

    try:
        await asyncio.to_thread(_write)
    except FileExistsError:
        return _fail(
            tool, "path-exists",
            f"A file already exists at {path}. Creation aborted.",
            ALREADY_EXISTS, path,
        )
    except OSError as e:
        return _fail(tool, "error", f"Unexpected error while creating file: {e}", IO_ERROR, path)

    logger.info(
        '[tool] %s success path="%s" bytes=%d duration=%dms',
        tool, path, len(final_content), _elapsed_ms(t0),
    )
    return ToolResult.success(
        f"File created at {path} with {len(final_content)} characters.", tool_name=tool
    )


# =============================================================================
# Read File
# =============================================================================


async def read_file(args: dict[str, Any]) -> ToolResult:
    """Return the exact content of a file as a single text block."""
    tool = "readFile"
    t0 = time.monotonic()
    path = _path_arg(args)
    logger.info('[tool] %s start path="%s"', tool, path)

    if path is None:
        return _invalid_path(tool)

    def _read() -> str:
        if Path(path).is_dir():
            raise IsADirectoryError(path)
        with open(path, encoding="utf-8", newline="") as f:
            return f.read()

    try:
        content = await asyncio.to_thread(_read)
    except FileNotFoundError:
        return _fail(tool, "not-found", f"File not found at {path}.", NOT_FOUND, path)
    except IsADirectoryError:
        return _fail(
            tool, "is-directory",
            f"'{path}' is a directory, not a file. Use listFiles to see its contents.",
            IS_A_DIRECTORY, path,
        )
    except UnicodeDecodeError:
        return _fail(tool, "error", f"Cannot decode {path} as utf-8 text.", IO_ERROR, path)
    except OSError as e:
        return _fail(tool, "error", f"Error reading file: {e}", IO_ERROR, path)

    logger.info(
        '[tool] %s success path="%s" bytes=%d duration=%dms',
        tool, path, len(content), _elapsed_ms(t0),
    )
    return ToolResult.success(content, tool_name=tool)


# =============================================================================
# Update File
# =============================================================================


async def update_file(args: dict[str, Any]) -> ToolResult:
    """Overwrite an existing file."""
    tool = "updateFile"
    t0 = time.monotonic()
    path = _path_arg(args)
    content = args.get("content") or ""
    logger.info('[tool] %s start path="%s" bytes=%d', tool, path, len(content))

    if path is None:
        return _invalid_path(tool)

    p = Path(path)
    if not await asyncio.to_thread(p.exists):
        return _fail(
            tool, "not-found",
            f"File not found at {path}. Cannot update non-existent file.",
            NOT_FOUND, path,
        )
    if await asyncio.to_thread(p.is_dir):
        return _fail(
            tool, "is-directory",
            f"'{path}' is a directory. Only files can be updated.",
            IS_A_DIRECTORY, path,
        )

    def _write() -> None:
        with open(p, "w", encoding="utf-8", newline="") as f:
            f.write(content)

    try:
        await asyncio.to_thread(_write)
    except OSError as e:
        return _fail(tool, "error", f"Failed to update file: {e}", IO_ERROR, path)

    logger.info('[tool] %s success path="%s" duration=%dms', tool, path, _elapsed_ms(t0))
    return ToolResult.success(f"File successfully updated at {path}.", tool_name=tool)


# =============================================================================
# Append To File
# =============================================================================


async def append_to_file(args: dict[str, Any]) -> ToolResult:
    """Append a line of text to a file, creating the file if needed."""
    tool = "appendToFile"
    t0 = time.monotonic()
    path = _path_arg(args)
    content = args.get("content")
    if content is None:
        content = DEFAULT_APPEND_CONTENT
    logger.info('[tool] %s start path="%s" appendBytes=%d', tool, path, len(content))

    if path is None:
        return _invalid_path(tool)

    def _append() -> None:
        with open(path, "a", encoding="utf-8", newline="") as f:
            f.write(content + "\n")

    try:
        await asyncio.to_thread(_append)
    except IsADirectoryError:
        return _fail(
            tool, "is-directory",
            f"'{path}' is a directory. Only files can be appended to.",
            IS_A_DIRECTORY, path,
        )
    except FileNotFoundError:
        return _fail(
            tool, "parent-missing",
            f'Parent directory "{Path(path).parent}" does not exist.',
            NOT_FOUND, path,
        )
    except OSError as e:
        return _fail(tool, "error", f"Failed to append to file: {e}", IO_ERROR, path)

    logger.info('[tool] %s success path="%s" duration=%dms', tool, path, _elapsed_ms(t0))
    return ToolResult.success(
        f"Content appended to {path} ({len(content)} characters).", tool_name=tool
    )


# =============================================================================
# Delete File
# =============================================================================


async def delete_file(args: dict[str, Any]) -> ToolResult:
    """Delete a single file. Directories are refused."""
    tool = "deleteFile"
    t0 = time.monotonic()
    path = _path_arg(args)
    logger.info('[tool] %s start path="%s"', tool, path)

    if path is None:
        return _invalid_path(tool)

    p = Path(path)

    def _delete() -> None:
        if p.is_dir():
            raise IsADirectoryError(path)
        p.unlink()

    try:
        await asyncio.to_thread(_delete)
    except IsADirectoryError:
        return _fail(
            tool, "is-directory",
            f"'{path}' is a directory. Use a directory-specific tool to delete folders.",
            IS_A_DIRECTORY, path,
        )
    except FileNotFoundError:
        return _fail(tool, "not-found", f"File not found at {path}.", NOT_FOUND, path)
    except OSError as e:
        return _fail(tool, "error", f"Failed to delete file: {e}", IO_ERROR, path)

    logger.info('[tool] %s success path="%s" duration=%dms', tool, path, _elapsed_ms(t0))
    return ToolResult.success(f"File successfully deleted: {path}", tool_name=tool)


# =============================================================================
# List Files
# =============================================================================


async def list_files(args: dict[str, Any]) -> ToolResult:
    """List the entries of a directory, sorted by name."""
    tool = "listFiles"
    t0 = time.monotonic()
    path = _path_arg(args)
    logger.info('[tool] %s start path="%s"', tool, path)

    if path is None:
        return _invalid_path(tool)

    try:
        entries = sorted(await asyncio.to_thread(os.listdir, path))
    except FileNotFoundError:
        return _fail(tool, "not-found", f"Directory not found at {path}.", NOT_FOUND, path)
    except NotADirectoryError:
        return _fail(tool, "not-a-directory", f"'{path}' is not a directory.", IO_ERROR, path)
    except OSError as e:
        return _fail(tool, "error", f"Error reading directory: {e}", IO_ERROR, path)

    logger.info(
        '[tool] %s success path="%s" | file count=%d | duration=%dms',
        tool, path, len(entries), _elapsed_ms(t0),
    )
    listing = ", ".join(entries) if entries else "(empty)"
    return ToolResult.success(f"Files in {path}: {listing}", tool_name=tool)


# =============================================================================
# Registration
# =============================================================================


def register_file_tools(registry: ToolRegistry, default_dir: str) -> None:
    """Register the filesystem tools, with path defaults under `default_dir`."""
    base = default_dir.rstrip("/") or "/"

    registry.register(
        "createFile",
        "Create a new file on the user's machine via the external tool server.",
        InputSchema({
            "path": StringParam(
                description=(
                    "Path where the file should be created (including filename). "
                    f"Default Path = {base}"
                ),
                default=base,
            ),
            "content": StringParam(description="Content to write into the file"),
        }),
        create_file,
    )
    registry.register(
        "readFile",
        "Read and return the content of a file at the given path.",
        InputSchema({
            "path": StringParam(
                description="Path to the file you want to read.",
                default=os.path.join(base, "example.txt"),
            ),
        }),
        read_file,
    )
    registry.register(
        "updateFile",
        "Overwrite the content of an existing file.",
        InputSchema({
            "path": StringParam(
                description="Path of the file to update",
                default=os.path.join(base, "temp.cpp"),
            ),
            "content": StringParam(
                description="New content to overwrite the file with.", required=True
            ),
        }),
        update_file,
    )
    registry.register(
        "appendToFile",
        "Append text content to an existing file.",
        InputSchema({
            "path": StringParam(description="Path to file", default=os.path.join(base, "new.txt")),
            "content": StringParam(description="Text to append", default=DEFAULT_APPEND_CONTENT),
        }),
        append_to_file,
    )
    registry.register(
        "deleteFile",
        "Delete a file from the user's machine at the specified path.",
        InputSchema({
            "path": StringParam(
                description="Path to the file to delete. Only deletes files, not folders.",
                required=True,
            ),
        }),
        delete_file,
    )
    registry.register(
        "listFiles",
        "List files in a directory on the user's machine, called via an external tool server.",
        InputSchema({
            "path": StringParam(
                description=f"path to the directory, default is {base}", default=base
            ),
        }),
        list_files,
    )
