"""
UI components for the mcpfs chat command.

Input goes through prompt_toolkit when attached to a terminal; output is
rendered with Rich.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.history import FileHistory, InMemoryHistory
from rich.console import Console
from rich.markdown import Markdown

from mcpfs.core.models import ToolCallObj
from mcpfs.models.tool_result import ToolResult

HISTORY_FILE = Path.home() / ".mcpfs" / "history"


def create_prompt_session(history_file: Path | None = HISTORY_FILE) -> PromptSession | None:
    """
    Create a prompt_toolkit PromptSession for the chat command.

    Returns None if not in a real terminal (e.g. under CliRunner in tests).
    """
    if not sys.stdin.isatty():
        return None

    history = InMemoryHistory()
    if history_file is not None:
        try:
            history_file.parent.mkdir(parents=True, exist_ok=True)
            history = FileHistory(str(history_file))
        except OSError:
            pass

    return PromptSession(
        history=history,
        auto_suggest=AutoSuggestFromHistory(),
        enable_history_search=True,
        multiline=False,
    )


async def read_line(session: PromptSession | None, prompt: str = "> ") -> str:
    """
    Read one line of user input.

    Raises:
        EOFError: On Ctrl-D or end of piped input
    """
    if session is not None:
        return await session.prompt_async(prompt)
    line = sys.stdin.readline()
    if not line:
        raise EOFError
    return line.rstrip("\n")


@contextmanager
def waiting(console: Console, message: str = "Thinking...") -> Iterator[None]:
    """Show a transient spinner while the model is working."""
    with console.status(f"[dim]{message}[/dim]", spinner="dots"):
        yield


def render_answer(console: Console, content: str) -> None:
    """Render the assistant's final answer as Markdown."""
    if content.strip():
        console.print(Markdown(content))
    else:
        console.print("[dim](empty response)[/dim]")


def render_tool_start(console: Console, call: ToolCallObj) -> None:
    """Render a tool call start event."""
    console.print(f"\n  [cyan]{call.name}[/cyan]", highlight=False)
    arguments = call.function.arguments
    if not arguments:
        return
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments)
        except json.JSONDecodeError:
            console.print(f"  [dim]  {arguments}[/dim]", highlight=False)
            return
    if isinstance(arguments, dict) and len(arguments) <= 2 and all(
        isinstance(v, (str, int, float, bool)) for v in arguments.values()
    ):
        args_str = ", ".join(f"{k}={v!r}" for k, v in arguments.items())
        console.print(f"  [dim]  {args_str}[/dim]", highlight=False)
    else:
        for line in json.dumps(arguments, indent=2).split("\n"):
            console.print(f"  [dim]  {line}[/dim]", highlight=False)


def render_tool_end(console: Console, result: ToolResult) -> None:
    """Render a tool call end event."""
    if not result.is_error:
        console.print("  [green]  done[/green]")
    else:
        console.print(f"  [red]  error: {result.text}[/red]", highlight=False)


def render_error(console: Console, message: str) -> None:
    console.print(f"[red]Error:[/red] {message}", highlight=False)
