"""
CLI entry point for mcpfs: a filesystem toolhost and a chat driver for it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from mcpfs import __version__
from mcpfs.models.config import AppConfig, ConfigError, DriverConfig, apply_overrides, load_config

console = Console()
console_err = Console(stderr=True)

LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def _setup_logging(debug: bool, level: int) -> None:
    logging.basicConfig(level=logging.DEBUG if debug else level, format=LOG_FORMAT)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _load(config_path: str | None) -> AppConfig:
    try:
        return load_config(config_path)
    except ConfigError as e:
        console_err.print(f"[red]Error:[/red] {e}", highlight=False)
        sys.exit(1)


def _override(section, updates: dict):
    try:
        return apply_overrides(section, updates)
    except ConfigError as e:
        console_err.print(f"[red]Error:[/red] {e}", highlight=False)
        sys.exit(1)


# =============================================================================
# Root CLI Group
# =============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="mcpfs")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, debug: bool):
    """
    mcpfs: filesystem tools for a local LLM.

    \b
        mcpfs serve               # Run the toolhost on :4001
        mcpfs chat                # Chat with a model that can use the tools
        mcpfs tools               # List the tools a toolhost advertises
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


# =============================================================================
# Toolhost
# =============================================================================


@cli.command()
@click.option("--host", default=None, help="Bind address (default: 127.0.0.1)")
@click.option("--port", "-p", type=int, default=None, help="Port (default: 4001)")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="YAML config file")
@click.option("--idle-timeout", type=float, default=None,
              help="Evict sessions idle for N seconds (0 disables)")
@click.option("--default-dir", type=click.Path(file_okay=False), default=None,
              help="Directory for default path arguments (default: cwd)")
@click.pass_context
def serve(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    config_path: str | None,
    idle_timeout: float | None,
    default_dir: str | None,
):
    """
    Run the filesystem toolhost.

    \b
    Examples:
        mcpfs serve
        mcpfs serve --port 5000 --idle-timeout 600
    """
    import uvicorn

    from mcpfs.server import create_app

    _setup_logging(ctx.obj.get("debug", False), logging.INFO)
    app_config = _load(config_path)

    updates: dict = {}
    if host is not None:
        updates["host"] = host
    if port is not None:
        updates["port"] = port
    if idle_timeout is not None:
        updates["idle_timeout_seconds"] = idle_timeout or None
    if default_dir is not None:
        updates["default_dir"] = default_dir
    toolhost = _override(app_config.toolhost, updates)

    app = create_app(toolhost)
    console.print(
        f"[bold]{toolhost.server_name}[/bold] listening on "
        f"[cyan]http://{toolhost.host}:{toolhost.port}/mcp[/cyan]",
        highlight=False,
    )
    uvicorn.run(app, host=toolhost.host, port=toolhost.port, log_level="warning")


# =============================================================================
# Driver
# =============================================================================


@cli.command()
@click.option("--toolhost", "toolhost_url", default=None, help="Toolhost /mcp URL")
@click.option("--model", "-m", default=None, help="Model name (default: mistral-nemo)")
@click.option("--provider", type=click.Choice(["ollama", "litellm"]), default=None,
              help="Model endpoint type")
@click.option("--api-url", default=None, help="Ollama /api/chat URL")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="YAML config file")
@click.pass_context
def chat(
    ctx: click.Context,
    toolhost_url: str | None,
    model: str | None,
    provider: str | None,
    api_url: str | None,
    config_path: str | None,
):
    """
    Chat with a model that can read and write files through the toolhost.

    Type 'exit' (or press Ctrl-D) to quit.
    """
    _setup_logging(ctx.obj.get("debug", False), logging.WARNING)
    app_config = _load(config_path)

    updates: dict = {}
    if toolhost_url:
        updates["toolhost_url"] = toolhost_url
    if model:
        updates["llm_model"] = model
    if provider:
        updates["provider"] = provider
    if api_url:
        updates["llm_api_url"] = api_url
    driver = _override(app_config.driver, updates)

    code = asyncio.run(_chat_session(driver))
    if code:
        sys.exit(code)


async def _chat_session(config: DriverConfig) -> int:
    from mcpfs.cli import ui
    from mcpfs.core.client import ToolhostClient, ToolhostError
    from mcpfs.core.engine import MaxIterationsError, ToolCallLoop
    from mcpfs.core.llm import ModelEndpointError, create_provider

    toolhost = ToolhostClient(config.toolhost_url)
    provider = create_provider(config)
    try:
        try:
            await toolhost.connect()
            loop = ToolCallLoop(
                provider,
                toolhost,
                system_prompt=config.system_prompt,
                max_iterations=config.max_iterations,
                model_timeout=config.model_timeout_seconds,
                strict_tool_call_ids=config.strict_tool_call_ids,
            )
            await loop.load_tools()
        except ToolhostError as e:
            ui.render_error(console_err, str(e))
            console_err.print("[dim]Is the toolhost running? Start it with 'mcpfs serve'.[/dim]")
            return 1

        console.print(
            f"Connected to [cyan]{toolhost.server_info.get('name', 'toolhost')}[/cyan] "
            f"with {len(loop.tools)} tools, model [cyan]{config.llm_model}[/cyan]. "
            f"Type '{config.exit_sentinel}' to quit.",
            highlight=False,
        )

        session = ui.create_prompt_session()
        while True:
            try:
                line = await ui.read_line(session)
            except (EOFError, KeyboardInterrupt):
                break
            if line.strip().lower() == config.exit_sentinel.lower():
                break
            if not line.strip():
                continue

            try:
                answer = await loop.send_message(
                    line,
                    on_tool_start=lambda call: ui.render_tool_start(console, call),
                    on_tool_result=lambda call, result: ui.render_tool_end(console, result),
                    waiting=lambda: ui.waiting(console),
                )
            except (ModelEndpointError, MaxIterationsError) as e:
                ui.render_error(console, str(e))
                continue
            ui.render_answer(console, answer)
        return 0
    finally:
        await provider.aclose()
        await toolhost.close()


@cli.command()
@click.option("--toolhost", "toolhost_url", default=None, help="Toolhost /mcp URL")
@click.option("--json", "as_json", is_flag=True, help="Print raw descriptors as JSON")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="YAML config file")
@click.pass_context
def tools(ctx: click.Context, toolhost_url: str | None, as_json: bool, config_path: str | None):
    """List the tools a running toolhost advertises."""
    from mcpfs.core.client import ToolhostError

    _setup_logging(ctx.obj.get("debug", False), logging.WARNING)
    app_config = _load(config_path)
    url = toolhost_url or app_config.driver.toolhost_url

    try:
        descriptors = asyncio.run(_fetch_tools(url))
    except ToolhostError as e:
        console_err.print(f"[red]Error:[/red] {e}", highlight=False)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps([d.to_wire() for d in descriptors], indent=2))
        return

    table = Table(title=f"Tools at {url}")
    table.add_column("Name", style="cyan")
    table.add_column("Parameters")
    table.add_column("Description")
    for d in descriptors:
        params = ", ".join(
            f"{name}*" if name in d.input_schema.get("required", []) else name
            for name in d.input_schema.get("properties", {})
        )
        table.add_row(d.name, params or "-", d.description.split("\n")[0])
    console.print(table)


async def _fetch_tools(url: str):
    from mcpfs.core.client import ToolhostClient

    host = ToolhostClient(url)
    try:
        await host.connect()
        return await host.list_tools()
    finally:
        await host.close()


if __name__ == "__main__":
    cli()
