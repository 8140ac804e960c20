"""
Configuration models for the toolhost and the driver.

Settings are resolved in three layers: an optional YAML file, then
environment variables, then command-line flags (applied by the CLI).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal, TypeVar

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

DEFAULT_PORT = 4001
DEFAULT_LLM_API_URL = "http://localhost:11434/api/chat"
DEFAULT_LLM_MODEL = "mistral-nemo"

DEFAULT_SYSTEM_PROMPT = (
    "You are an AI assistant with access to MCP tools.\n"
    "If you're unsure, ask clarifying questions. Always consider using the "
    "'describeServer' tool.\n"
    "Do not summarize the tool response."
)


class ToolhostConfig(BaseModel):
    """Toolhost (server) settings."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=DEFAULT_PORT, gt=0, lt=65536)
    server_name: str = Field(default="fs-toolhost")
    server_version: str = Field(default="1.0.0")
    default_dir: str | None = Field(
        default=None,
        description="Directory used for default path arguments (default: process cwd)",
    )
    idle_timeout_seconds: float | None = Field(
        default=1800,
        gt=0,
        description="Evict a session after N seconds of inactivity (null disables)",
    )
    sweep_interval_seconds: float = Field(default=60, gt=0)
    tool_timeout_seconds: float = Field(
        default=30, gt=0, description="Deadline for a single tool invocation"
    )

    def resolved_default_dir(self) -> str:
        return self.default_dir or os.getcwd()


class DriverConfig(BaseModel):
    """Driver (chat client) settings."""

    toolhost_url: str = Field(default=f"http://localhost:{DEFAULT_PORT}/mcp")
    provider: Literal["ollama", "litellm"] = Field(default="ollama")
    llm_api_url: str = Field(default=DEFAULT_LLM_API_URL)
    llm_model: str = Field(default=DEFAULT_LLM_MODEL)
    model_timeout_seconds: float = Field(
        default=300, gt=0, description="Deadline for a single model call"
    )
    max_retries: int = Field(default=3, ge=0, description="Max retries on transient model errors")
    retry_delay: float = Field(default=1.0, gt=0, description="Initial retry delay in seconds")
    retry_backoff: float = Field(default=2.0, ge=1, description="Exponential backoff multiplier")
    max_iterations: int = Field(
        default=20, gt=0, description="Max model calls per user turn"
    )
    strict_tool_call_ids: bool = Field(
        default=False,
        description="Reject model tool calls that carry no id",
    )
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT)
    exit_sentinel: str = Field(default="exit", min_length=1)


class AppConfig(BaseModel):
    """Top-level configuration file layout."""

    toolhost: ToolhostConfig = Field(default_factory=ToolhostConfig)
    driver: DriverConfig = Field(default_factory=DriverConfig)


class ConfigError(Exception):
    """Raised when a configuration file or override is invalid."""

    def __init__(self, source: str, issues: list[str]):
        self.source = source
        self.issues = issues
        msg = f"Invalid configuration in {source}:\n" + "\n".join(
            f"  - {issue}" for issue in issues
        )
        super().__init__(msg)


def _friendly_validation_errors(source: str, exc: ValidationError) -> ConfigError:
    """Convert Pydantic ValidationError to a user-friendly ConfigError."""
    issues: list[str] = []
    for error in exc.errors():
        loc = ".".join(str(x) for x in error["loc"])
        err_type = error["type"]

        if err_type == "literal_error":
            allowed = error.get("ctx", {}).get("expected", "")
            issues.append(f"{loc}: must be one of {allowed}")
        elif err_type == "extra_forbidden":
            issues.append(f"{loc}: unknown setting")
        else:
            issues.append(f"{loc}: {error['msg']}")

    return ConfigError(source, issues)


# Environment variable -> (section, field)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "MCPFS_HOST": ("toolhost", "host"),
    "MCPFS_PORT": ("toolhost", "port"),
    "MCPFS_DEFAULT_DIR": ("toolhost", "default_dir"),
    "MCPFS_IDLE_TIMEOUT": ("toolhost", "idle_timeout_seconds"),
    "MCPFS_TOOL_TIMEOUT": ("toolhost", "tool_timeout_seconds"),
    "MCPFS_TOOLHOST_URL": ("driver", "toolhost_url"),
    "LLM_PROVIDER": ("driver", "provider"),
    "LLM_API_URL": ("driver", "llm_api_url"),
    "LLM_MODEL": ("driver", "llm_model"),
    "LLM_TIMEOUT": ("driver", "model_timeout_seconds"),
}


def _env_overrides(environ: dict[str, str]) -> dict[str, dict[str, Any]]:
    overrides: dict[str, dict[str, Any]] = {}
    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value is None or value == "":
            continue
        if key == "idle_timeout_seconds" and value.lower() in ("none", "off", "0"):
            overrides.setdefault(section, {})[key] = None
            continue
        overrides.setdefault(section, {})[key] = value
    return overrides


def load_config(
    path: Path | str | None = None,
    environ: dict[str, str] | None = None,
) -> AppConfig:
    """
    Load configuration from an optional YAML file plus environment overrides.

    Args:
        path: YAML file with optional `toolhost:` and `driver:` sections
        environ: Environment mapping (default: os.environ)

    Returns:
        Validated AppConfig

    Raises:
        ConfigError: If the file is missing, malformed, or fails validation
    """
    data: dict[str, Any] = {}
    source = "environment"

    if path is not None:
        config_path = Path(path)
        source = str(config_path)
        if not config_path.exists():
            raise ConfigError(source, ["file not found"])
        with open(config_path) as f:
            try:
                loaded = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(source, [f"invalid YAML: {e}"]) from e
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(source, ["top level must be a mapping"])
        data = loaded

    for section, values in _env_overrides(dict(os.environ if environ is None else environ)).items():
        existing = data.get(section) or {}
        if not isinstance(existing, dict):
            raise ConfigError(source, [f"{section}: must be a mapping"])
        data[section] = {**existing, **values}
        logger.debug("Applied environment overrides to %s: %s", section, sorted(values))

    try:
        return AppConfig(**data)
    except ValidationError as e:
        raise _friendly_validation_errors(source, e) from e


def apply_overrides(model: ModelT, updates: dict[str, Any], source: str = "command line") -> ModelT:
    """
    Return a copy of a config section with `updates` applied and re-validated.

    Raises:
        ConfigError: If an override violates the section's constraints
    """
    if not updates:
        return model
    try:
        return type(model).model_validate({**model.model_dump(), **updates})
    except ValidationError as e:
        raise _friendly_validation_errors(source, e) from e
