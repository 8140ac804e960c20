"""
Pytest fixtures for mcpfs tests.
"""

import json
import os

import pytest
from fastapi.testclient import TestClient

from mcpfs.default_tools import build_registry
from mcpfs.models.config import ENV_OVERRIDES, ToolhostConfig
from mcpfs.server.app import create_app


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep real LLM_* / MCPFS_* variables from leaking into config tests."""
    for var in ENV_OVERRIDES:
        monkeypatch.delenv(var, raising=False)
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def toolhost_config(tmp_path):
    """Toolhost settings rooted in a temporary directory."""
    return ToolhostConfig(default_dir=str(tmp_path), idle_timeout_seconds=None)


@pytest.fixture
def registry(toolhost_config):
    """A frozen registry with every bundled tool."""
    return build_registry(toolhost_config)


@pytest.fixture
def app(toolhost_config):
    return create_app(toolhost_config)


@pytest.fixture
def client(app):
    return TestClient(app)


def rpc(method, params=None, id=1):
    """Build a JSON-RPC request (or a notification when id is None)."""
    msg = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        msg["params"] = params
    if id is not None:
        msg["id"] = id
    return msg


def initialize_params(name="test-client"):
    return {
        "protocolVersion": "2025-03-26",
        "capabilities": {},
        "clientInfo": {"name": name, "version": "0.0.1"},
    }


def body(*messages):
    """Encode one message, or a batch when given several."""
    if len(messages) == 1:
        return json.dumps(messages[0])
    return json.dumps(list(messages))
