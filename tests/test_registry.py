"""Tests for the tool registry and its dispatch rules."""

import asyncio

import pytest

from mcpfs.core.registry import ToolError, ToolRegistrationError, ToolRegistry
from mcpfs.core.schema import InputSchema, StringParam
from mcpfs.models.tool_result import (
    INVALID_ARGUMENTS,
    IO_ERROR,
    NOT_FOUND,
    TIMEOUT,
    UNKNOWN_TOOL,
    ToolResult,
)


class RecordingHandler:
    def __init__(self, result=None):
        self.calls = []
        self.result = result or ToolResult.success("ok")

    async def __call__(self, args):
        self.calls.append(args)
        return self.result


@pytest.fixture
def echo():
    return RecordingHandler()


@pytest.fixture
def reg(echo):
    r = ToolRegistry()
    r.register(
        "echo",
        "Echo the message",
        InputSchema({"message": StringParam(required=True)}),
        echo,
    )
    return r.freeze()


class TestRegistration:
    def test_duplicate_name_rejected(self, echo):
        r = ToolRegistry()
        r.register("a", "first", None, echo)
        with pytest.raises(ToolRegistrationError, match="already registered"):
            r.register("a", "second", None, echo)

    def test_empty_name_rejected(self, echo):
        with pytest.raises(ToolRegistrationError):
            ToolRegistry().register("", "nameless", None, echo)

    def test_frozen_registry_rejects_registration(self, reg, echo):
        assert reg.frozen
        with pytest.raises(ToolRegistrationError, match="frozen"):
            reg.register("late", "too late", None, echo)

    def test_names_in_registration_order(self, echo):
        r = ToolRegistry()
        for name in ("c", "a", "b"):
            r.register(name, name, None, echo)
        assert r.names() == ["c", "a", "b"]
        assert "a" in r
        assert len(r) == 3


class TestDescribe:
    def test_descriptor_shape(self, reg):
        (d,) = reg.describe()
        assert d.to_wire() == {
            "name": "echo",
            "description": "Echo the message",
            "inputSchema": {
                "type": "object",
                "properties": {"message": {"type": "string"}},
                "required": ["message"],
            },
        }

    def test_describe_is_idempotent(self, reg):
        first = [d.to_wire() for d in reg.describe()]
        second = [d.to_wire() for d in reg.describe()]
        assert first == second

    def test_describe_returns_a_copy(self, reg):
        reg.describe().clear()
        assert len(reg.describe()) == 1


class TestDispatch:
    @pytest.mark.asyncio
    async def test_valid_call_invokes_handler_once(self, reg, echo):
        result = await reg.dispatch("echo", {"message": "hi"})
        assert echo.calls == [{"message": "hi"}]
        assert result is echo.result
        assert result.text == "ok"
        assert result.tool_name == "echo"
        assert result.duration_ms is not None

    @pytest.mark.asyncio
    async def test_unknown_tool_is_error_result(self, reg, echo):
        result = await reg.dispatch("nope", {})
        assert result.is_error
        assert result.error_type == UNKNOWN_TOOL
        assert "nope" in result.text
        assert echo.calls == []

    @pytest.mark.asyncio
    async def test_invalid_arguments_never_reach_handler(self, reg, echo):
        result = await reg.dispatch("echo", {"message": 5})
        assert result.is_error
        assert result.error_type == INVALID_ARGUMENTS
        assert "message" in result.text
        assert echo.calls == []

    @pytest.mark.asyncio
    async def test_missing_arguments(self, reg, echo):
        result = await reg.dispatch("echo", None)
        assert result.error_type == INVALID_ARGUMENTS
        assert echo.calls == []

    @pytest.mark.asyncio
    async def test_tool_error_becomes_result(self):
        async def boom(args):
            raise ToolError("gone", error_type=NOT_FOUND)

        r = ToolRegistry()
        r.register("boom", "fails", None, boom)
        result = await r.dispatch("boom", {})
        assert result.is_error
        assert result.error_type == NOT_FOUND
        assert result.text == "gone"

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_result(self):
        async def crash(args):
            raise RuntimeError("kaput")

        r = ToolRegistry()
        r.register("crash", "fails", None, crash)
        result = await r.dispatch("crash", {})
        assert result.is_error
        assert result.error_type == IO_ERROR
        assert "kaput" in result.text

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow(args):
            await asyncio.sleep(5)
            return ToolResult.success("late")

        r = ToolRegistry(tool_timeout=0.05)
        r.register("slow", "sleeps", None, slow)
        result = await r.dispatch("slow", {})
        assert result.is_error
        assert result.error_type == TIMEOUT
        assert "timed out" in result.text
