"""Tests for small shared models: tool calls, sessions, JSON-RPC envelopes."""

from datetime import timedelta

import pytest

from mcpfs.core.models import ToolCallObj
from mcpfs.core.registry import ToolDescriptor
from mcpfs.core.tools import descriptors_to_openai_tools
from mcpfs.models.jsonrpc import JSONRPCRequest, error_response, success_response
from mcpfs.models.session import SessionMeta


class TestToolCallObj:
    def test_from_openai_dict(self):
        tc = ToolCallObj.from_dict(
            {"id": "call_1", "type": "function", "function": {"name": "readFile", "arguments": '{"path": "a"}'}}
        )
        assert tc.id == "call_1"
        assert tc.name == "readFile"
        assert tc.correlation_id == "call_1"
        assert tc.parsed_arguments() == {"path": "a"}

    def test_from_ollama_dict(self):
        tc = ToolCallObj.from_dict({"function": {"name": "listFiles", "arguments": {"path": "/"}}})
        assert tc.id is None
        assert tc.correlation_id == "listFiles"
        assert tc.parsed_arguments() == {"path": "/"}

    def test_empty_id_treated_as_missing(self):
        assert ToolCallObj("", "x", None).id is None

    @pytest.mark.parametrize("raw", [None, ""])
    def test_empty_arguments(self, raw):
        assert ToolCallObj("1", "x", raw).parsed_arguments() == {}

    @pytest.mark.parametrize("raw", ["{bad", "[1, 2]", '"str"'])
    def test_bad_arguments(self, raw):
        with pytest.raises(ValueError):
            ToolCallObj("1", "x", raw).parsed_arguments()


class TestOpenAITools:
    def test_conversion(self):
        tools = descriptors_to_openai_tools([
            ToolDescriptor(name="a", description="A", input_schema={"type": "object", "properties": {}}),
            ToolDescriptor(name="b", description="B", input_schema={}),
        ])
        assert tools[0] == {
            "type": "function",
            "function": {"name": "a", "description": "A", "parameters": {"type": "object", "properties": {}}},
        }
        assert tools[1]["function"]["parameters"] == {"type": "object", "properties": {}}


class TestSessionMeta:
    def test_ids_are_unique(self):
        assert len({SessionMeta().session_id for _ in range(100)}) == 100

    def test_touch_and_idle(self):
        meta = SessionMeta()
        meta.touch()
        assert meta.request_count == 1
        assert meta.idle_seconds(meta.last_active_at + timedelta(seconds=5)) == 5


class TestJSONRPC:
    def test_notification_detection(self):
        assert JSONRPCRequest(jsonrpc="2.0", method="x").is_notification
        assert not JSONRPCRequest(jsonrpc="2.0", method="x", id=None).is_notification
        assert not JSONRPCRequest(jsonrpc="2.0", method="x", id=0).is_notification

    def test_wire_shapes(self):
        assert success_response(1, None).to_wire() == {"jsonrpc": "2.0", "id": 1, "result": {}}
        assert error_response("a", -32601, "nope").to_wire() == {
            "jsonrpc": "2.0",
            "id": "a",
            "error": {"code": -32601, "message": "nope"},
        }
