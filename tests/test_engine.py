"""
Tests for the driver's tool-call resolution loop.
"""

import asyncio
import json
from contextlib import contextmanager

import httpx
import pytest

from mcpfs.core.client import ToolhostClient, ToolhostError
from mcpfs.core.engine import MaxIterationsError, ToolCallCorrelationError, ToolCallLoop
from mcpfs.core.llm import LLMProvider, ModelEndpointError, ModelTimeoutError
from mcpfs.core.registry import ToolDescriptor
from mcpfs.models.tool_result import ToolResult


class ScriptedProvider(LLMProvider):
    """Returns queued assistant messages and records every transcript it saw."""

    def __init__(self, *responses):
        super().__init__("scripted")
        self.responses = list(responses)
        self.seen = []
        self.tools_seen = []

    async def chat(self, messages, tools=None):
        self.seen.append([dict(m) for m in messages])
        self.tools_seen.append(tools)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class StubToolhost:
    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    async def list_tools(self):
        return [
            ToolDescriptor(name="readFile", description="Read", input_schema={"type": "object"}),
            ToolDescriptor(name="listFiles", description="List", input_schema={"type": "object"}),
        ]

    async def call_tool(self, name, arguments=None):
        self.calls.append((name, arguments))
        if name in self.fail_on:
            raise ToolhostError("connection reset")
        if name == "unknownTool":
            return ToolResult.fail(f"Unknown tool: '{name}'")
        return ToolResult.success(f"{name}:{json.dumps(arguments, sort_keys=True)}")


def answer(text):
    return {"role": "assistant", "content": text}


def tool_calls(*calls):
    return {"role": "assistant", "content": "", "tool_calls": list(calls)}


def call(name, arguments, id=None):
    tc = {"type": "function", "function": {"name": name, "arguments": arguments}}
    if id is not None:
        tc["id"] = id
    return tc


def make_loop(provider, toolhost=None, **kwargs):
    return ToolCallLoop(provider, toolhost or StubToolhost(), **kwargs)


class TestPlainAnswers:
    @pytest.mark.asyncio
    async def test_plain_answer(self):
        provider = ScriptedProvider(answer("hi there"))
        loop = make_loop(provider)
        assert await loop.send_message("hello") == "hi there"
        assert loop.messages[-2:] == [
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "hi there"},
        ]

    @pytest.mark.asyncio
    async def test_system_prompt_seeds_transcript(self):
        provider = ScriptedProvider(answer("ok"))
        loop = make_loop(provider, system_prompt="be brief")
        await loop.send_message("x")
        assert provider.seen[0][0] == {"role": "system", "content": "be brief"}

    @pytest.mark.asyncio
    async def test_no_system_prompt(self):
        loop = make_loop(ScriptedProvider(answer("ok")), system_prompt=None)
        assert loop.messages == []

    @pytest.mark.asyncio
    async def test_load_tools_converts_descriptors(self):
        provider = ScriptedProvider(answer("ok"))
        loop = make_loop(provider)
        tools = await loop.load_tools()
        assert tools[0] == {
            "type": "function",
            "function": {"name": "readFile", "description": "Read", "parameters": {"type": "object"}},
        }
        await loop.send_message("x")
        assert provider.tools_seen[0] == tools


class TestToolExecution:
    @pytest.mark.asyncio
    async def test_n_calls_produce_n_tool_messages_in_order(self):
        provider = ScriptedProvider(
            tool_calls(
                call("readFile", '{"path": "b"}', id="c1"),
                call("listFiles", '{"path": "."}', id="c2"),
                call("readFile", '{"path": "a"}', id="c3"),
            ),
            answer("done"),
        )
        host = StubToolhost()
        loop = make_loop(provider, host, system_prompt=None)

        assert await loop.send_message("go") == "done"
        assert host.calls == [
            ("readFile", {"path": "b"}),
            ("listFiles", {"path": "."}),
            ("readFile", {"path": "a"}),
        ]

        second_query = provider.seen[1]
        assistant = second_query[1]
        assert assistant["role"] == "assistant"
        assert assistant["content"] == ""
        assert len(assistant["tool_calls"]) == 3

        tool_msgs = second_query[2:]
        assert [m["role"] for m in tool_msgs] == ["tool", "tool", "tool"]
        assert [m["tool_call_id"] for m in tool_msgs] == ["c1", "c2", "c3"]
        assert tool_msgs[0]["content"] == 'readFile:{"path": "b"}'
        assert tool_msgs[2]["content"] == 'readFile:{"path": "a"}'

    @pytest.mark.asyncio
    async def test_object_arguments_and_missing_ids(self):
        provider = ScriptedProvider(
            tool_calls(call("listFiles", {"path": "/tmp"}), call("readFile", {"path": "/tmp/x"})),
            answer("ok"),
        )
        host = StubToolhost()
        loop = make_loop(provider, host, system_prompt=None)
        await loop.send_message("go")
        tool_msgs = [m for m in loop.messages if m["role"] == "tool"]
        assert [m["tool_call_id"] for m in tool_msgs] == ["listFiles", "readFile"]
        assert host.calls[0] == ("listFiles", {"path": "/tmp"})

    @pytest.mark.asyncio
    async def test_failing_call_does_not_short_circuit(self):
        provider = ScriptedProvider(
            tool_calls(
                call("readFile", "{}", id="1"),
                call("unknownTool", "{}", id="2"),
                call("listFiles", "{}", id="3"),
            ),
            answer("ok"),
        )
        host = StubToolhost()
        loop = make_loop(provider, host)
        await loop.send_message("go")
        assert [name for name, _ in host.calls] == ["readFile", "unknownTool", "listFiles"]
        tool_msgs = [m for m in loop.messages if m["role"] == "tool"]
        assert "Unknown tool" in tool_msgs[1]["content"]
        assert len(tool_msgs) == 3

    @pytest.mark.asyncio
    async def test_invalid_json_arguments_skip_toolhost(self):
        provider = ScriptedProvider(
            tool_calls(call("readFile", "{not json", id="1"), call("listFiles", "{}", id="2")),
            answer("ok"),
        )
        host = StubToolhost()
        loop = make_loop(provider, host)
        await loop.send_message("go")
        assert host.calls == [("listFiles", {})]
        tool_msgs = [m for m in loop.messages if m["role"] == "tool"]
        assert tool_msgs[0]["content"].startswith("Invalid JSON arguments:")

    @pytest.mark.asyncio
    async def test_toolhost_failure_becomes_tool_message(self):
        provider = ScriptedProvider(tool_calls(call("readFile", "{}", id="1")), answer("sorry"))
        loop = make_loop(provider, StubToolhost(fail_on={"readFile"}))
        assert await loop.send_message("go") == "sorry"
        tool_msg = [m for m in loop.messages if m["role"] == "tool"][0]
        assert "connection reset" in tool_msg["content"]

    @pytest.mark.asyncio
    async def test_callbacks_fire_per_call(self):
        provider = ScriptedProvider(
            tool_calls(call("readFile", "{}", id="1"), call("listFiles", "{}", id="2")),
            answer("ok"),
        )
        events = []
        loop = make_loop(provider)
        await loop.send_message(
            "go",
            on_tool_start=lambda c: events.append(("start", c.name)),
            on_tool_result=lambda c, r: events.append(("end", c.name, r.is_error)),
        )
        assert events == [
            ("start", "readFile"), ("end", "readFile", False),
            ("start", "listFiles"), ("end", "listFiles", False),
        ]

    @pytest.mark.asyncio
    async def test_max_iterations(self):
        provider = ScriptedProvider(*[tool_calls(call("listFiles", "{}", id=str(i))) for i in range(3)])
        loop = make_loop(provider, max_iterations=3)
        with pytest.raises(MaxIterationsError):
            await loop.send_message("loop forever")


class TestCorrelation:
    @pytest.mark.asyncio
    async def test_duplicate_names_without_ids_rejected(self):
        provider = ScriptedProvider(
            tool_calls(call("readFile", {"path": "a"}), call("readFile", {"path": "b"})),
        )
        host = StubToolhost()
        loop = make_loop(provider, host, system_prompt=None)
        with pytest.raises(ToolCallCorrelationError):
            await loop.send_message("go")
        assert host.calls == []
        assert loop.messages == [{"role": "user", "content": "go"}]

    @pytest.mark.asyncio
    async def test_duplicate_names_with_ids_allowed(self):
        provider = ScriptedProvider(
            tool_calls(call("readFile", {"path": "a"}, id="x"), call("readFile", {"path": "b"}, id="y")),
            answer("ok"),
        )
        loop = make_loop(provider)
        assert await loop.send_message("go") == "ok"

    @pytest.mark.asyncio
    async def test_strict_mode_rejects_any_missing_id(self):
        provider = ScriptedProvider(tool_calls(call("readFile", {"path": "a"})))
        loop = make_loop(provider, strict_tool_call_ids=True)
        with pytest.raises(ToolCallCorrelationError):
            await loop.send_message("go")

    def test_correlation_error_is_endpoint_error(self):
        assert issubclass(ToolCallCorrelationError, ModelEndpointError)


class TestEndpointFailures:
    @pytest.mark.asyncio
    async def test_endpoint_error_ends_turn_but_keeps_history(self):
        provider = ScriptedProvider(ModelEndpointError("No message received"), answer("back"))
        loop = make_loop(provider, system_prompt=None)
        with pytest.raises(ModelEndpointError):
            await loop.send_message("first")
        assert await loop.send_message("second") == "back"
        assert [m["content"] for m in loop.messages] == ["first", "second", "back"]

    @pytest.mark.asyncio
    async def test_model_timeout(self):
        class SlowProvider(ScriptedProvider):
            async def chat(self, messages, tools=None):
                await asyncio.sleep(5)

        loop = make_loop(SlowProvider(), model_timeout=0.05)
        with pytest.raises(ModelTimeoutError):
            await loop.send_message("hello?")

    @pytest.mark.asyncio
    async def test_waiting_indicator_stops_on_error(self):
        state = []

        @contextmanager
        def waiting():
            state.append("on")
            try:
                yield
            finally:
                state.append("off")

        provider = ScriptedProvider(ModelEndpointError("boom"))
        loop = make_loop(provider)
        with pytest.raises(ModelEndpointError):
            await loop.send_message("x", waiting=waiting)
        assert state == ["on", "off"]

    @pytest.mark.asyncio
    async def test_waiting_indicator_wraps_each_model_call(self):
        count = []

        @contextmanager
        def waiting():
            count.append(1)
            yield

        provider = ScriptedProvider(tool_calls(call("listFiles", "{}", id="1")), answer("ok"))
        await make_loop(provider).send_message("x", waiting=waiting)
        assert len(count) == 2


class TestMalformedToolhostReplies:
    @pytest.mark.asyncio
    async def test_bad_result_does_not_stop_the_batch(self):
        def handler(request):
            msg = json.loads(request.content)
            if "id" not in msg:
                return httpx.Response(202)
            if msg["method"] == "initialize":
                result = {"serverInfo": {"name": "odd"}}
            elif msg["params"]["name"] == "readFile":
                result = {"content": [{"type": "image", "data": "AAAA"}, {"type": "text", "text": "ok"}]}
            else:
                result = {"content": [{"type": "text", "text": "a.txt"}]}
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": msg["id"], "result": result})

        provider = ScriptedProvider(
            tool_calls(
                call("readFile", '{"path": "a.txt"}', id="1"),
                call("listFiles", "{}", id="2"),
            ),
            answer("done"),
        )
        toolhost = ToolhostClient("http://toolhost.test/mcp", transport=httpx.MockTransport(handler))
        await toolhost.connect()
        loop = make_loop(provider, toolhost)

        assert await loop.send_message("go") == "done"
        tool_messages = [m for m in loop.messages if m["role"] == "tool"]
        assert [m["tool_call_id"] for m in tool_messages] == ["1", "2"]
        assert tool_messages[0]["content"].startswith("Error: Invalid tools/call result from readFile")
        assert tool_messages[1]["content"] == "a.txt"
        await toolhost.close()
