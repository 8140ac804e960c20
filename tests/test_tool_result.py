"""Tests for ToolResult."""

import time

from mcpfs.models.tool_result import (
    NOT_FOUND,
    ImageContent,
    TextContent,
    ToolResult,
    timed_execution,
)


class TestToolResult:
    def test_success(self):
        r = ToolResult.success("done")
        assert not r.is_error
        assert r.text == "done"
        assert r.error_type is None

    def test_fail(self):
        r = ToolResult.fail("missing", error_type=NOT_FOUND, tool_name="readFile")
        assert r.is_error
        assert r.text == "missing"
        assert r.error_type == NOT_FOUND
        assert r.tool_name == "readFile"

    def test_wire_shape_hides_metadata(self):
        r = ToolResult.fail("missing", error_type=NOT_FOUND, tool_name="readFile", duration_ms=3)
        assert r.to_wire() == {
            "content": [{"type": "text", "text": "missing"}],
            "isError": True,
        }

    def test_text_concatenates_text_blocks_only(self):
        r = ToolResult(
            content=[
                TextContent(text="a"),
                ImageContent(data="AAAA", mime_type="image/png"),
                TextContent(text="b"),
            ]
        )
        assert r.text == "ab"

    def test_image_block_wire_alias(self):
        block = ImageContent(data="AAAA", mime_type="image/png")
        assert block.model_dump(by_alias=True) == {
            "type": "image",
            "data": "AAAA",
            "mimeType": "image/png",
        }

    def test_from_wire_skips_unknown_blocks(self):
        r = ToolResult.from_wire({
            "content": [
                {"type": "text", "text": "hello"},
                {"type": "resource", "resource": {"uri": "file:///x"}},
                {"type": "image", "data": "AAAA", "mimeType": "image/png"},
            ],
            "isError": False,
        })
        assert len(r.content) == 2
        assert r.text == "hello"
        assert not r.is_error

    def test_from_wire_error_flag(self):
        r = ToolResult.from_wire({"content": [{"type": "text", "text": "x"}], "isError": True})
        assert r.is_error

    def test_from_wire_empty(self):
        r = ToolResult.from_wire({})
        assert r.content == []
        assert r.text == ""


class TestTimedExecution:
    def test_records_duration(self):
        with timed_execution() as timing:
            time.sleep(0.01)
        assert timing["duration_ms"] >= 5
