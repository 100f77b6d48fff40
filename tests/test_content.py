"""Tests for the shared content block helpers."""

import json

import pytest

from o2cproxy.core.exceptions import UnsupportedContentError
from o2cproxy.messages.content import (
    ensure_supported_content,
    flatten_assistant_blocks,
    flatten_tool_results,
    format_tool_call,
    get_reasoning_text,
    iter_output_blocks,
    normalize_tool_arguments,
    parse_tool_arguments,
    serialize_tool_input,
    stringify_tool_result,
    text_from_content,
    to_content_block,
    tool_result_text,
)


class TestFlattening:
    """Tests for flattening tool blocks into text markers."""

    def test_tool_call_marker(self):
        """Tool calls become a bracketed marker with JSON arguments."""
        marker = format_tool_call("call_1", "get_weather", serialize_tool_input({"city": "Oslo"}))
        assert marker == '[tool_call id=call_1 name=get_weather args={"city":"Oslo"}]'

    def test_missing_tool_input_serializes_as_empty_object(self):
        assert serialize_tool_input(None) == "{}"

    def test_tool_result_markers_are_newline_joined(self):
        """Each tool_result block produces one marker."""
        content = [
            {"type": "tool_result", "tool_use_id": "a", "content": "first"},
            {"type": "text", "text": "ignored here"},
            {"type": "tool_result", "tool_use_id": "b", "content": "second"},
        ]
        assert flatten_tool_results(content) == "[tool_result id=a]\nfirst\n[tool_result id=b]\nsecond"

    def test_tool_result_text_from_block_list(self):
        content = [{"type": "text", "text": "line 1"}, {"type": "text", "text": "line 2"}]
        assert tool_result_text(content) == "line 1\nline 2"

    def test_tool_result_text_none(self):
        assert tool_result_text(None) == ""

    def test_string_content_has_no_tool_results(self):
        assert flatten_tool_results("plain") == ""

    def test_text_from_content_joins_text_blocks(self):
        content = [
            {"type": "text", "text": "Hello "},
            {"type": "tool_result", "tool_use_id": "a", "content": "x"},
            {"type": "text", "text": "world"},
        ]
        assert text_from_content(content) == "Hello world"

    def test_assistant_blocks_skip_reasoning(self):
        """Thinking and redacted thinking blocks are dropped."""
        blocks = [
            {"type": "text", "text": "answer"},
            {"type": "thinking", "thinking": "trace"},
            {"type": "redacted_thinking", "data": "REDACTED"},
            {"type": "tool_use", "id": "t1", "name": "search", "input": {"q": "x"}},
        ]
        assert flatten_assistant_blocks(blocks) == [
            "answer",
            '[tool_call id=t1 name=search args={"q":"x"}]',
        ]

    def test_image_content_rejected(self):
        """Image blocks cannot be translated."""
        messages = [{"role": "user", "content": [{"type": "image", "source": {}}]}]
        with pytest.raises(UnsupportedContentError) as exc_info:
            ensure_supported_content(messages)
        assert exc_info.value.block_type == "image"
        assert exc_info.value.status_code == 400


class TestToolArguments:
    """Tests for tool argument parsing."""

    def test_unparsable_arguments_become_empty_object(self):
        assert parse_tool_arguments("{not json") == {}
        assert parse_tool_arguments(None) == {}

    def test_empty_pages_argument_removed(self):
        assert parse_tool_arguments('{"url": "x", "pages": ""}') == {"url": "x"}

    def test_non_empty_pages_argument_kept(self):
        assert parse_tool_arguments('{"pages": "1-3"}') == {"pages": "1-3"}

    def test_normalize_keeps_untouched_arguments_verbatim(self):
        raw = '{"a": 1}'
        assert normalize_tool_arguments(raw) is raw

    def test_normalize_reencodes_after_stripping(self):
        assert json.loads(normalize_tool_arguments('{"a": 1, "pages": ""}')) == {"a": 1}

    def test_normalize_passes_garbage_through(self):
        assert normalize_tool_arguments("{oops") == "{oops"


class TestToContentBlock:
    """Tests for mapping one output block to a content block."""

    def test_output_text(self):
        assert to_content_block({"type": "output_text", "text": "hi"}) == {"type": "text", "text": "hi"}

    def test_empty_text_not_renderable(self):
        assert to_content_block({"type": "output_text", "text": ""}) is None

    def test_function_call_requires_id_and_name(self):
        """A function call missing its id or name never becomes tool_use."""
        assert to_content_block({"type": "function_call", "name": "f", "arguments": "{}"}) is None
        assert to_content_block({"type": "function_call", "call_id": "c", "arguments": "{}"}) is None

    def test_function_call(self):
        block = {"type": "function_call", "call_id": "c1", "name": "f", "arguments": '{"x": 1}'}
        assert to_content_block(block) == {"type": "tool_use", "id": "c1", "name": "f", "input": {"x": 1}}

    def test_web_search_call_from_arguments(self):
        block = {"type": "web_search_call", "id": "ws_1", "arguments": '{"query": "news"}'}
        assert to_content_block(block) == {
            "type": "tool_use",
            "id": "ws_1",
            "name": "web_search",
            "input": {"query": "news"},
        }

    def test_web_search_call_from_fields(self):
        block = {"type": "web_search_call", "call_id": "ws_2", "query": "weather", "max_results": 3}
        result = to_content_block(block)
        assert result["id"] == "ws_2"
        assert result["input"] == {"query": "weather", "max_results": 3}

    def test_web_search_call_without_id(self):
        result = to_content_block({"type": "web_search_call", "query": "x"})
        assert result["id"] == "web_search"

    def test_web_search_result_payload_stringified(self):
        block = {"type": "web_search_result", "call_id": "ws_1", "results": [{"url": "https://a"}]}
        assert to_content_block(block) == {
            "type": "tool_result",
            "tool_use_id": "ws_1",
            "content": '[{"url": "https://a"}]',
        }

    def test_web_search_result_without_payload(self):
        result = to_content_block({"type": "web_search_result", "call_id": "ws_1"})
        assert result["content"] == ""

    def test_reasoning_text_priority(self):
        assert get_reasoning_text({"text": "", "reasoning": "r", "summary": "s"}) == "r"
        assert get_reasoning_text({"summary": [{"type": "summary_text", "text": "a"}]}) == "a"

    def test_redacted_reasoning_requires_data(self):
        assert to_content_block({"type": "redacted_reasoning", "signature": "s"}) is None

    def test_unknown_block_ignored(self):
        assert to_content_block({"type": "image_generation_call"}) is None


class TestStringifyToolResult:
    def test_string_passthrough(self):
        assert stringify_tool_result("ok") == "ok"

    def test_none(self):
        assert stringify_tool_result(None) == ""


def test_iter_output_blocks_visits_both_placements():
    """Nested message content and standalone items are both yielded."""
    output = [
        {"type": "web_search_call", "id": "a"},
        {"type": "message", "content": [{"type": "output_text", "text": "x"}]},
        "garbage",
    ]
    types = [block["type"] for block in iter_output_blocks(output)]
    assert types == ["web_search_call", "output_text"]
