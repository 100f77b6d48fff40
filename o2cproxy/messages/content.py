"""Content block vocabulary shared by both translation directions.

Request side: the Responses input has no structural slot for tool calls,
tool results or caller-supplied reasoning, so tool blocks are flattened into
bracketed text markers and reasoning blocks are dropped.

Response side: the Responses output may carry the same content kind nested
in a message item or as a standalone item; ``to_content_block`` maps a single
block from either placement.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Mapping, Optional

from ..core.exceptions import UnsupportedContentError

logger = logging.getLogger("o2c-proxy")

# Messages-side block types
TEXT = "text"
TOOL_USE = "tool_use"
TOOL_RESULT = "tool_result"
THINKING = "thinking"
REDACTED_THINKING = "redacted_thinking"
IMAGE = "image"

UNSUPPORTED_BLOCK_TYPES = frozenset({IMAGE})

# Responses-side block types
OUTPUT_TEXT_TYPES = frozenset({"text", "output_text"})
FUNCTION_CALL = "function_call"
WEB_SEARCH_CALL = "web_search_call"
WEB_SEARCH_RESULT = "web_search_result"
REASONING_TYPES = frozenset({"reasoning", "output_reasoning"})
REDACTED_REASONING = "redacted_reasoning"
WEB_SEARCH_TYPES = frozenset({WEB_SEARCH_CALL, WEB_SEARCH_RESULT})

WEB_SEARCH_TOOL_NAME = "web_search"
WEB_SEARCH_FIELDS = ("query", "max_results", "search_context_size", "user_location")

# Tool arguments some models fill with "" when they mean "not given"
EMPTY_OPTIONAL_ARGUMENTS = ("pages",)


# =============================================================================
# Request side: Messages blocks -> flattened text
# =============================================================================


def ensure_supported_content(messages: Iterable[Mapping[str, Any]]) -> None:
    """Raise ``UnsupportedContentError`` for blocks that cannot be translated."""
    for message in messages:
        content = message.get("content")
        if not isinstance(content, list):
            continue
        for block in content:
            if isinstance(block, Mapping) and block.get("type") in UNSUPPORTED_BLOCK_TYPES:
                raise UnsupportedContentError(str(block.get("type")))


def text_from_content(content: Any) -> str:
    """Concatenate the plain text of a message's content."""
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    return "".join(
        block.get("text") or ""
        for block in content
        if isinstance(block, Mapping) and block.get("type") == TEXT
    )


def serialize_tool_input(input_data: Any) -> str:
    """Serialize tool input to the JSON string carried by a call marker."""
    if input_data is None:
        input_data = {}
    return json.dumps(input_data, ensure_ascii=False, separators=(",", ":"))


def format_tool_call(call_id: str, name: str, arguments: str) -> str:
    return f"[tool_call id={call_id} name={name} args={arguments}]"


def format_tool_result(tool_use_id: str, content: str) -> str:
    return f"[tool_result id={tool_use_id}]\n{content}"


def tool_result_text(content: Any) -> str:
    """Result content is normally a string; text block lists are joined."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            block.get("text") or ""
            for block in content
            if isinstance(block, Mapping) and block.get("type") == TEXT
        )
    if content is None:
        return ""
    return json.dumps(content, ensure_ascii=False)


def flatten_tool_results(content: Any) -> str:
    """Newline-joined tool result markers of a user message ("" when none)."""
    if not isinstance(content, list):
        return ""
    markers = [
        format_tool_result(str(block.get("tool_use_id", "")), tool_result_text(block.get("content")))
        for block in content
        if isinstance(block, Mapping) and block.get("type") == TOOL_RESULT
    ]
    return "\n".join(markers)


def flatten_assistant_blocks(blocks: Iterable[Mapping[str, Any]]) -> list[str]:
    """Render structured assistant content as lines of text.

    Text blocks are kept as-is and tool invocations become call markers.
    Reasoning blocks have no slot on the backend and are skipped.
    """
    lines: list[str] = []
    for block in blocks:
        block_type = block.get("type")
        if block_type == TEXT:
            lines.append(block.get("text") or "")
        elif block_type == TOOL_USE:
            lines.append(
                format_tool_call(
                    str(block.get("id", "")),
                    str(block.get("name", "")),
                    serialize_tool_input(block.get("input")),
                )
            )
        elif block_type in (THINKING, REDACTED_THINKING):
            logger.debug("[reasoning] Dropping %s block from assistant input", block_type)
    return lines


# =============================================================================
# Response side: Responses blocks -> Messages blocks
# =============================================================================


def safe_json_parse(value: Any) -> Any:
    """Parse a JSON string, returning None when absent or malformed."""
    if not isinstance(value, str) or not value:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return None


def strip_empty_optional_arguments(arguments: Any) -> Any:
    if not isinstance(arguments, dict):
        return arguments
    return {
        key: value
        for key, value in arguments.items()
        if not (key in EMPTY_OPTIONAL_ARGUMENTS and value == "")
    }


def parse_tool_arguments(value: Any) -> Any:
    """Tool call arguments as a JSON value; empty object when unparsable."""
    parsed = safe_json_parse(value)
    if parsed is None:
        return {}
    return strip_empty_optional_arguments(parsed)


def normalize_tool_arguments(value: Any) -> str:
    """Re-encode argument JSON after stripping empty optional arguments.

    Unparsable strings are returned unchanged.
    """
    parsed = safe_json_parse(value)
    if not isinstance(parsed, dict):
        return value if isinstance(value, str) else ""
    stripped = strip_empty_optional_arguments(parsed)
    if len(stripped) == len(parsed):
        return value
    return json.dumps(stripped, ensure_ascii=False)


def web_search_call_id(block: Mapping[str, Any]) -> Optional[str]:
    call_id = block.get("call_id") or block.get("id")
    return str(call_id) if call_id else None


def build_web_search_input(block: Mapping[str, Any]) -> Any:
    """Web-search input from JSON ``arguments``, else from the discrete fields."""
    parsed = safe_json_parse(block.get("arguments"))
    if parsed:
        return parsed
    return {field: block[field] for field in WEB_SEARCH_FIELDS if block.get(field) is not None}


def web_search_result_payload(block: Mapping[str, Any]) -> Any:
    for field in ("results", "content", "output", "text"):
        value = block.get(field)
        if value is not None:
            return value
    return None


def stringify_tool_result(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def get_reasoning_text(block: Mapping[str, Any]) -> str:
    """First non-empty of ``text``, ``reasoning`` and ``summary``.

    ``summary`` may also arrive as a list of summary parts.
    """
    for field in ("text", "reasoning", "summary"):
        value = block.get(field)
        if isinstance(value, list):
            value = "".join(
                part.get("text") or "" for part in value if isinstance(part, Mapping)
            )
        if isinstance(value, str) and value:
            return value
    return ""


def map_reasoning_block(block: Mapping[str, Any]) -> Optional[dict[str, Any]]:
    """Map a reasoning or redacted reasoning block to thinking content."""
    block_type = block.get("type")
    signature = block.get("signature")
    mapped: Optional[dict[str, Any]] = None

    if block_type in REASONING_TYPES:
        mapped = {"type": THINKING, "thinking": get_reasoning_text(block)}
    elif block_type == REDACTED_REASONING and block.get("data"):
        mapped = {"type": REDACTED_THINKING, "data": block["data"]}

    if mapped is not None and signature:
        mapped["signature"] = signature
    return mapped


def is_renderable(block: Mapping[str, Any]) -> bool:
    """Whether the block produces a content block on the Messages side."""
    block_type = block.get("type")
    if block_type in OUTPUT_TEXT_TYPES:
        return bool(block.get("text"))
    if block_type == FUNCTION_CALL:
        return bool(block.get("call_id") and block.get("name"))
    if block_type in WEB_SEARCH_TYPES or block_type in REASONING_TYPES:
        return True
    if block_type == REDACTED_REASONING:
        return bool(block.get("data"))
    return False


def to_content_block(block: Mapping[str, Any]) -> Optional[dict[str, Any]]:
    """Map one Responses output block (nested or standalone) to a Messages block.

    Returns None for blocks with no renderable payload.
    """
    if not is_renderable(block):
        return None

    block_type = block.get("type")

    if block_type in OUTPUT_TEXT_TYPES:
        return {"type": TEXT, "text": block["text"]}

    if block_type == FUNCTION_CALL:
        return {
            "type": TOOL_USE,
            "id": block["call_id"],
            "name": block["name"],
            "input": parse_tool_arguments(block.get("arguments")),
        }

    if block_type == WEB_SEARCH_CALL:
        return {
            "type": TOOL_USE,
            "id": web_search_call_id(block) or WEB_SEARCH_TOOL_NAME,
            "name": WEB_SEARCH_TOOL_NAME,
            "input": build_web_search_input(block),
        }

    if block_type == WEB_SEARCH_RESULT:
        return {
            "type": TOOL_RESULT,
            "tool_use_id": web_search_call_id(block) or WEB_SEARCH_TOOL_NAME,
            "content": stringify_tool_result(web_search_result_payload(block)),
        }

    logger.debug("[reasoning] Mapping %s block: %s", block_type, block)
    return map_reasoning_block(block)


def iter_output_blocks(output: Any) -> Iterable[Mapping[str, Any]]:
    """Yield every block of an output list, nested message content first per item."""
    if not isinstance(output, list):
        return
    for item in output:
        if not isinstance(item, Mapping):
            continue
        if item.get("type") == "message":
            content = item.get("content")
            if isinstance(content, list):
                for block in content:
                    if isinstance(block, Mapping):
                        yield block
        else:
            yield item
