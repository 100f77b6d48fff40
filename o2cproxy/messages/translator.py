"""Messages <-> Responses translation.

This module translates between the Messages API format spoken by clients and
the Responses API format spoken by the configured backend.

Key mappings:
- Messages system (top-level) -> one system input item
- Messages user/assistant turns -> role-tagged input items with flattened
  tool calls and tool results (reasoning blocks are dropped)
- Messages tools -> function tools / the native web_search tool
- thinking budget / output_config.effort -> reasoning.effort
- Responses output items (nested or standalone) -> Messages content blocks
- Responses finish reason and usage -> Messages stop_reason and usage
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from ..types import MessagesResponse, ResponsesRequest
from .content import (
    WEB_SEARCH_TOOL_NAME,
    WEB_SEARCH_TYPES,
    ensure_supported_content,
    flatten_assistant_blocks,
    flatten_tool_results,
    iter_output_blocks,
    text_from_content,
    to_content_block,
    web_search_call_id,
)

logger = logging.getLogger("o2c-proxy")

MIN_OUTPUT_TOKENS = 16

HIGH_EFFORT_BUDGET = 10000
MEDIUM_EFFORT_BUDGET = 5000

FINISH_REASONS = {
    "stop": "end_turn",
    "length": "max_tokens",
    "tool_calls": "tool_use",
}

MISSING_USAGE_MESSAGE = "[messages] Upstream response missing usage; downstream usage may be zero"


@dataclass(frozen=True)
class ModelLimits:
    """Token limits of a downstream model family."""

    context_window: int
    max_input: int
    max_output: int


DEFAULT_MODEL_LIMITS: dict[str, ModelLimits] = {
    "gpt-5.2": ModelLimits(400000, 272000, 128000),
    "gpt-5.2-thinking": ModelLimits(400000, 272000, 128000),
    "gpt-5.3-codex": ModelLimits(400000, 272000, 128000),
    "gpt-5-mini": ModelLimits(400000, 272000, 128000),
    "gpt-5-pro": ModelLimits(1000000, 728000, 272000),
}


def get_model_limits(
    model: str, model_limits: Optional[Mapping[str, ModelLimits]] = None
) -> Optional[ModelLimits]:
    """Limits of the first table key contained in ``model``."""
    table = DEFAULT_MODEL_LIMITS if model_limits is None else model_limits
    for key, limits in table.items():
        if key in model:
            return limits
    return None


# =============================================================================
# Messages -> Responses
# =============================================================================


def _convert_system(system: Any) -> Optional[dict[str, Any]]:
    """Convert the top-level system prompt to one system input item."""
    if isinstance(system, str):
        text = system
    elif isinstance(system, list):
        text = "".join(
            block.get("text") or ""
            for block in system
            if isinstance(block, Mapping)
        )
    else:
        return None

    if not text:
        return None
    return {"role": "system", "content": text}


def _convert_user_message(content: Any) -> Optional[dict[str, Any]]:
    text = text_from_content(content)
    tool_text = flatten_tool_results(content)
    combined = "\n".join(part for part in (text, tool_text) if part)
    if not combined:
        return None
    return {"role": "user", "content": combined}


def _convert_assistant_message(content: Any) -> Optional[dict[str, Any]]:
    if isinstance(content, str):
        return {"role": "assistant", "content": content} if content else None
    if not isinstance(content, list):
        return None

    blocks = [block for block in content if isinstance(block, Mapping)]
    assistant_text = "\n".join(flatten_assistant_blocks(blocks))
    if not assistant_text:
        return None
    return {"role": "assistant", "content": assistant_text}


def _convert_messages(messages: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    for message in messages:
        role = message.get("role")
        content = message.get("content")
        if role == "user":
            item = _convert_user_message(content)
        elif role == "assistant":
            item = _convert_assistant_message(content)
        else:
            logger.warning(f"Skipping message with unsupported role: {role!r}")
            continue
        if item is not None:
            items.append(item)
    return items


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def extract_web_search_config(tool: Mapping[str, Any]) -> dict[str, Any]:
    """Collect web-search options from a tool declaration.

    Sources in priority order: explicit tool field, ``metadata`` object, then
    the JSON-schema property ``default`` and ``const``.
    """
    metadata = tool.get("metadata")
    if not isinstance(metadata, Mapping):
        metadata = {}
    schema = tool.get("input_schema")
    properties = schema.get("properties") if isinstance(schema, Mapping) else None
    if not isinstance(properties, Mapping):
        properties = {}

    config: dict[str, Any] = {}
    for field in ("max_results", "search_context_size", "user_location"):
        prop = properties.get(field)
        if not isinstance(prop, Mapping):
            prop = {}
        value = _first_present(
            tool.get(field),
            metadata.get(field),
            prop.get("default"),
            prop.get("const"),
        )
        if value is not None:
            config[field] = value
    return config


def is_web_search_tool(tool: Mapping[str, Any]) -> bool:
    return tool.get("name") == WEB_SEARCH_TOOL_NAME or tool.get("type") == WEB_SEARCH_TOOL_NAME


def _convert_tools(tools: list[Any]) -> list[dict[str, Any]]:
    """Convert Messages tool declarations to Responses tools.

    Messages: {"name": "...", "description": "...", "input_schema": {...}}
    Responses: {"type": "function", "name": "...", "description": "...", "parameters": {...}}
    """
    converted: list[dict[str, Any]] = []
    for tool in tools:
        if not isinstance(tool, Mapping) or not tool.get("name"):
            logger.info(f"[messages] Filtering out tool without name: {tool!r}")
            continue

        if is_web_search_tool(tool):
            config = extract_web_search_config(tool)
            logger.debug(f"[messages] Mapping web_search tool: {config}")
            converted.append({"type": "web_search", **config})
            continue

        function_tool: dict[str, Any] = {"type": "function", "name": tool["name"]}
        if tool.get("description") is not None:
            function_tool["description"] = tool["description"]
        if tool.get("input_schema") is not None:
            function_tool["parameters"] = tool["input_schema"]
        converted.append(function_tool)
    return converted


def budget_to_effort(budget_tokens: int) -> str:
    """Bucket a thinking token budget into an effort tier."""
    if budget_tokens >= HIGH_EFFORT_BUDGET:
        return "high"
    if budget_tokens >= MEDIUM_EFFORT_BUDGET:
        return "medium"
    return "low"


def _resolve_effort(payload: Mapping[str, Any]) -> Optional[str]:
    output_config = payload.get("output_config")
    if isinstance(output_config, Mapping):
        effort = output_config.get("effort")
        if isinstance(effort, str) and effort:
            return effort

    thinking = payload.get("thinking")
    if isinstance(thinking, Mapping):
        budget = _first_present(thinking.get("budget_tokens"), thinking.get("budget"))
        if isinstance(budget, (int, float)) and not isinstance(budget, bool):
            return budget_to_effort(int(budget))
    return None


def messages_to_responses(payload: Mapping[str, Any], upstream_model: str) -> ResponsesRequest:
    """Translate a Messages request to a Responses request.

    Args:
        payload: Messages API request body
        upstream_model: Backend model name resolved from the model mapping

    Returns:
        Responses API request body

    Raises:
        UnsupportedContentError: If a message carries image content.
    """
    messages = payload.get("messages") or []
    ensure_supported_content(messages)

    input_items: list[dict[str, Any]] = []
    system_item = _convert_system(payload.get("system"))
    if system_item:
        input_items.append(system_item)
    input_items.extend(_convert_messages(messages))

    result: dict[str, Any] = {"model": upstream_model, "input": input_items}

    max_tokens = payload.get("max_tokens")
    if max_tokens is not None:
        result["max_output_tokens"] = max(MIN_OUTPUT_TOKENS, max_tokens)

    for param in ("temperature", "top_p", "stream"):
        if param in payload:
            result[param] = payload[param]

    tools = payload.get("tools")
    if isinstance(tools, list):
        result["tools"] = _convert_tools(tools)

    if "tool_choice" in payload:
        result["tool_choice"] = payload["tool_choice"]

    effort = _resolve_effort(payload)
    if effort:
        logger.debug(f"[reasoning] Requesting reasoning effort {effort!r}")
        result["reasoning"] = {"effort": effort}

    return result


# =============================================================================
# Responses -> Messages
# =============================================================================


def map_finish_reason(reason: Optional[str]) -> Optional[str]:
    """Convert a Responses finish reason to a Messages stop_reason.

    stop -> end_turn, length -> max_tokens, tool_calls -> tool_use; other
    values pass through unchanged and a missing reason stays None.
    """
    if not reason:
        return None
    return FINISH_REASONS.get(reason, reason)


def map_usage(usage: Any) -> Optional[dict[str, Any]]:
    """Convert Responses usage to Messages usage, keeping only reported counts."""
    if not isinstance(usage, Mapping):
        return None
    mapped = {
        "input_tokens": _first_present(usage.get("input_tokens"), usage.get("prompt_tokens")),
        "output_tokens": _first_present(usage.get("output_tokens"), usage.get("completion_tokens")),
        "reasoning_tokens": usage.get("reasoning_tokens"),
    }
    return {key: value for key, value in mapped.items() if value is not None}


def attach_server_tool_use(
    usage: Optional[dict[str, Any]], web_search_requests: int
) -> Optional[dict[str, Any]]:
    """Add the web-search request counter to usage when searches happened."""
    if web_search_requests <= 0:
        return usage
    enriched = dict(usage or {})
    enriched["server_tool_use"] = {"web_search_requests": web_search_requests}
    return enriched


class WebSearchCounter:
    """Counts web-search requests as distinct call ids.

    Items without any id are only counted when no item carries one.
    """

    def __init__(self) -> None:
        self.call_ids: set[str] = set()
        self.anonymous = 0

    def record(self, block: Mapping[str, Any]) -> None:
        if block.get("type") not in WEB_SEARCH_TYPES:
            return
        call_id = web_search_call_id(block)
        if call_id:
            self.call_ids.add(call_id)
        else:
            self.anonymous += 1

    def record_output(self, output: Any) -> None:
        for block in iter_output_blocks(output):
            self.record(block)

    @property
    def count(self) -> int:
        return len(self.call_ids) if self.call_ids else self.anonymous


def count_web_search_requests(output: Any) -> int:
    counter = WebSearchCounter()
    counter.record_output(output)
    return counter.count


def _find_message_item(output: list[Any]) -> Optional[Mapping[str, Any]]:
    for item in output:
        if isinstance(item, Mapping) and item.get("type") == "message":
            return item
    return None


def _convert_output(output: list[Any], message_item: Optional[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Merge message-item content and standalone items into one block list."""
    blocks: list[dict[str, Any]] = []

    nested = message_item.get("content") if message_item else None
    if isinstance(nested, list):
        for block in nested:
            if isinstance(block, Mapping):
                mapped = to_content_block(block)
                if mapped is not None:
                    blocks.append(mapped)

    for item in output:
        if not isinstance(item, Mapping) or item.get("type") == "message":
            continue
        mapped = to_content_block(item)
        if mapped is not None:
            blocks.append(mapped)

    return blocks


def response_to_messages(
    response: Mapping[str, Any],
    model: str,
    model_limits: Optional[Mapping[str, ModelLimits]] = None,
) -> MessagesResponse:
    """Translate a complete Responses reply to a Messages reply.

    Args:
        response: Responses API response body
        model: Downstream model name reported to the client
        model_limits: Token-limit table used to detect silent truncation

    Returns:
        Messages API response body
    """
    output = response.get("output")
    if not isinstance(output, list):
        output = []

    message_item = _find_message_item(output)
    content = _convert_output(output, message_item)

    raw_reason = message_item.get("stop_reason") if message_item else None
    if raw_reason is None:
        raw_reason = response.get("stop_reason")
    stop_reason = map_finish_reason(raw_reason)

    raw_usage = response.get("usage")
    usage = map_usage(raw_usage)

    limits = get_model_limits(model, model_limits)
    output_tokens = (usage or {}).get("output_tokens")
    if limits and isinstance(output_tokens, (int, float)) and output_tokens >= limits.max_output:
        stop_reason = "max_tokens"

    usage = attach_server_tool_use(usage, count_web_search_requests(output))
    if raw_usage is None:
        logger.info(MISSING_USAGE_MESSAGE)

    result: dict[str, Any] = {
        "id": response.get("id", ""),
        "type": "message",
        "role": "assistant",
        "content": content,
        "model": model,
        "stop_reason": stop_reason,
        "stop_sequence": None,
    }
    if usage is not None:
        result["usage"] = usage
    return result
