"""Stream adapter for converting Responses SSE to Messages SSE.

Converts the backend's Responses streaming feed into the Messages streaming
grammar with proper lifecycle events.

Responses events (one JSON object per ``data:`` line):
    data: {"type":"response.created","response":{"id":"resp_1",...}}
    data: {"type":"response.output_text.delta","delta":"Hel"}
    data: {"type":"response.output_text.done"}
    data: {"id":"resp_1","output":[{"type":"function_call","call_id":"c1","name":"f","arguments":"{}"}]}
    data: {"type":"response.reasoning_summary_text.delta","delta":"..."}
    data: {"stop_reason":"stop","usage":{"input_tokens":5,"output_tokens":7}}
    data: [DONE]

Messages events:
    event: message_start
    data: {"type":"message_start","message":{...}}

    event: content_block_start
    data: {"type":"content_block_start","index":0,"content_block":{"type":"text","text":""}}

    event: content_block_delta
    data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Hello"}}

    event: content_block_stop
    data: {"type":"content_block_stop","index":0}

    event: message_delta
    data: {"type":"message_delta","delta":{"stop_reason":"end_turn","stop_sequence":null},"usage":{...}}

    event: message_stop
    data: {"type":"message_stop"}
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Mapping, Optional

from ..core.sse import DONE_SENTINEL, SSELineDecoder, describe_stream_error, format_sse_event
from .content import (
    FUNCTION_CALL,
    OUTPUT_TEXT_TYPES,
    REDACTED_REASONING,
    REASONING_TYPES,
    WEB_SEARCH_CALL,
    WEB_SEARCH_RESULT,
    WEB_SEARCH_TOOL_NAME,
    build_web_search_input,
    get_reasoning_text,
    is_renderable,
    normalize_tool_arguments,
    stringify_tool_result,
    web_search_call_id,
    web_search_result_payload,
)
from .translator import (
    MISSING_USAGE_MESSAGE,
    WebSearchCounter,
    attach_server_tool_use,
    map_finish_reason,
    map_usage,
)

logger = logging.getLogger("o2c-proxy")

OUTPUT_TEXT_DELTA = "response.output_text.delta"
OUTPUT_TEXT_DONE = "response.output_text.done"
OUTPUT_ITEM_DONE = "response.output_item.done"

THINKING_BLOCK_TYPES = ("thinking", "redacted_thinking")


@dataclass
class StreamState:
    """Translation state carried across frames of one stream."""

    message_id: Optional[str] = None
    message_started: bool = False
    next_index: int = 0
    open_index: Optional[int] = None
    open_type: Optional[str] = None
    usage: Optional[dict[str, Any]] = None
    stop_reason: Optional[str] = None
    web_search: WebSearchCounter = field(default_factory=WebSearchCounter)
    # Reasoning items already delivered as deltas, by item id
    streamed_reasoning_ids: set[str] = field(default_factory=set)
    streamed_reasoning_without_id: bool = False
    finalized: bool = False


class ResponsesToMessagesStreamAdapter:
    """Converts a Responses SSE byte stream to Messages SSE events.

    One adapter serves exactly one stream. At most one content block is open
    at any time; every opened block is closed before the next one opens and
    the terminal sequence is emitted exactly once.
    """

    def __init__(self, model: str, message_id: Optional[str] = None):
        """Initialize the stream adapter.

        Args:
            model: Downstream model name reported to the client
            message_id: Id used when no upstream frame supplies one
        """
        self.model = model
        self.fallback_message_id = message_id or f"msg_{uuid.uuid4().hex}"
        self.state = StreamState()
        self._decoder = SSELineDecoder()

    async def adapt_stream(self, upstream: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Transform a Responses stream into Messages SSE events.

        The terminal sequence is emitted on ``[DONE]``, on a trailing partial
        line, on clean end of stream, and when reading the upstream fails.

        Args:
            upstream: Raw bytes of the backend stream

        Yields:
            Messages API SSE events as bytes
        """
        try:
            async for chunk in upstream:
                for payload in self._decoder.feed(chunk):
                    for event in self.process_payload(payload):
                        yield event
                if self.state.finalized:
                    return
            for payload in self._decoder.flush():
                for event in self.process_payload(payload):
                    yield event
        except Exception as exc:
            logger.error(f"[messages] Upstream stream failed: {type(exc).__name__}: {exc}")

        for event in self.finalize():
            yield event

    def process_payload(self, payload: str) -> list[bytes]:
        """Process the text of one ``data:`` line."""
        if self.state.finalized:
            return []
        if payload == DONE_SENTINEL:
            return self.finalize()

        try:
            frame = json.loads(payload)
        except json.JSONDecodeError as exc:
            logger.warning(f"[messages] Failed to parse upstream payload: {payload[:200]!r} ({exc})")
            return []
        if not isinstance(frame, dict):
            logger.warning(f"[messages] Ignoring non-object upstream payload: {payload[:200]!r}")
            return []

        return self.process_frame(frame)

    def process_frame(self, frame: Mapping[str, Any]) -> list[bytes]:
        """Process one parsed Responses frame and return the resulting events."""
        if self.state.finalized:
            return []

        events: list[bytes] = []
        frame_type = frame.get("type")
        frame_type = frame_type if isinstance(frame_type, str) else ""

        error_message = describe_stream_error(frame)
        if error_message:
            logger.error(f"[messages] {error_message}")

        self._capture_message_id(frame)

        if ("reasoning" in frame_type or "redacted" in frame_type) and frame.get("delta"):
            self._handle_reasoning_delta(frame_type, frame["delta"], frame.get("item_id"), events)
            return events

        self._update_stop_and_usage(frame)

        output = self._frame_output(frame)
        for item in output:
            self.state.web_search.record(item)
            if item.get("type") == "message" and isinstance(item.get("content"), list):
                for block in item["content"]:
                    if isinstance(block, Mapping):
                        self.state.web_search.record(block)

        if frame_type == OUTPUT_TEXT_DONE:
            self._close_open_block(events)
            return events

        if frame_type == OUTPUT_TEXT_DELTA and isinstance(frame.get("delta"), str):
            self._handle_text_delta(frame["delta"], events)

        for item in output:
            if item.get("type") == "message":
                content = item.get("content")
                if isinstance(content, list):
                    for block in content:
                        if isinstance(block, Mapping):
                            self._render_block(block, events)
            elif self._consume_streamed_reasoning(item):
                if self.state.open_type in THINKING_BLOCK_TYPES:
                    self._close_open_block(events)
            else:
                self._render_block(item, events)

        return events

    def finalize(self) -> list[bytes]:
        """Emit the terminal sequence; later calls return nothing."""
        if self.state.finalized:
            return []
        self.state.finalized = True

        events: list[bytes] = []
        self._ensure_message_start(events)
        self._close_open_block(events)

        if self.state.usage is None:
            logger.info(MISSING_USAGE_MESSAGE)
        events.append(self._emit_message_delta(self.state.stop_reason, self._usage_snapshot()))
        events.append(self._emit_message_stop())
        return events

    # -------------------------------------------------------------------------
    # Frame inspection
    # -------------------------------------------------------------------------

    @staticmethod
    def _frame_output(frame: Mapping[str, Any]) -> list[Mapping[str, Any]]:
        output = frame.get("output")
        if isinstance(output, list):
            return [item for item in output if isinstance(item, Mapping)]

        item = frame.get("item")
        if frame.get("type") == OUTPUT_ITEM_DONE and isinstance(item, Mapping):
            if item.get("type") != "message":
                return [item]
        return []

    def _update_stop_and_usage(self, frame: Mapping[str, Any]) -> None:
        if "stop_reason" in frame:
            self.state.stop_reason = map_finish_reason(frame["stop_reason"])

        output = frame.get("output")
        if isinstance(output, list):
            for item in output:
                if isinstance(item, Mapping) and "stop_reason" in item:
                    self.state.stop_reason = map_finish_reason(item["stop_reason"])

        usage = frame.get("usage")
        if not isinstance(usage, Mapping):
            response = frame.get("response")
            usage = response.get("usage") if isinstance(response, Mapping) else None
        if isinstance(usage, Mapping):
            self.state.usage = dict(usage)

    def _capture_message_id(self, frame: Mapping[str, Any]) -> None:
        if self.state.message_id:
            return
        message_id = frame.get("id")
        if not message_id:
            response = frame.get("response")
            if isinstance(response, Mapping):
                message_id = response.get("id")
        if isinstance(message_id, str) and message_id:
            self.state.message_id = message_id

    def _consume_streamed_reasoning(self, item: Mapping[str, Any]) -> bool:
        """Whether a standalone reasoning item was already streamed as deltas."""
        item_type = item.get("type")
        if item_type not in REASONING_TYPES and item_type != REDACTED_REASONING:
            return False

        item_id = item.get("id")
        if isinstance(item_id, str) and item_id in self.state.streamed_reasoning_ids:
            self.state.streamed_reasoning_ids.discard(item_id)
            return True
        if self.state.streamed_reasoning_without_id:
            self.state.streamed_reasoning_without_id = False
            return True
        return False

    def _usage_snapshot(self) -> Optional[dict[str, Any]]:
        return attach_server_tool_use(map_usage(self.state.usage), self.state.web_search.count)

    # -------------------------------------------------------------------------
    # Block lifecycle
    # -------------------------------------------------------------------------

    def _ensure_message_start(self, events: list[bytes]) -> None:
        if self.state.message_started:
            return
        self.state.message_started = True
        if not self.state.message_id:
            self.state.message_id = self.fallback_message_id
        events.append(self._emit_message_start())

    def _close_open_block(self, events: list[bytes]) -> None:
        if self.state.open_index is None:
            return
        events.append(self._emit_content_block_stop(self.state.open_index))
        self.state.open_index = None
        self.state.open_type = None

    def _open_block(self, content_block: dict[str, Any], events: list[bytes]) -> int:
        """Close the open block, start a new one and leave it open."""
        self._ensure_message_start(events)
        self._close_open_block(events)
        index = self.state.next_index
        self.state.next_index += 1
        events.append(self._emit_content_block_start(index, content_block))
        self.state.open_index = index
        self.state.open_type = content_block["type"]
        return index

    def _handle_text_delta(self, text: str, events: list[bytes]) -> None:
        if self.state.open_type != "text":
            self._open_block({"type": "text", "text": ""}, events)
        if text:
            events.append(
                self._emit_content_block_delta(
                    self.state.open_index, {"type": "text_delta", "text": text}
                )
            )

    def _handle_reasoning_delta(
        self, frame_type: str, delta: Any, item_id: Any, events: list[bytes]
    ) -> None:
        """Forward a reasoning delta to the open thinking block.

        Unlike other continuations, a reasoning delta arriving while no
        thinking block is open (nothing open, or a text/tool block open)
        deliberately opens a new thinking or redacted thinking block, so the
        delta is never written into a block of another kind.

        The item is remembered so its completed ``output_item.done`` copy is
        not rendered a second time.
        """
        if isinstance(delta, str):
            delta = {"thinking": delta}
        if not isinstance(delta, Mapping):
            return

        if isinstance(item_id, str) and item_id:
            self.state.streamed_reasoning_ids.add(item_id)
        else:
            self.state.streamed_reasoning_without_id = True

        if self.state.open_type not in THINKING_BLOCK_TYPES:
            if "redacted" in frame_type:
                self._open_block({"type": "redacted_thinking", "data": ""}, events)
            else:
                self._open_block({"type": "thinking", "thinking": ""}, events)

        index = self.state.open_index
        if delta.get("thinking"):
            events.append(
                self._emit_content_block_delta(
                    index, {"type": "thinking_delta", "thinking": delta["thinking"]}
                )
            )
        if delta.get("data"):
            events.append(
                self._emit_content_block_delta(
                    index, {"type": "redacted_thinking_delta", "data": delta["data"]}
                )
            )
        if delta.get("signature"):
            events.append(
                self._emit_content_block_delta(
                    index, {"type": "signature_delta", "signature": delta["signature"]}
                )
            )

    def _render_block(self, block: Mapping[str, Any], events: list[bytes]) -> None:
        """Open a block for one renderable output block and emit its payload."""
        if not is_renderable(block):
            return

        block_type = block.get("type")

        if block_type in OUTPUT_TEXT_TYPES:
            index = self._open_block({"type": "text", "text": ""}, events)
            events.append(
                self._emit_content_block_delta(index, {"type": "text_delta", "text": block["text"]})
            )

        elif block_type == FUNCTION_CALL:
            index = self._open_block(
                {"type": "tool_use", "id": block["call_id"], "name": block["name"], "input": {}},
                events,
            )
            self._emit_input_json(index, normalize_tool_arguments(block.get("arguments")), events)

        elif block_type == WEB_SEARCH_CALL:
            index = self._open_block(
                {
                    "type": "tool_use",
                    "id": web_search_call_id(block) or WEB_SEARCH_TOOL_NAME,
                    "name": WEB_SEARCH_TOOL_NAME,
                    "input": {},
                },
                events,
            )
            arguments = block.get("arguments")
            if not (isinstance(arguments, str) and arguments):
                tool_input = build_web_search_input(block)
                arguments = json.dumps(tool_input, ensure_ascii=False) if tool_input else ""
            self._emit_input_json(index, arguments, events)

        elif block_type == WEB_SEARCH_RESULT:
            index = self._open_block(
                {
                    "type": "tool_result",
                    "tool_use_id": web_search_call_id(block) or WEB_SEARCH_TOOL_NAME,
                    "content": "",
                },
                events,
            )
            result_text = stringify_tool_result(web_search_result_payload(block))
            if result_text:
                events.append(
                    self._emit_content_block_delta(index, {"type": "text_delta", "text": result_text})
                )

        elif block_type in REASONING_TYPES:
            logger.debug(f"[reasoning] Streaming {block_type} block: {block}")
            index = self._open_block({"type": "thinking", "thinking": ""}, events)
            thinking = get_reasoning_text(block)
            if thinking:
                events.append(
                    self._emit_content_block_delta(
                        index, {"type": "thinking_delta", "thinking": thinking}
                    )
                )
            self._emit_signature(index, block, events)

        elif block_type == REDACTED_REASONING:
            logger.debug(f"[reasoning] Streaming redacted block: {block}")
            index = self._open_block({"type": "redacted_thinking", "data": ""}, events)
            events.append(
                self._emit_content_block_delta(
                    index, {"type": "redacted_thinking_delta", "data": block["data"]}
                )
            )
            self._emit_signature(index, block, events)

    def _emit_input_json(self, index: int, partial_json: str, events: list[bytes]) -> None:
        if partial_json:
            events.append(
                self._emit_content_block_delta(
                    index, {"type": "input_json_delta", "partial_json": partial_json}
                )
            )

    def _emit_signature(self, index: int, block: Mapping[str, Any], events: list[bytes]) -> None:
        signature = block.get("signature")
        if signature:
            events.append(
                self._emit_content_block_delta(index, {"type": "signature_delta", "signature": signature})
            )

    # -------------------------------------------------------------------------
    # Event encoding
    # -------------------------------------------------------------------------

    def _emit_message_start(self) -> bytes:
        message: dict[str, Any] = {
            "id": self.state.message_id,
            "type": "message",
            "role": "assistant",
            "content": [],
            "model": self.model,
            "stop_reason": None,
            "stop_sequence": None,
        }
        usage = self._usage_snapshot()
        if usage is not None:
            message["usage"] = usage
        return format_sse_event("message_start", {"type": "message_start", "message": message})

    def _emit_content_block_start(self, index: int, content_block: dict[str, Any]) -> bytes:
        event_data = {
            "type": "content_block_start",
            "index": index,
            "content_block": content_block,
        }
        return format_sse_event("content_block_start", event_data)

    def _emit_content_block_delta(self, index: int, delta: dict[str, Any]) -> bytes:
        event_data = {
            "type": "content_block_delta",
            "index": index,
            "delta": delta,
        }
        return format_sse_event("content_block_delta", event_data)

    def _emit_content_block_stop(self, index: int) -> bytes:
        return format_sse_event("content_block_stop", {"type": "content_block_stop", "index": index})

    def _emit_message_delta(
        self, stop_reason: Optional[str], usage: Optional[dict[str, Any]]
    ) -> bytes:
        """Emit the message_delta event.

        Args:
            stop_reason: Final mapped stop reason
            usage: Final usage snapshot, omitted when the backend reported none

        Returns:
            SSE formatted bytes
        """
        event_data: dict[str, Any] = {
            "type": "message_delta",
            "delta": {"stop_reason": stop_reason, "stop_sequence": None},
        }
        if usage is not None:
            event_data["usage"] = usage
        return format_sse_event("message_delta", event_data)

    def _emit_message_stop(self) -> bytes:
        return format_sse_event("message_stop", {"type": "message_stop"})


async def adapt_responses_stream(
    model: str,
    upstream: AsyncIterator[bytes],
    message_id: Optional[str] = None,
) -> AsyncIterator[bytes]:
    """Convenience function to adapt a Responses stream to Messages SSE."""
    adapter = ResponsesToMessagesStreamAdapter(model, message_id=message_id)
    async for event in adapter.adapt_stream(upstream):
        yield event
