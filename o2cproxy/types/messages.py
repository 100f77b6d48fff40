"""Types for the client-facing Messages API.

Clients speak the Messages dialect: messages carry either a plain string or an
ordered list of typed content blocks, and streaming replies use the
``message_start`` / ``content_block_*`` / ``message_delta`` / ``message_stop``
event grammar.

These are ``TypedDict`` shapes over plain JSON dictionaries; nothing here
validates payloads at runtime.
"""

from typing import Any, Literal, Union
from typing_extensions import TypedDict


# =============================================================================
# Content Blocks
# =============================================================================

class TextBlock(TypedDict):
    """Plain text content."""
    type: Literal["text"]
    text: str


class ToolUseBlock(TypedDict):
    """An invocation the assistant wants performed.

    Attributes:
        id: Call identifier, echoed back by the matching ``tool_result``.
        name: Tool name.
        input: Arbitrary JSON value with the call arguments.
    """
    type: Literal["tool_use"]
    id: str
    name: str
    input: Any


class ToolResultBlock(TypedDict):
    """Result of a prior tool invocation, supplied by the caller."""
    type: Literal["tool_result"]
    tool_use_id: str
    content: str


class ThinkingBlock(TypedDict, total=False):
    """A reasoning trace.

    The signature is an opaque provenance token: passed through when present,
    never generated.
    """
    type: Literal["thinking"]
    thinking: str
    signature: str


class RedactedThinkingBlock(TypedDict, total=False):
    """An encrypted reasoning trace; ``data`` must round-trip byte for byte."""
    type: Literal["redacted_thinking"]
    data: str
    signature: str


class ImageBlock(TypedDict, total=False):
    """Image content. Accepted by the schema, rejected before translation."""
    type: Literal["image"]
    source: dict[str, Any]


ContentBlock = Union[
    TextBlock,
    ToolUseBlock,
    ToolResultBlock,
    ThinkingBlock,
    RedactedThinkingBlock,
    ImageBlock,
]


# =============================================================================
# Requests
# =============================================================================

class Message(TypedDict):
    """One conversation turn. Role alternation is the caller's concern."""
    role: Literal["user", "assistant"]
    content: Union[str, list[ContentBlock]]


class ToolDeclaration(TypedDict, total=False):
    """A tool the model may call.

    The reserved ``web_search`` tool is recognised by name or by ``type`` and
    may carry ``max_results``, ``search_context_size`` and ``user_location``
    directly, in ``metadata``, or as JSON-schema defaults in ``input_schema``.
    """
    name: str
    description: str
    input_schema: dict[str, Any]
    type: str
    metadata: dict[str, Any]
    max_results: int
    search_context_size: str
    user_location: Any


class ThinkingConfig(TypedDict, total=False):
    """Reasoning directive; older clients send ``budget`` instead of ``budget_tokens``."""
    type: Literal["enabled", "disabled"]
    budget_tokens: int
    budget: int


class OutputConfig(TypedDict, total=False):
    """Explicit reasoning effort tier."""
    effort: str


class MessagesRequest(TypedDict, total=False):
    """Body of ``POST /v1/messages``."""
    model: str
    messages: list[Message]
    system: Union[str, list[TextBlock]]
    max_tokens: int
    temperature: float
    top_p: float
    stop_sequences: list[str]
    stream: bool
    tools: list[ToolDeclaration]
    tool_choice: Any
    thinking: ThinkingConfig
    output_config: OutputConfig


# =============================================================================
# Responses
# =============================================================================

class ServerToolUse(TypedDict, total=False):
    """Counters for tools executed by the backend itself."""
    web_search_requests: int


class CacheCreation(TypedDict, total=False):
    ephemeral_1h_input_tokens: int
    ephemeral_5m_input_tokens: int


class Usage(TypedDict, total=False):
    """Token accounting.

    Only counts reported by the backend are ever filled in; absent fields stay
    absent rather than defaulting to zero.
    """
    input_tokens: int
    output_tokens: int
    reasoning_tokens: int
    cache_creation: CacheCreation
    cache_creation_input_tokens: int
    cache_read_input_tokens: int
    server_tool_use: ServerToolUse


StopReason = Literal["end_turn", "max_tokens", "tool_use", "stop_sequence"]
"""Well-known stop reasons. Unknown backend values pass through as plain strings."""


class MessagesResponse(TypedDict, total=False):
    """A complete (non-streaming) reply."""
    id: str
    type: Literal["message"]
    role: Literal["assistant"]
    content: list[ContentBlock]
    model: str
    stop_reason: Union[str, None]
    stop_sequence: None
    usage: Usage


# =============================================================================
# Stream Events
# =============================================================================

StreamEventType = Literal[
    "message_start",
    "content_block_start",
    "content_block_delta",
    "content_block_stop",
    "message_delta",
    "message_stop",
]


class StreamEvent(TypedDict, total=False):
    """One server-sent event payload of a streamed reply.

    Attributes:
        type: Event name, repeated in the SSE ``event:`` line.
        message: Envelope for ``message_start``.
        index: Content block index for ``content_block_*`` events.
        content_block: Empty block skeleton for ``content_block_start``.
        delta: ``text_delta`` / ``input_json_delta`` / ``thinking_delta`` /
            ``redacted_thinking_delta`` / ``signature_delta`` payload, or the
            ``stop_reason``/``usage`` delta of ``message_delta``.
    """
    type: StreamEventType
    message: MessagesResponse
    index: int
    content_block: dict[str, Any]
    delta: dict[str, Any]
