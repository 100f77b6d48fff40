"""Types for the backend Responses API.

The backend speaks an item-oriented dialect: requests carry role-tagged input
items, replies carry an ordered list of output items. Content kinds such as
function calls, web-search calls/results and reasoning traces may appear
either nested inside a ``message`` item's ``content`` or as standalone
top-level items, so both placements share the same block shapes below.
"""

from typing import Any, Literal, Union
from typing_extensions import TypedDict


# =============================================================================
# Role Types
# =============================================================================

Role = Literal["system", "user", "assistant"]
"""Roles accepted on input items."""


# =============================================================================
# Input
# =============================================================================

class InputText(TypedDict):
    """Plain text input content."""
    type: Literal["input_text"]
    text: str


class InputItem(TypedDict):
    """A role-tagged input item.

    Tool calls and tool results are flattened to descriptive text before they
    get here, so input never carries function-call items.
    """
    role: Role
    content: Union[str, list[InputText]]


class FunctionTool(TypedDict, total=False):
    """A function tool definition; ``parameters`` is passed as an opaque schema."""
    type: Literal["function"]
    name: str
    description: str
    parameters: Any


class WebSearchTool(TypedDict, total=False):
    """The backend's native web-search tool."""
    type: Literal["web_search"]
    max_results: int
    search_context_size: str
    user_location: Any


Tool = Union[FunctionTool, WebSearchTool]


class Reasoning(TypedDict, total=False):
    """Reasoning configuration; only ``effort`` is ever sent."""
    effort: str
    summary: str


class ResponsesRequest(TypedDict, total=False):
    """Body of ``POST {base_url}/responses``."""
    model: str
    input: list[InputItem]
    max_output_tokens: int
    temperature: float
    top_p: float
    stream: bool
    tools: list[Tool]
    tool_choice: Any
    reasoning: Reasoning


# =============================================================================
# Output Blocks
# =============================================================================

class OutputText(TypedDict, total=False):
    """Text output content (``text`` is accepted as an alias type)."""
    type: Literal["output_text", "text"]
    text: str


class Refusal(TypedDict):
    """Model refusal content. Not rendered."""
    type: Literal["refusal"]
    refusal: str


class FunctionCall(TypedDict, total=False):
    """A function call. Only rendered when both ``call_id`` and ``name`` exist."""
    type: Literal["function_call"]
    id: str
    call_id: str
    name: str
    arguments: str  # JSON string


class WebSearchCall(TypedDict, total=False):
    """A backend-executed web search.

    Arguments come either as a JSON string in ``arguments`` or as discrete
    ``query``/``max_results``/``search_context_size``/``user_location`` fields.
    """
    type: Literal["web_search_call"]
    id: str
    call_id: str
    arguments: str
    query: str
    max_results: int
    search_context_size: str
    user_location: Any


class WebSearchResult(TypedDict, total=False):
    """Result of a web search; payload is the first of results/content/output/text."""
    type: Literal["web_search_result"]
    id: str
    call_id: str
    results: Any
    content: Any
    output: Any
    text: str


class ReasoningBlock(TypedDict, total=False):
    """A reasoning trace; text is the first non-empty of text/reasoning/summary."""
    type: Literal["reasoning", "output_reasoning"]
    id: str
    text: str
    reasoning: str
    summary: str
    signature: str


class RedactedReasoning(TypedDict, total=False):
    """An encrypted reasoning trace. Only rendered when ``data`` is present."""
    type: Literal["redacted_reasoning"]
    id: str
    data: str
    signature: str


OutputBlock = Union[
    OutputText,
    Refusal,
    FunctionCall,
    WebSearchCall,
    WebSearchResult,
    ReasoningBlock,
    RedactedReasoning,
]


# =============================================================================
# Output Items
# =============================================================================

class MessageItem(TypedDict, total=False):
    """The (at most one) assistant message item of a response."""
    type: Literal["message"]
    id: str
    role: Literal["assistant"]
    content: list[OutputBlock]
    stop_reason: Union[str, None]


OutputItem = Union[
    MessageItem,
    FunctionCall,
    WebSearchCall,
    WebSearchResult,
    ReasoningBlock,
    RedactedReasoning,
]


# =============================================================================
# Response
# =============================================================================

class ResponseUsage(TypedDict, total=False):
    """Token usage. Chat-style ``prompt_tokens``/``completion_tokens`` are accepted too."""
    input_tokens: int
    output_tokens: int
    total_tokens: int
    prompt_tokens: int
    completion_tokens: int
    reasoning_tokens: int


class ResponseObject(TypedDict, total=False):
    """A complete backend reply."""
    id: str
    object: Literal["response"]
    created_at: int
    model: str
    output: list[OutputItem]
    usage: ResponseUsage
    stop_reason: Union[str, None]


class StreamFrame(TypedDict, total=False):
    """One ``data:`` frame of a streamed backend reply.

    The grammar promises nothing beyond "valid JSON"; every field is optional.
    """
    type: str
    id: str
    stop_reason: Union[str, None]
    usage: ResponseUsage
    output: list[OutputItem]
    delta: Any
    response: ResponseObject
