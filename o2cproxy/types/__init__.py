"""Type definitions for both wire dialects."""

from .messages import (
    ContentBlock,
    Message,
    MessagesRequest,
    MessagesResponse,
    RedactedThinkingBlock,
    StreamEvent,
    TextBlock,
    ThinkingBlock,
    ToolDeclaration,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
)
from .responses import (
    InputItem,
    OutputBlock,
    OutputItem,
    ResponseObject,
    ResponseUsage,
    ResponsesRequest,
    StreamFrame,
    Tool,
)

__all__ = [
    "ContentBlock",
    "InputItem",
    "Message",
    "MessagesRequest",
    "MessagesResponse",
    "OutputBlock",
    "OutputItem",
    "RedactedThinkingBlock",
    "ResponseObject",
    "ResponseUsage",
    "ResponsesRequest",
    "StreamEvent",
    "StreamFrame",
    "TextBlock",
    "ThinkingBlock",
    "Tool",
    "ToolDeclaration",
    "ToolResultBlock",
    "ToolUseBlock",
    "Usage",
]
