"""Messages API translation helpers.

Provides translation between the Messages API format spoken by clients and
the Responses API format spoken by the configured backend.
"""

from .translator import (
    DEFAULT_MODEL_LIMITS,
    ModelLimits,
    get_model_limits,
    map_finish_reason,
    messages_to_responses,
    response_to_messages,
)
from .stream_adapter import (
    ResponsesToMessagesStreamAdapter,
    StreamState,
    adapt_responses_stream,
)

__all__ = [
    "DEFAULT_MODEL_LIMITS",
    "ModelLimits",
    "ResponsesToMessagesStreamAdapter",
    "StreamState",
    "adapt_responses_stream",
    "get_model_limits",
    "map_finish_reason",
    "messages_to_responses",
    "response_to_messages",
]
