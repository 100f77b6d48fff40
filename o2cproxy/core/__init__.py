"""Core module initialization."""

from .backend import Backend, build_outbound_headers, format_httpx_error
from .exceptions import (
    ConfigurationError,
    InvalidRequestError,
    MissingCredentialError,
    ModelNotAllowedError,
    ProxyError,
    UnsupportedContentError,
    UpstreamStatusError,
    UpstreamTimeoutError,
)
from .sse import SSELineDecoder, describe_stream_error, format_sse_event
from .transport import UpstreamClient, UpstreamStream

__all__ = [
    "Backend",
    "ConfigurationError",
    "InvalidRequestError",
    "MissingCredentialError",
    "ModelNotAllowedError",
    "ProxyError",
    "SSELineDecoder",
    "UnsupportedContentError",
    "UpstreamClient",
    "UpstreamStatusError",
    "UpstreamStream",
    "UpstreamTimeoutError",
    "build_outbound_headers",
    "describe_stream_error",
    "format_httpx_error",
    "format_sse_event",
]
