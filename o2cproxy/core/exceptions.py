"""Core exceptions for the proxy."""

from typing import Optional, Sequence


class ProxyError(Exception):
    """Base exception for proxy errors.

    ``status_code`` and ``error_type`` describe how the error is reported to
    the client.
    """

    status_code = 500
    error_type = "api_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ProxyError):
    """Raised when there's an issue with the configuration."""
    pass


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is invalid."""

    status_code = 400
    error_type = "invalid_request_error"

    def __init__(self, message: str, code: str = "invalid_request") -> None:
        super().__init__(message)
        self.code = code


class ModelNotAllowedError(InvalidRequestError):
    """Raised when the requested model has no configured mapping."""

    def __init__(self, model: str, allowed_models: Sequence[str]) -> None:
        super().__init__(f"Model not allowed: '{model}'", code="model_not_allowed")
        self.model = model
        self.allowed_models = list(allowed_models)


class UnsupportedContentError(InvalidRequestError):
    """Raised when a message carries a content kind that cannot be translated."""

    def __init__(self, block_type: str) -> None:
        super().__init__(
            f"Unsupported content block type: '{block_type}'",
            code="unsupported_content",
        )
        self.block_type = block_type


class MissingCredentialError(ProxyError):
    """Raised when no upstream API key is configured."""

    status_code = 401
    error_type = "authentication_error"


class UpstreamTimeoutError(ProxyError):
    """Raised when the upstream call times out or the connection fails."""

    status_code = 504
    error_type = "timeout_error"

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.details = details


class UpstreamStatusError(ProxyError):
    """Raised when the upstream replies with a non-2xx status.

    The raw body is kept untouched so it can be surfaced to the client as-is.
    """

    error_type = "upstream_error"

    def __init__(
        self,
        status_code: int,
        body: bytes,
        content_type: Optional[str] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(f"Upstream request failed with status {status_code}")
        self.status_code = status_code
        self.body = body
        self.content_type = content_type
        self.retry_after = retry_after

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")
