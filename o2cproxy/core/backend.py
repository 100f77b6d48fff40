"""Backend configuration and utilities."""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx

logger = logging.getLogger("o2c-proxy")

DEFAULT_TIMEOUT = 30.0
DEFAULT_STREAM_TIMEOUT = 600.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY = 1.0
MAX_RETRY_DELAY = 30.0

SENSITIVE_HEADERS = {"authorization", "proxy-authorization", "x-api-key"}


@dataclass
class Backend:
    """Represents the configured upstream provider."""

    name: str
    base_url: str
    api_key: str
    timeout: float = DEFAULT_TIMEOUT
    stream_timeout: float = DEFAULT_STREAM_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    def build_url(self, path: str) -> str:
        """Build the full URL for a backend request."""
        base = self.base_url.rstrip("/")
        normalized_path = path or ""
        if not normalized_path.startswith("/"):
            normalized_path = f"/{normalized_path}"
        return f"{base}{normalized_path}"

    def request_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeout)

    def streaming_timeout(self) -> httpx.Timeout:
        """Request budget for connect/write/pool, stream budget between reads."""
        return httpx.Timeout(
            connect=self.timeout,
            read=self.stream_timeout,
            write=self.timeout,
            pool=self.timeout,
        )


def build_outbound_headers(backend_api_key: str, json_body: bool = True) -> dict[str, str]:
    """Build headers for outbound requests to the backend."""
    headers: dict[str, str] = {}
    if json_body:
        headers["Content-Type"] = "application/json"
    if backend_api_key:
        headers["Authorization"] = f"Bearer {backend_api_key}"
    # Explicitly request uncompressed responses
    headers["Accept-Encoding"] = "identity"
    return headers


def safe_headers_for_log(headers: Mapping[str, str]) -> dict[str, str]:
    """Headers with credentials masked."""
    return {
        key: ("***" if key.lower() in SENSITIVE_HEADERS else value)
        for key, value in headers.items()
    }


def format_httpx_error(exc: Any, backend: Backend, url: Optional[str] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    request = None
    try:
        request = exc.request
    except (AttributeError, RuntimeError):
        # httpx raises RuntimeError when no request is attached
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException):
        parts.append(f"timeout={backend.timeout}s")

    return "; ".join(parts)
