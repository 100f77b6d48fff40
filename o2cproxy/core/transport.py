"""Outbound HTTP calls to the Responses backend.

``UpstreamClient`` owns one ``httpx.AsyncClient`` for the lifetime of the
application. Non-streaming calls use the request budget; streaming calls use
the request budget to connect and the stream budget between reads. HTTP 429
replies are retried a bounded number of times, every other failure surfaces
immediately.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, AsyncIterator, Callable, Mapping, Optional

import httpx

from .backend import (
    DEFAULT_RETRY_DELAY,
    MAX_RETRY_DELAY,
    Backend,
    build_outbound_headers,
    format_httpx_error,
    safe_headers_for_log,
)
from .exceptions import UpstreamStatusError, UpstreamTimeoutError

logger = logging.getLogger("o2c-proxy")

RATE_LIMITED = 429

_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)s$")


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a ``Retry-After`` header given as delta-seconds or an HTTP date."""
    if not value or not value.strip():
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        seconds = None
    if seconds is not None:
        return seconds if seconds >= 0 else None

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def parse_retry_delay_body(body: bytes) -> Optional[float]:
    """Extract a structured retry delay from an error body.

    Shaped like::

        {"error": {"details": [{"@type": "...RetryInfo", "retryDelay": "8s"}]}}
    """
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if not isinstance(error, dict):
        return None
    details = error.get("details")
    if not isinstance(details, list):
        return None
    for entry in details:
        if not isinstance(entry, dict):
            continue
        delay_raw = entry.get("retryDelay")
        if not isinstance(delay_raw, str):
            continue
        match = _DURATION_RE.match(delay_raw.strip())
        if match:
            return float(match.group(1))
    return None


def compute_retry_delay(headers: Mapping[str, str], body: bytes, attempt: int) -> float:
    """Delay before retrying a rate-limited attempt (0-based ``attempt``)."""
    delay = parse_retry_after(headers.get("retry-after"))
    if delay is None:
        delay = parse_retry_delay_body(body)
    if delay is None:
        delay = DEFAULT_RETRY_DELAY * (2 ** attempt)
    return min(delay, MAX_RETRY_DELAY)


class UpstreamStream:
    """An open streaming reply whose status has already been checked."""

    def __init__(self, response: httpx.Response):
        self.response = response
        self.closed = False

    @property
    def status_code(self) -> int:
        return self.response.status_code

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        async for chunk in self.response.aiter_bytes():
            yield chunk

    async def aclose(self) -> None:
        if self.closed:
            return
        await self.response.aclose()
        self.closed = True
        logger.debug("Closed upstream stream")


class UpstreamClient:
    """HTTP client for the configured Responses backend."""

    def __init__(self, backend: Backend, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.backend = backend
        self._client = httpx.AsyncClient(transport=transport, follow_redirects=True)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def create_response(self, body: Mapping[str, Any]) -> dict[str, Any]:
        """POST a non-streaming request to ``/responses`` and return the parsed body."""
        url = self.backend.build_url("/responses")

        def build() -> httpx.Request:
            return self._client.build_request(
                "POST",
                url,
                headers=build_outbound_headers(self.backend.api_key),
                json=body,
                timeout=self.backend.request_timeout(),
            )

        resp = await self._send_with_retries(build, url, stream=False)
        try:
            data = resp.json()
        except ValueError:
            logger.error(f"Upstream returned a non-JSON body: {resp.text[:200]!r}")
            raise UpstreamStatusError(502, resp.content, resp.headers.get("content-type"))
        if not isinstance(data, dict):
            raise UpstreamStatusError(502, resp.content, resp.headers.get("content-type"))
        return data

    async def stream_response(self, body: Mapping[str, Any]) -> UpstreamStream:
        """POST a streaming request to ``/responses``.

        The status is checked before returning; the caller must ``aclose()``
        the returned stream.
        """
        url = self.backend.build_url("/responses")

        def build() -> httpx.Request:
            return self._client.build_request(
                "POST",
                url,
                headers=build_outbound_headers(self.backend.api_key),
                json=body,
                timeout=self.backend.streaming_timeout(),
            )

        resp = await self._send_with_retries(build, url, stream=True)
        return UpstreamStream(resp)

    async def list_models(self) -> list[str]:
        """Return the model ids the backend advertises at ``/models``."""
        url = self.backend.build_url("/models")

        def build() -> httpx.Request:
            return self._client.build_request(
                "GET",
                url,
                headers=build_outbound_headers(self.backend.api_key, json_body=False),
                timeout=self.backend.request_timeout(),
            )

        resp = await self._send_with_retries(build, url, stream=False)
        data = resp.json()
        entries = data.get("data") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            return []
        return [
            str(entry["id"])
            for entry in entries
            if isinstance(entry, dict) and entry.get("id")
        ]

    async def _send_with_retries(
        self,
        build: Callable[[], httpx.Request],
        url: str,
        stream: bool,
    ) -> httpx.Response:
        attempts = max(0, self.backend.max_retries) + 1

        for attempt in range(attempts):
            request = build()
            logger.debug(f"Attempt {attempt + 1}/{attempts}: {request.method} {url} (stream={stream})")
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("Request headers: %s", safe_headers_for_log(request.headers))

            try:
                resp = await self._client.send(request, stream=stream)
            except httpx.TimeoutException as exc:
                detail = format_httpx_error(exc, self.backend, url=url)
                logger.error(f"Upstream request timed out: {detail}")
                raise UpstreamTimeoutError("Upstream request timed out", details=detail) from exc
            except httpx.TransportError as exc:
                detail = format_httpx_error(exc, self.backend, url=url)
                logger.error(f"Upstream connection failed: {detail}")
                raise UpstreamTimeoutError("Upstream request failed", details=detail) from exc

            if resp.is_success:
                logger.debug(f"Upstream responded with status {resp.status_code}")
                return resp

            try:
                data = await resp.aread()
            finally:
                await resp.aclose()

            if resp.status_code == RATE_LIMITED and attempt + 1 < attempts:
                delay = compute_retry_delay(resp.headers, data, attempt)
                logger.warning(
                    f"Upstream rate limited (attempt {attempt + 1}/{attempts}); retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
                continue

            logger.info(f"Upstream response status: {resp.status_code}")
            logger.info(f"Upstream response body: {data.decode('utf-8', errors='replace')[:2000]}")
            raise UpstreamStatusError(
                resp.status_code,
                data,
                content_type=resp.headers.get("content-type"),
                retry_after=parse_retry_after(resp.headers.get("retry-after")),
            )

        raise UpstreamStatusError(RATE_LIMITED, b"", None)
