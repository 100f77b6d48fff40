"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import json
from typing import Any, Callable, Optional

import httpx
import pytest

from o2cproxy.config_loader import ModelMapping, ProxyConfig


def parse_sse_events(raw: bytes | str | list[bytes]) -> list[dict[str, Any]]:
    """Parse Messages SSE output into ``{"event", "data"}`` dicts."""
    if isinstance(raw, list):
        raw = b"".join(raw)
    text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
    events = []
    for chunk in text.split("\n\n"):
        lines = [line for line in chunk.split("\n") if line]
        event_line = next((line for line in lines if line.startswith("event: ")), None)
        data_line = next((line for line in lines if line.startswith("data: ")), None)
        if event_line and data_line:
            events.append({
                "event": event_line[len("event: "):],
                "data": json.loads(data_line[len("data: "):]),
            })
    return events


def sse_frames(*frames: Any, done: bool = True) -> bytes:
    """Encode Responses frames as ``data:`` lines."""
    lines = []
    for frame in frames:
        payload = frame if isinstance(frame, str) else json.dumps(frame)
        lines.append(f"data: {payload}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


async def aiter_chunks(chunks: list[bytes]):
    """Helper to create async iterator from list of bytes."""
    for chunk in chunks:
        yield chunk


class FakeUpstream:
    """Scripted Responses backend for ``httpx.MockTransport``.

    Queued responses are returned in order; the last one repeats. Every
    received request is kept in ``requests``.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._responses: list[Callable[[httpx.Request], httpx.Response]] = []

    def queue(self, status_code: int = 200, **kwargs: Any) -> "FakeUpstream":
        self._responses.append(lambda request: httpx.Response(status_code, **kwargs))
        return self

    def queue_handler(self, handler: Callable[[httpx.Request], httpx.Response]) -> "FakeUpstream":
        self._responses.append(handler)
        return self

    def queue_error(self, exc: Exception) -> "FakeUpstream":
        def raise_error(request: httpx.Request) -> httpx.Response:
            raise exc

        self._responses.append(raise_error)
        return self

    def json_bodies(self) -> list[Any]:
        return [json.loads(request.content) for request in self.requests if request.content]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            return httpx.Response(500, json={"error": {"message": "no scripted response"}})
        responder = self._responses[0] if len(self._responses) == 1 else self._responses.pop(0)
        return responder(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def make_config() -> Callable[..., ProxyConfig]:
    """Build a test configuration with an API key and startup checks off."""

    def _make(
        mappings: Optional[list[ModelMapping]] = None,
        **overrides: Any,
    ) -> ProxyConfig:
        values: dict[str, Any] = {
            "openai_key": "sk-test",
            "openai_base_url": "https://upstream.test/v1",
            "skip_startup_checks": True,
            "max_retries": 2,
        }
        if mappings is not None:
            values["model_mappings"] = mappings
        values.update(overrides)
        return ProxyConfig(**values)

    return _make
