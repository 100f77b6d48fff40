"""Tests for the upstream HTTP client."""

import json
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from conftest import FakeUpstream, sse_frames
from o2cproxy.core.backend import Backend, build_outbound_headers, format_httpx_error, safe_headers_for_log
from o2cproxy.core.exceptions import UpstreamStatusError, UpstreamTimeoutError
from o2cproxy.core.transport import (
    UpstreamClient,
    compute_retry_delay,
    parse_retry_after,
    parse_retry_delay_body,
)


def make_backend(**overrides):
    values = {"name": "openai", "base_url": "https://upstream.test/v1/", "api_key": "sk-test"}
    values.update(overrides)
    return Backend(**values)


# =============================================================================
# Backend helpers
# =============================================================================

class TestBackend:
    def test_build_url(self):
        backend = make_backend()
        assert backend.build_url("/responses") == "https://upstream.test/v1/responses"
        assert backend.build_url("models") == "https://upstream.test/v1/models"

    def test_streaming_timeout_uses_stream_budget_for_reads(self):
        timeout = make_backend(timeout=5.0, stream_timeout=60.0).streaming_timeout()
        assert timeout.connect == 5.0
        assert timeout.read == 60.0

    def test_outbound_headers(self):
        headers = build_outbound_headers("sk-test")
        assert headers["Authorization"] == "Bearer sk-test"
        assert headers["Content-Type"] == "application/json"
        assert headers["Accept-Encoding"] == "identity"

    def test_outbound_headers_without_body(self):
        assert "Content-Type" not in build_outbound_headers("sk", json_body=False)

    def test_safe_headers_mask_credentials(self):
        masked = safe_headers_for_log({"Authorization": "Bearer sk", "Accept": "*/*"})
        assert masked == {"Authorization": "***", "Accept": "*/*"}

    def test_format_httpx_error_without_request(self):
        detail = format_httpx_error(httpx.ConnectTimeout("timed out"), make_backend(timeout=3.0), url="https://u")
        assert detail == "ConnectTimeout; timed out; url=https://u; timeout=3.0s"


# =============================================================================
# Retry delay parsing
# =============================================================================

class TestRetryDelay:
    """Tests for Retry-After and structured retry delays."""

    def test_seconds(self):
        assert parse_retry_after("3") == 3.0
        assert parse_retry_after("0") == 0.0

    def test_invalid_values(self):
        assert parse_retry_after(None) is None
        assert parse_retry_after("  ") is None
        assert parse_retry_after("-5") is None
        assert parse_retry_after("soon") is None

    def test_http_date(self):
        when = datetime.now(timezone.utc) + timedelta(seconds=30)
        delay = parse_retry_after(format_datetime(when, usegmt=True))
        assert 0 < delay <= 30

    def test_http_date_in_past(self):
        when = datetime.now(timezone.utc) - timedelta(seconds=30)
        assert parse_retry_after(format_datetime(when, usegmt=True)) == 0.0

    def test_body_retry_delay(self):
        body = json.dumps({"error": {"details": [{"@type": "x"}, {"retryDelay": "8s"}]}}).encode()
        assert parse_retry_delay_body(body) == 8.0

    def test_body_without_delay(self):
        assert parse_retry_delay_body(b"not json") is None
        assert parse_retry_delay_body(b'{"error": "plain"}') is None

    def test_compute_prefers_header(self):
        body = json.dumps({"error": {"details": [{"retryDelay": "8s"}]}}).encode()
        assert compute_retry_delay({"retry-after": "2"}, body, 0) == 2.0
        assert compute_retry_delay({}, body, 0) == 8.0

    def test_compute_backoff_and_cap(self):
        assert compute_retry_delay({}, b"", 0) == 1.0
        assert compute_retry_delay({}, b"", 2) == 4.0
        assert compute_retry_delay({}, b"", 10) == 30.0
        assert compute_retry_delay({"retry-after": "120"}, b"", 0) == 30.0


# =============================================================================
# UpstreamClient
# =============================================================================

class TestUpstreamClient:
    """Tests for requests sent through the mock transport."""

    @pytest.mark.asyncio
    async def test_create_response(self, fake_upstream: FakeUpstream):
        fake_upstream.queue(200, json={"id": "resp_1", "output": []})
        client = UpstreamClient(make_backend(), transport=fake_upstream.transport)

        data = await client.create_response({"model": "m", "input": []})
        await client.aclose()

        request = fake_upstream.requests[0]
        assert data == {"id": "resp_1", "output": []}
        assert request.method == "POST"
        assert str(request.url) == "https://upstream.test/v1/responses"
        assert request.headers["authorization"] == "Bearer sk-test"
        assert fake_upstream.json_bodies() == [{"model": "m", "input": []}]

    @pytest.mark.asyncio
    async def test_non_json_success_body(self, fake_upstream: FakeUpstream):
        fake_upstream.queue(200, content=b"<html>", headers={"content-type": "text/html"})
        client = UpstreamClient(make_backend(), transport=fake_upstream.transport)

        with pytest.raises(UpstreamStatusError) as exc_info:
            await client.create_response({})
        await client.aclose()

        assert exc_info.value.status_code == 502
        assert exc_info.value.body == b"<html>"

    @pytest.mark.asyncio
    async def test_error_status_passthrough(self, fake_upstream: FakeUpstream):
        body = b'{"error":{"message":"bad request"}}'
        fake_upstream.queue(400, content=body, headers={"content-type": "application/json"})
        client = UpstreamClient(make_backend(), transport=fake_upstream.transport)

        with pytest.raises(UpstreamStatusError) as exc_info:
            await client.create_response({})
        await client.aclose()

        assert exc_info.value.status_code == 400
        assert exc_info.value.body == body
        assert exc_info.value.content_type == "application/json"
        assert len(fake_upstream.requests) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_retried(self, fake_upstream: FakeUpstream):
        fake_upstream.queue(429, json={"error": "slow"}, headers={"retry-after": "0"})
        fake_upstream.queue(200, json={"output": []})
        client = UpstreamClient(make_backend(), transport=fake_upstream.transport)

        data = await client.create_response({})
        await client.aclose()

        assert data == {"output": []}
        assert len(fake_upstream.requests) == 2

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self, fake_upstream: FakeUpstream):
        """The last 429 is surfaced once retries run out."""
        fake_upstream.queue(429, json={"error": "slow"}, headers={"retry-after": "0"})
        client = UpstreamClient(make_backend(max_retries=2), transport=fake_upstream.transport)

        with pytest.raises(UpstreamStatusError) as exc_info:
            await client.create_response({})
        await client.aclose()

        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after == 0.0
        assert len(fake_upstream.requests) == 3

    @pytest.mark.asyncio
    async def test_server_error_not_retried(self, fake_upstream: FakeUpstream):
        fake_upstream.queue(503, text="unavailable")
        client = UpstreamClient(make_backend(), transport=fake_upstream.transport)

        with pytest.raises(UpstreamStatusError):
            await client.create_response({})
        await client.aclose()

        assert len(fake_upstream.requests) == 1

    @pytest.mark.asyncio
    async def test_timeout(self, fake_upstream: FakeUpstream):
        fake_upstream.queue_error(httpx.ReadTimeout("read timed out"))
        client = UpstreamClient(make_backend(), transport=fake_upstream.transport)

        with pytest.raises(UpstreamTimeoutError) as exc_info:
            await client.create_response({})
        await client.aclose()

        assert exc_info.value.status_code == 504
        assert "ReadTimeout" in exc_info.value.details

    @pytest.mark.asyncio
    async def test_connection_failure(self, fake_upstream: FakeUpstream):
        fake_upstream.queue_error(httpx.ConnectError("refused"))
        client = UpstreamClient(make_backend(), transport=fake_upstream.transport)

        with pytest.raises(UpstreamTimeoutError) as exc_info:
            await client.create_response({})
        await client.aclose()

        assert exc_info.value.message == "Upstream request failed"

    @pytest.mark.asyncio
    async def test_stream_response(self, fake_upstream: FakeUpstream):
        body = sse_frames({"type": "response.output_text.delta", "delta": "hi"})
        fake_upstream.queue(200, content=body, headers={"content-type": "text/event-stream"})
        client = UpstreamClient(make_backend(), transport=fake_upstream.transport)

        stream = await client.stream_response({"stream": True})
        chunks = [chunk async for chunk in stream.aiter_bytes()]
        await stream.aclose()
        await stream.aclose()
        await client.aclose()

        assert stream.status_code == 200
        assert b"".join(chunks) == body
        assert stream.closed is True

    @pytest.mark.asyncio
    async def test_list_models(self, fake_upstream: FakeUpstream):
        fake_upstream.queue(200, json={"data": [{"id": "gpt-5.2-codex"}, {"id": "gpt-5-mini"}, {}]})
        client = UpstreamClient(make_backend(), transport=fake_upstream.transport)

        models = await client.list_models()
        await client.aclose()

        assert models == ["gpt-5.2-codex", "gpt-5-mini"]
        assert fake_upstream.requests[0].method == "GET"
        assert str(fake_upstream.requests[0].url).endswith("/models")
