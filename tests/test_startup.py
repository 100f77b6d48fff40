"""Tests for the startup self-checks."""

import logging

import httpx
import pytest

from o2cproxy.config_loader import ModelMapping
from o2cproxy.core.transport import UpstreamClient
from o2cproxy.startup import (
    build_tool_choice_probe,
    check_tool_choice_support,
    check_upstream_models,
    run_startup_checks,
)


def two_models(make_config, **overrides):
    return make_config(
        mappings=[ModelMapping("gpt-5.2-codex", "claude-sonnet"), ModelMapping("gpt-9", "claude-future")],
        max_retries=0,
        **overrides,
    )


def test_tool_choice_probe():
    probe = build_tool_choice_probe("gpt-5-mini")

    assert probe["model"] == "gpt-5-mini"
    assert probe["tools"] == [{"type": "web_search"}]
    assert probe["tool_choice"] == "required"


class TestModelCheck:
    """Tests for comparing mappings with the upstream model list."""

    @pytest.mark.asyncio
    async def test_reports_missing_models(self, make_config, fake_upstream, caplog):
        config = two_models(make_config)
        fake_upstream.queue(200, json={"data": [{"id": "gpt-5.2-codex"}]})
        client = UpstreamClient(config.build_backend(), transport=fake_upstream.transport)

        with caplog.at_level(logging.INFO, logger="o2c-proxy"):
            result = await check_upstream_models(config, client)
        await client.aclose()

        assert result == {"provider": "openai", "checked": ["gpt-5.2-codex", "gpt-9"], "missing": ["gpt-9"]}
        assert any(record.levelno == logging.ERROR for record in caplog.records)

    @pytest.mark.asyncio
    async def test_skipped_without_key(self, make_config, fake_upstream):
        config = two_models(make_config, openai_key="")
        client = UpstreamClient(config.build_backend(), transport=fake_upstream.transport)

        assert await check_upstream_models(config, client) is None
        await client.aclose()

        assert fake_upstream.requests == []

    @pytest.mark.asyncio
    async def test_upstream_failure_is_not_fatal(self, make_config, fake_upstream):
        config = two_models(make_config)
        fake_upstream.queue(401, json={"error": "bad key"})
        client = UpstreamClient(config.build_backend(), transport=fake_upstream.transport)

        assert await check_upstream_models(config, client) is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_invalid_model_list_is_not_fatal(self, make_config, fake_upstream):
        config = two_models(make_config)
        fake_upstream.queue(200, content=b"not json")
        client = UpstreamClient(config.build_backend(), transport=fake_upstream.transport)

        assert await check_upstream_models(config, client) is None
        await client.aclose()


class TestToolChoiceCheck:
    """Tests for the forced tool-choice probe."""

    @pytest.mark.asyncio
    async def test_collects_failures(self, make_config, fake_upstream):
        config = two_models(make_config)
        fake_upstream.queue(200, json={"output": []})
        fake_upstream.queue(400, json={"error": "tool_choice unsupported"})
        client = UpstreamClient(config.build_backend(), transport=fake_upstream.transport)

        result = await check_tool_choice_support(config, client)
        await client.aclose()

        assert result["checked"] == ["gpt-5.2-codex", "gpt-9"]
        assert result["failing"] == ["gpt-9"]
        assert result["results"][0] == {"upstream": "gpt-5.2-codex", "ok": True, "status": 200}
        assert result["results"][1]["status"] == 400
        assert [body["model"] for body in fake_upstream.json_bodies()] == ["gpt-5.2-codex", "gpt-9"]

    @pytest.mark.asyncio
    async def test_timeout_recorded(self, make_config, fake_upstream):
        config = make_config(mappings=[ModelMapping("gpt-5-mini", "fast")])
        fake_upstream.queue_error(httpx.ConnectTimeout("slow"))
        client = UpstreamClient(config.build_backend(), transport=fake_upstream.transport)

        result = await check_tool_choice_support(config, client)
        await client.aclose()

        assert result["failing"] == ["gpt-5-mini"]
        assert result["results"][0]["error"] == "Upstream request timed out"


@pytest.mark.asyncio
async def test_run_startup_checks(make_config, fake_upstream):
    """Both checks run against the backend."""
    config = make_config(mappings=[ModelMapping("gpt-5-mini", "fast")])
    fake_upstream.queue(200, json={"data": [{"id": "gpt-5-mini"}]})
    fake_upstream.queue(200, json={"output": []})
    client = UpstreamClient(config.build_backend(), transport=fake_upstream.transport)

    await run_startup_checks(config, client)
    await client.aclose()

    assert [request.method for request in fake_upstream.requests] == ["GET", "POST"]
