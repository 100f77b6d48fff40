"""Startup self-checks against the configured upstream.

Both checks only log their findings; a failing check never stops the server.
"""

import json
import logging
from typing import Any, Optional

from .config_loader import ProxyConfig
from .core.exceptions import ProxyError, UpstreamStatusError
from .core.transport import UpstreamClient

logger = logging.getLogger("o2c-proxy")

TOOL_CHOICE_PROBE_PROMPT = "Use web_search to check https://status.openai.com/ availability."


def build_tool_choice_probe(upstream_model: str) -> dict[str, Any]:
    """Minimal request that forces a web_search tool call."""
    return {
        "model": upstream_model,
        "input": [{"role": "user", "content": TOOL_CHOICE_PROBE_PROMPT}],
        "tools": [{"type": "web_search"}],
        "tool_choice": "required",
        "max_output_tokens": 16,
    }


async def check_upstream_models(config: ProxyConfig, client: UpstreamClient) -> Optional[dict[str, Any]]:
    """Compare the mapped upstream models against the backend's model list.

    Returns:
        ``{"provider", "checked", "missing"}``, or None when the check could
        not run.
    """
    if not client.backend.has_api_key:
        logger.info("[startup] Model check skipped: missing upstream API key")
        return None

    try:
        available = set(await client.list_models())
    except UpstreamStatusError as exc:
        logger.info(f"[startup] Model check failed: {exc.status_code} {exc.text}")
        return None
    except ProxyError as exc:
        logger.error(f"[startup] Model check error: {exc.message}")
        return None
    except ValueError as exc:
        logger.error(f"[startup] Model check error: invalid model list: {exc}")
        return None

    checked = [mapping.upstream for mapping in config.model_mappings]
    missing = [name for name in checked if name not in available]
    result = {"provider": config.provider, "checked": checked, "missing": missing}

    log = logger.error if missing else logger.info
    log(f"[startup] Upstream model check: {json.dumps(result, indent=2)}")
    return result


async def check_tool_choice_support(
    config: ProxyConfig, client: UpstreamClient
) -> Optional[dict[str, Any]]:
    """Probe every mapped upstream model with a forced web_search tool choice.

    Returns:
        ``{"provider", "checked", "failing", "results"}``, or None when the
        check could not run.
    """
    if not client.backend.has_api_key:
        logger.info("[startup] Tool choice check skipped: missing upstream API key")
        return None

    results: list[dict[str, Any]] = []
    for mapping in config.model_mappings:
        try:
            await client.create_response(build_tool_choice_probe(mapping.upstream))
        except UpstreamStatusError as exc:
            results.append(
                {"upstream": mapping.upstream, "ok": False, "status": exc.status_code, "error": exc.text}
            )
            continue
        except ProxyError as exc:
            results.append({"upstream": mapping.upstream, "ok": False, "error": exc.message})
            continue
        results.append({"upstream": mapping.upstream, "ok": True, "status": 200})

    failing = [result["upstream"] for result in results if not result["ok"]]
    summary = {
        "provider": config.provider,
        "checked": [result["upstream"] for result in results],
        "failing": failing,
    }

    log = logger.error if failing else logger.info
    log(f"[startup] Tool choice check: {json.dumps(summary, indent=2)}")
    if failing:
        failures = [result for result in results if not result["ok"]]
        logger.error(f"[startup] Tool choice failures: {json.dumps(failures, indent=2)}")

    return {**summary, "results": results}


async def run_startup_checks(config: ProxyConfig, client: UpstreamClient) -> None:
    await check_upstream_models(config, client)
    await check_tool_choice_support(config, client)
