"""Messages API endpoint backed by a Responses API upstream."""

import json
import logging
import time
import uuid
from typing import Any, AsyncIterator, Mapping, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect

from ...core.exceptions import (
    MissingCredentialError,
    ModelNotAllowedError,
    ProxyError,
    UpstreamStatusError,
    UpstreamTimeoutError,
)
from ...core.registry import get_context
from ...messages import (
    ResponsesToMessagesStreamAdapter,
    messages_to_responses,
    response_to_messages,
)

logger = logging.getLogger("o2c-proxy")


def _anthropic_error_response(
    message: str,
    *,
    error_type: str = "invalid_request_error",
    status_code: int = 400,
    error_code: Optional[str] = None,
    extra: Optional[Mapping[str, Any]] = None,
) -> JSONResponse:
    error: dict[str, Any] = {"type": error_type, "message": message}
    if error_code:
        error["code"] = error_code
    if extra:
        error.update(extra)
    payload = {"type": "error", "error": error}
    return JSONResponse(payload, status_code=status_code)


def _proxy_error_response(exc: ProxyError) -> Response:
    """Convert a proxy exception into the client-facing response."""
    if isinstance(exc, UpstreamStatusError):
        return Response(
            content=exc.body,
            status_code=exc.status_code,
            media_type=exc.content_type or "application/json",
        )

    extra: dict[str, Any] = {}
    if isinstance(exc, ModelNotAllowedError):
        extra["allowed_models"] = exc.allowed_models
    if isinstance(exc, UpstreamTimeoutError) and exc.details:
        extra["details"] = exc.details

    return _anthropic_error_response(
        exc.message,
        error_type=exc.error_type,
        status_code=exc.status_code,
        error_code=getattr(exc, "code", None),
        extra=extra,
    )


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2)


async def messages_endpoint(request: Request) -> Response:
    """POST /v1/messages - Messages API compatible endpoint."""
    # Generate request ID for log correlation
    req_id = uuid.uuid4().hex[:8]
    start_time = time.perf_counter()
    client_host = request.client.host if request.client else "unknown"

    logger.info(f"[{req_id}] Messages API request from {client_host}")

    try:
        body = await request.body()
        payload = json.loads(body or b"{}")
    except ClientDisconnect:
        logger.warning(f"[{req_id}] Client disconnected while sending the request body")
        return Response(status_code=499)  # Client Closed Request
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _anthropic_error_response("Invalid JSON payload", error_code="invalid_json")

    if not isinstance(payload, Mapping):
        return _anthropic_error_response(
            "Request body must be a JSON object",
            error_code="invalid_json_shape",
        )
    if not isinstance(payload.get("messages", []), list):
        return _anthropic_error_response(
            "'messages' must be a list",
            error_code="invalid_parameter",
        )

    ctx = get_context()
    is_stream = bool(payload.get("stream"))

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"[{req_id}] [messages] Downstream request parameters: {_dump(payload)}")

    try:
        mapping = ctx.config.resolve_model(payload.get("model"))
        upstream_payload = messages_to_responses(payload, mapping.upstream)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"[{req_id}] [messages] Upstream request parameters: {_dump(upstream_payload)}")

        if not ctx.backend.has_api_key:
            raise MissingCredentialError("Missing upstream API key")

        if is_stream:
            upstream_stream = await ctx.client.stream_response(upstream_payload)
        else:
            upstream_data = await ctx.client.create_response(upstream_payload)
    except ProxyError as exc:
        elapsed = time.perf_counter() - start_time
        logger.warning(
            f"[{req_id}] Messages request failed after {elapsed:.3f}s: "
            f"status={exc.status_code}, {exc.message}"
        )
        return _proxy_error_response(exc)

    if is_stream:
        elapsed = time.perf_counter() - start_time
        logger.info(
            f"[{req_id}] Starting streaming response for {mapping.downstream} "
            f"(upstream {mapping.upstream}), setup took {elapsed:.3f}s"
        )
        adapter = ResponsesToMessagesStreamAdapter(mapping.downstream)

        async def adapted_stream() -> AsyncIterator[bytes]:
            """Convert the upstream stream, releasing it when the client goes away."""
            try:
                async for event in adapter.adapt_stream(upstream_stream.aiter_bytes()):
                    yield event
            finally:
                await upstream_stream.aclose()

        return StreamingResponse(
            adapted_stream(),
            media_type="text/event-stream",
            headers={"cache-control": "no-cache"},
            background=BackgroundTask(upstream_stream.aclose),
        )

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"[{req_id}] [messages] Upstream response data: {_dump(upstream_data)}")

    messages_response = response_to_messages(
        upstream_data,
        mapping.downstream,
        model_limits=ctx.config.model_limits,
    )

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"[{req_id}] [messages] Downstream response data: {_dump(messages_response)}")

    elapsed = time.perf_counter() - start_time
    logger.info(
        f"[{req_id}] Completed non-streaming response for {mapping.downstream}, "
        f"stop_reason={messages_response.get('stop_reason')}, took {elapsed:.3f}s"
    )
    return JSONResponse(messages_response)
