"""Main FastAPI application for the o2c proxy."""

import logging
import socket
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api.routes import health, list_models, messages_endpoint, public_config
from .config_loader import ProxyConfig, build_config
from .core.registry import ProxyContext, set_context
from .core.transport import UpstreamClient
from .logging import setup_logging
from .startup import run_startup_checks

logger = logging.getLogger("o2c-proxy")


async def not_found(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse({"error": "Not found"}, status_code=404)


def create_app(
    config: Optional[ProxyConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Factory function to create the FastAPI application.

    Args:
        config: Resolved configuration; built from the environment when omitted
        transport: Optional httpx transport for the upstream client

    Returns:
        The configured FastAPI application instance.
    """
    if config is None:
        config = build_config()

    setup_logging(config.verbose_logging)

    backend = config.build_backend()
    client = UpstreamClient(backend, transport=transport)
    set_context(ProxyContext(config=config, backend=backend, client=client))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("o2c proxy starting up...")
        logger.info("Configured bind address %s:%s", config.bind_address, config.port)
        if config.bind_address == "0.0.0.0":
            logger.info("Reachable on local network at http://%s:%s", socket.gethostname(), config.port)
        logger.info(f"Upstream provider {backend.name}: {backend.base_url}")
        for mapping in config.model_mappings:
            logger.info(f"  - {mapping.downstream} -> {mapping.upstream}")

        if config.skip_startup_checks:
            logger.info("[startup] Startup checks disabled")
        else:
            await run_startup_checks(config, client)

        logger.info("o2c proxy ready to handle requests")
        yield
        await client.aclose()
        logger.info("Upstream client closed")

    app = FastAPI(title="o2c Proxy", lifespan=lifespan)
    app.add_exception_handler(404, not_found)

    # Register routes
    app.post("/v1/messages")(messages_endpoint)
    app.get("/v1/models")(list_models)
    app.get("/health")(health)
    app.get("/")(public_config)

    logger.info("FastAPI application created")
    return app


__all__ = ["create_app"]
