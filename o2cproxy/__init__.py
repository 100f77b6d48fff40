"""o2c-proxy - Messages API front end for Responses API backends

Accepts Messages API requests, translates them into Responses API requests
for the configured backend, and translates the replies (including live
event streams) back.

This module provides:
- Request and response translation between the two dialects
- A streaming adapter that rebuilds the Messages event grammar
- An httpx upstream client with timeouts and bounded 429 retries
- A FastAPI application serving /v1/messages

Example:
    >>> from o2cproxy import build_config, create_app
    >>> import uvicorn
    >>> config = build_config()
    >>> uvicorn.run(create_app(config), host=config.bind_address, port=config.port)
"""

from .config_loader import ModelMapping, ProxyConfig, build_config, parse_model_arg
from .core import Backend, ProxyError, UpstreamClient
from .logging import logger, setup_logging
from .main import create_app

__all__ = [
    "Backend",
    "ModelMapping",
    "ProxyConfig",
    "ProxyError",
    "UpstreamClient",
    "build_config",
    "create_app",
    "logger",
    "parse_model_arg",
    "setup_logging",
]
