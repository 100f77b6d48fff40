"""API module for the proxy."""

from .routes import health, list_models, messages_endpoint, public_config

__all__ = [
    "health",
    "list_models",
    "messages_endpoint",
    "public_config",
]
