"""API routes for the proxy."""

from .health import health, public_config
from .messages import messages_endpoint
from .models import list_models

__all__ = [
    "health",
    "list_models",
    "messages_endpoint",
    "public_config",
]
