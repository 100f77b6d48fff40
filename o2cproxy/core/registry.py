"""Registry for the per-process proxy context.

Holds the resolved configuration and upstream client so that routes can reach
them without importing the application module.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .backend import Backend
from .transport import UpstreamClient

if TYPE_CHECKING:
    from ..config_loader import ProxyConfig


@dataclass
class ProxyContext:
    config: ProxyConfig
    backend: Backend
    client: UpstreamClient


# Global context instance - set by main.create_app
_context: Optional[ProxyContext] = None


def set_context(context: Optional[ProxyContext]) -> None:
    """Set the global proxy context."""
    global _context
    _context = context


def get_context() -> ProxyContext:
    """Get the global proxy context."""
    if _context is None:
        raise RuntimeError("Proxy context not initialized. Did you call create_app?")
    return _context
