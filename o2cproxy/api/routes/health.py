"""Health check and public configuration endpoints."""

from ...core.registry import get_context


async def health() -> dict:
    """GET /health"""
    return {"status": "ok"}


async def public_config() -> dict:
    """GET / - the configuration without credentials."""
    return get_context().config.public_config()
