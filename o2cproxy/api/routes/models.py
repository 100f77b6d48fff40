"""Models listing endpoint."""

import logging

from ...core.registry import get_context

logger = logging.getLogger("o2c-proxy")


async def list_models() -> dict:
    """List the downstream model names clients may request.

    GET /v1/models

    Returns:
        A dictionary containing the list of available models.
    """
    logger.info("Received models list request")

    config = get_context().config
    models = [
        {"id": mapping.downstream, "object": "model"}
        for mapping in config.model_mappings
    ]

    return {
        "object": "list",
        "data": models
    }
