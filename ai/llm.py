"""OpenAI client construction for the enrichment backend.

One ``AsyncOpenAI`` client is shared per process. Retries are disabled:
a failed call surfaces immediately and is handled per item by the pipeline.
"""
from __future__ import annotations

import logging
from functools import lru_cache

from openai import AsyncOpenAI

from be.config import settings

logger = logging.getLogger(__name__)


class BackendNotConfiguredError(Exception):
    """Raised when the text-generation backend has no credentials."""
    pass


def is_configured() -> bool:
    """True when an API key is available for the backend."""
    return bool(settings.enrichment.api_key)


@lru_cache(maxsize=1)
def get_client() -> AsyncOpenAI:
    """Return the shared async OpenAI client.

    Raises:
        BackendNotConfiguredError: If ``OPENAI_API_KEY`` is not set
    """
    if not is_configured():
        raise BackendNotConfiguredError("OPENAI_API_KEY environment variable not set")

    logger.info(
        f"Initializing OpenAI client (model={settings.enrichment.model}, "
        f"embedding_model={settings.embeddings.model_name})"
    )
    return AsyncOpenAI(
        api_key=settings.enrichment.api_key,
        base_url=settings.enrichment.base_url,
        timeout=settings.enrichment.timeout,
        max_retries=0,
    )
