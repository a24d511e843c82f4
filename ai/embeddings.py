"""Embedding service for enriched page content.

Vectors come from the OpenAI embeddings endpoint by default. With
``EMBEDDING_PROVIDER=local`` a sentence-transformers model is loaded once and
run on a worker thread instead.
"""
from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import TYPE_CHECKING

import numpy as np
from openai import AsyncOpenAI

from ai.llm import get_client
from be.config import EmbeddingProvider, settings
from be.pipelines.normalization import truncate
from be.schemas import StructuredContent

if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """Raised when embedding computation fails."""
    pass


@lru_cache(maxsize=1)
def _load_model() -> SentenceTransformer:
    """Load and cache the local sentence transformer model.

    Raises:
        EmbeddingError: If sentence-transformers is missing or loading fails
    """
    try:
        from sentence_transformers import SentenceTransformer

        logger.info(
            f"Loading embedding model: {settings.embeddings.local_model_name} "
            f"on device: {settings.embeddings.device}"
        )
        model = SentenceTransformer(
            settings.embeddings.local_model_name,
            device=settings.embeddings.device,
        )
        logger.info(f"Model loaded successfully. Embedding dim: {model.get_sentence_embedding_dimension()}")
        return model
    except Exception as e:
        logger.error(f"Failed to load embedding model: {e}")
        raise EmbeddingError(f"Model loading failed: {e}") from e


def _encode_local(text: str) -> list[float]:
    model = _load_model()
    vector = model.encode(
        [text],
        show_progress_bar=False,
        convert_to_numpy=True,
        normalize_embeddings=settings.embeddings.normalize_embeddings,
    )
    return np.asarray(vector[0], dtype=np.float32).tolist()


async def embed_single(text: str, *, client: AsyncOpenAI | None = None) -> list[float]:
    """Embed one text, truncated to the configured character budget.

    Args:
        text: Text to embed
        client: OpenAI client; the shared client when omitted

    Returns:
        Embedding vector as a list of floats

    Raises:
        EmbeddingError: If the backend call fails or the vector length differs
            from ``EMBEDDING_DIM``
    """
    value = truncate(text, settings.processing.embedding_max_chars)

    try:
        if settings.embeddings.provider == EmbeddingProvider.LOCAL:
            embedding = await asyncio.to_thread(_encode_local, value)
        else:
            client = client or get_client()
            response = await client.embeddings.create(
                model=settings.embeddings.model_name,
                input=[value],
                dimensions=settings.embeddings.dim,
            )
            embedding = list(response.data[0].embedding)
    except Exception as e:
        logger.error(f"Error generating embeddings: {e}")
        raise EmbeddingError(f"Failed to generate embeddings: {e}") from e

    # The vector column is sized by EMBEDDING_DIM.
    if len(embedding) != settings.embeddings.dim:
        logger.error(
            f"Embedding dimension mismatch: got {len(embedding)}, expected {settings.embeddings.dim}"
        )
        raise EmbeddingError(
            f"Failed to generate embeddings: expected {settings.embeddings.dim} dimensions, "
            f"got {len(embedding)}"
        )

    logger.debug(f"Generated embedding (dim: {len(embedding)})")
    return embedding


def create_embedding_text(title: str, content: str, structured: StructuredContent) -> str:
    """Combine title, structured fields and a content excerpt into one text."""
    return "\n\n".join([
        f"Title: {title}",
        f"Summary: {structured.summary}",
        f"Topics: {', '.join(structured.main_topics)}",
        f"Insights: {'. '.join(structured.key_insights)}",
        f"Content: {content[:settings.processing.embedding_content_chars]}",
    ])


def get_model_info() -> dict[str, str | int]:
    """Describe the active embedding configuration."""
    if settings.embeddings.provider == EmbeddingProvider.LOCAL:
        return {
            "provider": EmbeddingProvider.LOCAL.value,
            "model_name": settings.embeddings.local_model_name,
            "device": settings.embeddings.device,
        }
    return {
        "provider": EmbeddingProvider.OPENAI.value,
        "model_name": settings.embeddings.model_name,
        "dimension": settings.embeddings.dim,
    }
