"""Enrichment backend contract used by the pipeline.

``EnrichmentBackend`` is what ``ContentProcessor`` depends on;
``AIEnrichmentBackend`` is the production implementation over the ``ai``
package. Tests substitute their own implementation.
"""
from __future__ import annotations

from typing import Protocol

from openai import AsyncOpenAI

from ai.embeddings import create_embedding_text, embed_single
from ai.keywords import extract_keywords
from ai.structuring import structure_content
from be.schemas import StructuredContent


class EnrichmentBackend(Protocol):
    """Structuring, keyword extraction and embeddings for one text."""

    async def structure(
        self,
        content: str,
        title: str,
        *,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> StructuredContent: ...

    async def extract_keywords(
        self,
        content: str,
        title: str,
        max_keywords: int | None = None,
        *,
        model: str | None = None,
    ) -> list[str]: ...

    async def embed(self, text: str) -> list[float]: ...

    def embedding_text(self, title: str, content: str, structured: StructuredContent) -> str: ...


class AIEnrichmentBackend:
    """OpenAI-backed enrichment. Stateless apart from the client handle."""

    def __init__(self, client: AsyncOpenAI | None = None) -> None:
        self._client = client

    async def structure(
        self,
        content: str,
        title: str,
        *,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> StructuredContent:
        return await structure_content(
            content,
            title,
            client=self._client,
            model=model,
            max_tokens=max_tokens,
        )

    async def extract_keywords(
        self,
        content: str,
        title: str,
        max_keywords: int | None = None,
        *,
        model: str | None = None,
    ) -> list[str]:
        return await extract_keywords(
            content,
            title,
            max_keywords,
            client=self._client,
            model=model,
        )

    async def embed(self, text: str) -> list[float]:
        return await embed_single(text, client=self._client)

    def embedding_text(self, title: str, content: str, structured: StructuredContent) -> str:
        return create_embedding_text(title, content, structured)
