"""Keyword extraction with a chat model.

The model answers with one keyword per line; the reply is split, trimmed and
capped. Order is kept as returned and duplicates are not removed here.
"""
from __future__ import annotations

import logging

from openai import AsyncOpenAI

from ai.llm import get_client
from be.config import settings
from be.pipelines.normalization import truncate

logger = logging.getLogger(__name__)

KEYWORD_PROMPT = """Extract {max_keywords} relevant keywords from the following content.
Title: "{title}"

Focus on:
- Technical terms and concepts
- Important entities (companies, people, places)
- Financial/economic terms if present
- Domain-specific terminology

Return only the keywords, one per line, without numbers or bullet points.

Content:
{content}
"""


class KeywordExtractionError(Exception):
    """Raised when keyword extraction fails."""
    pass


def parse_keywords(text: str, max_keywords: int) -> list[str]:
    """Split a one-keyword-per-line reply into a list."""
    keywords = [line.strip() for line in text.split("\n")]
    return [k for k in keywords if k][:max_keywords]


async def extract_keywords(
    content: str,
    title: str,
    max_keywords: int | None = None,
    *,
    client: AsyncOpenAI | None = None,
    model: str | None = None,
) -> list[str]:
    """Extract up to ``max_keywords`` keywords from content.

    Raises:
        KeywordExtractionError: If the backend call fails
    """
    max_keywords = max_keywords or settings.enrichment.max_keywords
    prompt = KEYWORD_PROMPT.format(
        max_keywords=max_keywords,
        title=title,
        content=truncate(content, settings.processing.keyword_max_chars, ellipsis=" ..."),
    )

    try:
        client = client or get_client()
        response = await client.chat.completions.create(
            model=model or settings.enrichment.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=settings.enrichment.temperature,
            max_tokens=settings.enrichment.keyword_max_tokens,
        )
        text = response.choices[0].message.content or ""
    except Exception as e:
        logger.error(f"Error extracting keywords: {e}")
        raise KeywordExtractionError(f"Failed to extract keywords: {e}") from e

    return parse_keywords(text, max_keywords)
