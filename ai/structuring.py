"""Turn raw scraped text into ``StructuredContent`` with a chat model.

The model is asked for a JSON object matching the ``StructuredContent``
schema; its reply is validated before it leaves this module.
"""
from __future__ import annotations

import json
import logging

from openai import AsyncOpenAI

from ai.llm import get_client
from be.config import settings
from be.pipelines.normalization import truncate
from be.schemas import StructuredContent

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You analyze scraped web pages and return a single JSON object that "
    "conforms to the JSON schema you are given. Return JSON only."
)

STRUCTURE_PROMPT = """Analyze and structure the following scraped web content.
The content appears to be from: "{title}"

Extract key information and organize it according to the schema.
Focus on:
- Financial/economic data if present
- Key statistics and metrics
- Important dates and figures
- Main topics and themes

JSON schema:
{schema}

Content to analyze:
{content}
"""


class StructuringError(Exception):
    """Raised when content structuring fails."""
    pass


def build_prompt(content: str, title: str) -> str:
    """Render the structuring prompt with a bounded content excerpt."""
    excerpt = truncate(content, settings.processing.structure_max_chars, ellipsis=" ...")
    schema = json.dumps(StructuredContent.model_json_schema(by_alias=True), indent=2)
    return STRUCTURE_PROMPT.format(title=title, schema=schema, content=excerpt)


async def structure_content(
    content: str,
    title: str,
    *,
    client: AsyncOpenAI | None = None,
    model: str | None = None,
    max_tokens: int | None = None,
) -> StructuredContent:
    """Structure raw content into summary, topics, insights and data points.

    Args:
        content: Raw page text (only a bounded prefix is sent)
        title: Page title used as a hint
        client: OpenAI client; the shared client when omitted
        model: Chat model; ``settings.enrichment.model`` when omitted
        max_tokens: Optional cap on the completion length

    Returns:
        Validated StructuredContent

    Raises:
        StructuringError: On backend errors or a reply that fails validation
    """
    model = model or settings.enrichment.model
    request_args: dict = {}
    if max_tokens:
        request_args["max_tokens"] = max_tokens

    try:
        client = client or get_client()
        response = await client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(content, title)},
            ],
            response_format={"type": "json_object"},
            temperature=settings.enrichment.temperature,
            **request_args,
        )
        raw = response.choices[0].message.content or ""
        structured = StructuredContent.model_validate_json(raw)
    except Exception as e:
        logger.error(f"Error structuring content: {e}")
        raise StructuringError(f"Failed to structure content: {e}") from e

    logger.debug(
        f"Structured content '{title[:80]}': {len(structured.main_topics)} topics, "
        f"{len(structured.key_insights)} insights"
    )
    return structured
