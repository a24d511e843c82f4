"""Pydantic models for scraped input, enriched output and batch responses.

Attributes are snake_case in Python and camelCase on the wire, so payloads
produced by the scraper validate as-is and responses keep the same shape.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

Sentiment = Literal["positive", "negative", "neutral"]
ScrapeStatus = Literal["success", "failed"]


class CamelModel(BaseModel):
    """Base model with camelCase aliases."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ScrapedItem(CamelModel):
    """One scraped page as delivered by the scraper."""
    url: str = Field(min_length=1)
    title: str = ""
    content: str
    scraped_at: str = ""
    status: ScrapeStatus = "success"
    id: str | None = None
    domain: str | None = None
    word_count: int | None = Field(default=None, ge=0)
    keywords: list[str] = Field(default_factory=list)
    error: str | None = None
    name: str | None = None
    content_length: int | None = None


class ProcessingOptions(CamelModel):
    """Per-batch switches for the enrichment steps."""
    generate_embeddings: bool = True
    extract_keywords: bool = True
    structure_content: bool = True
    model: str | None = None
    max_tokens: int | None = Field(default=None, gt=0)


class DataPoint(CamelModel):
    """A labelled figure found in the content."""
    label: str
    value: str
    category: str | None = None


class StructuredContent(CamelModel):
    """Schema the text-generation backend has to fill in."""
    title: str = Field(description="Main title or heading of the content")
    summary: str = Field(description="Concise summary of the main content (2-3 sentences)")
    main_topics: list[str] = Field(description="3-5 main topics covered in the content")
    key_insights: list[str] = Field(description="Important insights or key takeaways")
    data_points: list[DataPoint] | None = Field(
        default=None,
        description="Structured data points found in the content (numbers, percentages, dates, etc.)",
    )
    sentiment: Sentiment = Field(description="Overall sentiment of the content")

    @field_validator("data_points", mode="before")
    @classmethod
    def _coerce_data_point_values(cls, v: Any) -> Any:
        # Models often return numbers for `value`; the schema keeps strings.
        if isinstance(v, list):
            return [
                {**dp, "value": str(dp["value"])}
                if isinstance(dp, dict) and "value" in dp and not isinstance(dp["value"], str)
                else dp
                for dp in v
            ]
        return v


class OriginalContent(CamelModel):
    """The scraped text the enriched record was derived from."""
    title: str
    content: str
    word_count: int
    scraped_at: str


class ProcessingMetadata(CamelModel):
    """How and when an item was processed."""
    processed_at: str
    processing_time: int
    model: str
    success: bool
    error: str | None = None


class ProcessedResult(CamelModel):
    """Enriched record for one scraped item (success or degraded)."""
    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    domain: str
    original_content: OriginalContent
    structured: StructuredContent
    keywords: list[str] = Field(default_factory=list)
    embeddings: list[float] | None = None
    processing_metadata: ProcessingMetadata


class ProcessingResponse(CamelModel):
    """Batch-level aggregate returned by the pipeline."""
    success: bool
    timestamp: str
    results_processed: int
    results: list[ProcessedResult]
    execution_time: int
    errors: list[str] | None = None


class ScrapingData(CamelModel):
    """Scraper output: run metadata plus the scraped items."""
    success: bool = True
    timestamp: str = ""
    sites_processed: int = 0
    total_sites_configured: int = 0
    results: list[ScrapedItem]
    execution_time: float = 0

    @model_validator(mode="before")
    @classmethod
    def _unwrap_http_envelope(cls, data: Any) -> Any:
        """Accept the scraper's HTTP envelope ``{statusCode, body}``.

        ``body`` may be the payload itself or its JSON-encoded string.
        """
        if isinstance(data, dict) and "body" in data and "results" not in data:
            body = data["body"]
            if isinstance(body, (str, bytes)):
                try:
                    body = json.loads(body)
                except json.JSONDecodeError as e:
                    raise ValueError(f"scrapingResponse.body is not valid JSON: {e}") from e
            return body
        return data


class ProcessingRequest(CamelModel):
    """Body of ``POST /process``."""
    scraping_response: ScrapingData
    options: ProcessingOptions = Field(default_factory=ProcessingOptions)


class StoredContent(CamelModel):
    """A persisted content record as read back from storage."""
    id: str
    url: str
    domain: str
    original_content: OriginalContent
    structured: StructuredContent
    keywords: list[str] = Field(default_factory=list)
    embeddings: list[float] | None = None
    processed_at: datetime
    processing_time: int
    model: str
    success: bool
    error: str | None = None


class UpdateKeywordsRequest(CamelModel):
    """Body of ``PUT /content/{id}/keywords``."""
    keywords: list[str]
