"""Enrichment pipeline orchestration for scraped pages.

Per item:
1. Reject items the scraper marked as failed (no backend calls)
2. Structure content and extract keywords, concurrently
3. Embed the structured text (only if structuring produced content)
4. Assemble a ProcessedResult

Any failure in steps 2-3 degrades the item to a placeholder record instead of
raising. Batches run items strictly one after another and persist each result
before the next item starts.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, TypeVar

from be.config import settings
from be.enrichment import EnrichmentBackend
from be.identifiers import IdGenerator
from be.repository import ContentStore
from be.schemas import (
    OriginalContent,
    ProcessedResult,
    ProcessingMetadata,
    ProcessingOptions,
    ProcessingRequest,
    ProcessingResponse,
    ScrapedItem,
    StructuredContent,
)

from .normalization import count_words, extract_domain

logger = logging.getLogger(__name__)

T = TypeVar("T")

FAILED_SUMMARY = "Processing failed"
DEFAULT_SCRAPE_ERROR = "Scraping failed"


class ScrapeFailedError(Exception):
    """The scraper already marked the item as failed."""
    pass


@dataclass
class EnrichmentSlots:
    """Outputs of the enrichment steps for one item; a slot stays None if its step did not run."""
    structured: StructuredContent | None = None
    keywords: list[str] | None = None
    embeddings: list[float] | None = None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "Enrichment step timed out"
    return str(exc) or exc.__class__.__name__


def placeholder_structure(title: str, summary: str) -> StructuredContent:
    """Minimal structured content used when nothing was derived."""
    return StructuredContent(
        title=title,
        summary=summary,
        main_topics=[],
        key_insights=[],
        sentiment="neutral",
    )


class ContentProcessor:
    """Drives enrichment and persistence for batches of scraped items."""

    def __init__(
        self,
        backend: EnrichmentBackend,
        store: ContentStore,
        *,
        id_generator: IdGenerator | None = None,
        default_model: str | None = None,
        step_timeout: float | None = None,
    ) -> None:
        self.backend = backend
        self.store = store
        self.id_generator = id_generator or IdGenerator()
        self.default_model = default_model or settings.enrichment.model
        self.step_timeout = step_timeout if step_timeout is not None else settings.processing.step_timeout

    async def _call(self, awaitable: Awaitable[T]) -> T:
        if self.step_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.step_timeout)

    def _original_content(self, item: ScrapedItem) -> OriginalContent:
        word_count = item.word_count if item.word_count is not None else count_words(item.content)
        return OriginalContent(
            title=item.title,
            content=item.content,
            word_count=word_count,
            scraped_at=item.scraped_at,
        )

    async def _enrich(self, item: ScrapedItem, options: ProcessingOptions, model: str) -> EnrichmentSlots:
        slots = EnrichmentSlots()

        structure_task = None
        keywords_task = None
        if options.structure_content:
            structure_task = self._call(
                self.backend.structure(
                    item.content,
                    item.title,
                    model=model,
                    max_tokens=options.max_tokens,
                )
            )
        if options.extract_keywords:
            keywords_task = self._call(
                self.backend.extract_keywords(item.content, item.title, model=model)
            )

        pending = [task for task in (structure_task, keywords_task) if task is not None]
        if pending:
            # Both calls run to completion before the first error is raised.
            outcomes = await asyncio.gather(*pending, return_exceptions=True)
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome
            outcome_iter = iter(outcomes)
            if structure_task is not None:
                slots.structured = next(outcome_iter)
            if keywords_task is not None:
                slots.keywords = next(outcome_iter)

        if options.generate_embeddings and slots.structured is not None:
            text = self.backend.embedding_text(item.title, item.content, slots.structured)
            slots.embeddings = await self._call(self.backend.embed(text))

        return slots

    async def process_item(
        self,
        item: ScrapedItem,
        options: ProcessingOptions | None = None,
    ) -> ProcessedResult:
        """Enrich one scraped item. Never raises; failures are recorded in the result."""
        start = time.perf_counter()
        options = options or ProcessingOptions()
        model = options.model or self.default_model

        try:
            if item.status == "failed":
                raise ScrapeFailedError(item.error or DEFAULT_SCRAPE_ERROR)

            slots = await self._enrich(item, options, model)

            if slots.keywords is not None:
                keywords = slots.keywords
            else:
                keywords = item.keywords or []

            result = ProcessedResult(
                id=item.id or self.id_generator.success_id(),
                url=item.url,
                domain=item.domain or extract_domain(item.url),
                original_content=self._original_content(item),
                structured=slots.structured or placeholder_structure(item.title, f"Content from {item.title}"),
                keywords=keywords,
                embeddings=slots.embeddings,
                processing_metadata=ProcessingMetadata(
                    processed_at=_now_iso(),
                    processing_time=_elapsed_ms(start),
                    model=model,
                    success=True,
                ),
            )
            logger.info(f"Processed {item.url} in {result.processing_metadata.processing_time}ms")
            return result

        except Exception as e:
            message = _error_message(e)
            logger.error(f"Error processing result for {item.url}: {message}")
            return ProcessedResult(
                id=item.id or self.id_generator.failure_id(),
                url=item.url,
                domain=item.domain or extract_domain(item.url),
                original_content=self._original_content(item),
                structured=placeholder_structure(item.title, FAILED_SUMMARY),
                keywords=item.keywords or [],
                embeddings=None,
                processing_metadata=ProcessingMetadata(
                    processed_at=_now_iso(),
                    processing_time=_elapsed_ms(start),
                    model=model,
                    success=False,
                    error=message,
                ),
            )

    async def process_batch(
        self,
        items: list[ScrapedItem],
        options: ProcessingOptions | None = None,
    ) -> ProcessingResponse:
        """Process items one at a time, persisting each before the next starts.

        Storage failures and item failures are collected in ``errors``; neither
        removes an item from ``results`` or stops the batch.
        """
        start = time.perf_counter()
        options = options or ProcessingOptions()
        logger.info(f"Processing {len(items)} scraped results")

        results: list[ProcessedResult] = []
        errors: list[str] = []

        for item in items:
            processed = await self.process_item(item, options)
            results.append(processed)

            try:
                await self.store.store(processed)
                logger.info(f"Successfully stored processed result for {processed.url}")
            except Exception as e:
                logger.error(f"Failed to store result for {processed.url}: {e}")
                errors.append(f"Storage failed for {processed.url}: {_error_message(e)}")

            meta = processed.processing_metadata
            if not meta.success and meta.error:
                errors.append(f"{item.url}: {meta.error}")

        response = ProcessingResponse(
            success=len(results) > 0,
            timestamp=_now_iso(),
            results_processed=len(results),
            results=results,
            execution_time=_elapsed_ms(start),
            errors=errors or None,
        )
        logger.info(
            f"Batch complete: {response.results_processed} results, "
            f"{len(errors)} errors, {response.execution_time}ms"
        )
        return response

    async def process_request(self, request: ProcessingRequest) -> ProcessingResponse:
        """Run a batch from a validated ``POST /process`` body."""
        return await self.process_batch(request.scraping_response.results, request.options)
