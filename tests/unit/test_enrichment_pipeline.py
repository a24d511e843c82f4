"""Unit tests for ContentProcessor (the enrichment pipeline).

Tests cover:
- process_item() success path, disabled steps and placeholder content
- process_item() degradation for scraper-failed items and backend failures
- embeddings are only requested after successful structuring
- structuring and keyword extraction run concurrently; the optional timeout
- process_batch() ordering, storage failure isolation and error reporting

All tests use the in-memory FakeBackend / FakeStore from conftest.
"""

from __future__ import annotations

import asyncio
import random

import pytest

from be.identifiers import IdGenerator
from be.pipelines.enrichment import ContentProcessor
from be.schemas import ProcessingOptions, ProcessingRequest
from tests.conftest import EXAMPLE_CONTENT, FakeBackend


# ---------------------------------------------------------------------------
# process_item() success path
# ---------------------------------------------------------------------------


class TestProcessItemSuccess:
    async def test_all_steps_enabled(self, processor, backend, make_item) -> None:
        item = make_item(id="example-1", domain="example.com", word_count=12)

        result = await processor.process_item(item, ProcessingOptions())

        assert result.id == "example-1"
        assert result.processing_metadata.success is True
        assert result.processing_metadata.error is None
        assert result.processing_metadata.model == "gpt-4o-mini"
        assert result.structured == backend.structured
        assert result.keywords == backend.keywords
        assert result.embeddings == backend.vector
        assert result.original_content.word_count == 12
        assert result.original_content.scraped_at == "2025-09-14T19:47:31.632Z"
        assert backend.steps_called().count("embed") == 1

    async def test_generated_id_and_derived_fields(self, processor, make_item) -> None:
        item = make_item(url="https://Example.com/docs?page=1")

        result = await processor.process_item(item)

        assert result.id.startswith("processed_1726343251500_")
        assert len(result.id.rsplit("_", 1)[1]) == 9
        assert result.domain == "example.com"
        assert result.original_content.word_count == 10

    async def test_input_word_count_zero_is_kept(self, processor, make_item) -> None:
        result = await processor.process_item(make_item(word_count=0))

        assert result.original_content.word_count == 0

    async def test_embedding_text_comes_from_structured_content(self, processor, backend, make_item) -> None:
        await processor.process_item(make_item())

        embed_calls = [args for name, args in backend.calls if name == "embed"]
        assert embed_calls[0]["text"].startswith("Title: Example Domain")
        assert backend.structured.summary in embed_calls[0]["text"]

    async def test_embeddings_disabled(self, processor, backend, make_item) -> None:
        result = await processor.process_item(
            make_item(), ProcessingOptions(generate_embeddings=False)
        )

        assert result.processing_metadata.success is True
        assert result.embeddings is None
        assert "embed" not in backend.steps_called()

    async def test_structuring_disabled_uses_placeholder_and_skips_embeddings(
        self, processor, backend, make_item
    ) -> None:
        result = await processor.process_item(
            make_item(), ProcessingOptions(structure_content=False)
        )

        assert result.processing_metadata.success is True
        assert result.structured.summary == "Content from Example Domain"
        assert result.structured.main_topics == []
        assert result.structured.key_insights == []
        assert result.structured.sentiment == "neutral"
        assert result.embeddings is None
        assert backend.steps_called() == ["keywords"]

    async def test_keywords_disabled_falls_back_to_input_keywords(self, processor, backend, make_item) -> None:
        result = await processor.process_item(
            make_item(), ProcessingOptions(extract_keywords=False)
        )

        assert result.keywords == ["example", "domain", "illustrative"]
        assert "keywords" not in backend.steps_called()

    async def test_keywords_disabled_without_input_keywords(self, processor, make_item) -> None:
        result = await processor.process_item(
            make_item(keywords=[]), ProcessingOptions(extract_keywords=False)
        )

        assert result.keywords == []

    async def test_empty_extraction_result_is_kept(self, processor, backend, make_item) -> None:
        backend.keywords = []

        result = await processor.process_item(make_item())

        assert result.keywords == []

    async def test_nothing_enabled(self, processor, backend, make_item) -> None:
        options = ProcessingOptions(
            generate_embeddings=False, extract_keywords=False, structure_content=False
        )

        result = await processor.process_item(make_item(), options)

        assert result.processing_metadata.success is True
        assert backend.calls == []

    async def test_model_and_max_tokens_forwarded(self, processor, backend, make_item) -> None:
        options = ProcessingOptions(model="gpt-4o", max_tokens=512)

        result = await processor.process_item(make_item(), options)

        assert result.processing_metadata.model == "gpt-4o"
        structure_args = dict(backend.calls)["structure"]
        assert structure_args == {"title": "Example Domain", "model": "gpt-4o", "max_tokens": 512}
        assert dict(backend.calls)["keywords"]["model"] == "gpt-4o"

    async def test_malformed_url_still_yields_record(self, processor, make_item) -> None:
        result = await processor.process_item(make_item(url="not a url"))

        assert result.domain == "unknown"
        assert result.processing_metadata.success is True

    async def test_idempotent_except_volatile_fields(self, processor, make_item) -> None:
        item = make_item(id="stable-id")

        first = await processor.process_item(item)
        second = await processor.process_item(item)

        volatile = {"processing_metadata": {"processed_at", "processing_time"}}
        assert first.model_dump(exclude=volatile) == second.model_dump(exclude=volatile)


# ---------------------------------------------------------------------------
# process_item() degraded results
# ---------------------------------------------------------------------------


class TestProcessItemFailure:
    async def test_scrape_failed_item_is_rejected_without_backend_calls(
        self, processor, backend, make_item
    ) -> None:
        item = make_item(status="failed", error="timeout")

        result = await processor.process_item(item)

        assert backend.calls == []
        assert result.processing_metadata.success is False
        assert result.processing_metadata.error == "timeout"
        assert result.structured.summary == "Processing failed"
        assert result.structured.main_topics == []
        assert result.structured.sentiment == "neutral"
        assert result.embeddings is None
        assert result.keywords == ["example", "domain", "illustrative"]
        assert result.id.startswith("error_1726343251500_")

    async def test_scrape_failed_without_error_message(self, processor, make_item) -> None:
        result = await processor.process_item(make_item(status="failed", keywords=[]))

        assert result.processing_metadata.error == "Scraping failed"
        assert result.keywords == []

    async def test_structuring_failure_skips_embeddings(self, processor, backend, make_item) -> None:
        backend.errors["structure"] = RuntimeError("Failed to structure content: bad JSON")

        result = await processor.process_item(make_item())

        assert result.processing_metadata.success is False
        assert result.processing_metadata.error == "Failed to structure content: bad JSON"
        assert result.embeddings is None
        assert "embed" not in backend.steps_called()

    async def test_keyword_failure_degrades_item(self, processor, backend, make_item) -> None:
        backend.errors["keywords"] = RuntimeError("Failed to extract keywords: 500")

        result = await processor.process_item(make_item())

        assert result.processing_metadata.success is False
        assert result.structured.summary == "Processing failed"
        assert result.keywords == ["example", "domain", "illustrative"]
        assert "embed" not in backend.steps_called()

    async def test_embedding_failure_degrades_item(self, processor, backend, make_item) -> None:
        backend.errors["embed"] = RuntimeError("Failed to generate embeddings: quota")

        result = await processor.process_item(make_item())

        assert result.processing_metadata.success is False
        assert result.processing_metadata.error == "Failed to generate embeddings: quota"
        assert result.embeddings is None

    async def test_failure_keeps_traceability(self, processor, backend, make_item) -> None:
        backend.errors["structure"] = RuntimeError("boom")
        item = make_item(id="src-7", domain="docs.example.com", word_count=99)

        result = await processor.process_item(item)

        assert result.id == "src-7"
        assert result.url == item.url
        assert result.domain == "docs.example.com"
        assert result.original_content.word_count == 99
        assert result.original_content.content == EXAMPLE_CONTENT

    async def test_failure_uses_requested_model(self, processor, backend, make_item) -> None:
        backend.errors["structure"] = RuntimeError("boom")

        result = await processor.process_item(make_item(), ProcessingOptions(model="gpt-4o"))

        assert result.processing_metadata.model == "gpt-4o"


# ---------------------------------------------------------------------------
# Concurrency and timeouts
# ---------------------------------------------------------------------------


class TestConcurrency:
    async def test_structuring_and_keywords_overlap(self, store, make_item) -> None:
        keywords_started = asyncio.Event()
        structure_started = asyncio.Event()

        class RendezvousBackend:
            async def structure(self, content, title, *, model=None, max_tokens=None):
                structure_started.set()
                await keywords_started.wait()
                return FakeBackend().structured

            async def extract_keywords(self, content, title, max_keywords=None, *, model=None):
                keywords_started.set()
                await structure_started.wait()
                return ["a"]

            async def embed(self, text):
                return [1.0]

            def embedding_text(self, title, content, structured):
                return title

        processor = ContentProcessor(RendezvousBackend(), store, step_timeout=1.0)

        result = await processor.process_item(make_item())

        assert result.processing_metadata.success is True
        assert result.keywords == ["a"]

    async def test_step_timeout_degrades_item(self, backend, store, make_item) -> None:
        async def never_returns(content, title, *, model=None, max_tokens=None):
            await asyncio.sleep(10)

        backend.structure = never_returns
        processor = ContentProcessor(backend, store, step_timeout=0.01)

        result = await processor.process_item(make_item())

        assert result.processing_metadata.success is False
        assert result.processing_metadata.error == "Enrichment step timed out"


# ---------------------------------------------------------------------------
# process_batch()
# ---------------------------------------------------------------------------


class TestProcessBatch:
    async def test_single_successful_item(self, processor, store, make_item) -> None:
        response = await processor.process_batch([make_item()], ProcessingOptions())

        assert response.success is True
        assert response.results_processed == 1
        assert response.errors is None
        result = response.results[0]
        assert result.processing_metadata.success is True
        assert result.embeddings
        assert result.domain == "example.com"
        assert store.stored_ids == [result.id]

    async def test_scrape_failed_item(self, processor, store, make_item) -> None:
        item = make_item(status="failed", error="timeout")

        response = await processor.process_batch([item])

        assert response.success is True
        assert response.results_processed == 1
        assert response.results[0].processing_metadata.success is False
        assert response.results[0].processing_metadata.error == "timeout"
        assert response.errors == ["https://example.com: timeout"]
        assert store.stored_ids == [response.results[0].id]

    async def test_second_item_backend_failure(self, processor, backend, make_item) -> None:
        first = make_item(url="https://a.example.com/1", title="First")
        second = make_item(url="https://b.example.com/2", title="Second")
        backend.failing_titles.add("Second")

        response = await processor.process_batch([first, second])

        assert response.results_processed == 2
        assert response.results[0].processing_metadata.success is True
        assert response.results[1].processing_metadata.success is False
        assert response.errors == ["https://b.example.com/2: backend unavailable for Second"]

    async def test_results_follow_input_order(self, processor, make_item) -> None:
        items = [make_item(url=f"https://example.com/{i}", title=f"T{i}") for i in range(5)]

        response = await processor.process_batch(items)

        assert len(response.results) == len(items)
        assert [r.url for r in response.results] == [i.url for i in items]

    async def test_items_are_processed_and_stored_sequentially(self, processor, events, make_item) -> None:
        items = [
            make_item(url="https://example.com/1", title="One"),
            make_item(url="https://example.com/2", title="Two"),
        ]

        await processor.process_batch(items, ProcessingOptions(generate_embeddings=False))

        store_first = events.index("store:https://example.com/1")
        assert all(e.endswith("One") for e in events[:store_first])
        assert all(e.endswith("Two") or e.endswith("/2") for e in events[store_first + 1:])

    async def test_storage_failure_is_isolated(self, processor, store, make_item) -> None:
        items = [make_item(url=f"https://example.com/{i}") for i in range(3)]
        store.fail_urls.add("https://example.com/1")

        response = await processor.process_batch(items)

        assert response.results_processed == 3
        assert all(r.processing_metadata.success for r in response.results)
        assert response.errors == [
            "Storage failed for https://example.com/1: Failed to store content: connection refused"
        ]
        assert len(store.stored_ids) == 2

    async def test_storage_error_precedes_item_error(self, processor, store, make_item) -> None:
        item = make_item(status="failed", error="timeout")
        store.fail_urls.add(item.url)

        response = await processor.process_batch([item])

        assert response.errors == [
            "Storage failed for https://example.com: Failed to store content: connection refused",
            "https://example.com: timeout",
        ]

    async def test_every_item_failing_is_still_a_successful_batch(self, processor, make_item) -> None:
        items = [make_item(status="failed", error=f"e{i}") for i in range(3)]

        response = await processor.process_batch(items)

        assert response.success is True
        assert response.results_processed == 3
        assert len(response.errors) == 3

    async def test_empty_batch(self, processor) -> None:
        response = await processor.process_batch([])

        assert response.success is False
        assert response.results_processed == 0
        assert response.results == []
        assert response.errors is None

    async def test_process_request_unwraps_payload(self, processor, make_item) -> None:
        request = ProcessingRequest.model_validate({
            "scrapingResponse": {
                "statusCode": 200,
                "body": {
                    "success": True,
                    "timestamp": "2025-09-14T19:47:31.632Z",
                    "sitesProcessed": 1,
                    "totalSitesConfigured": 1,
                    "results": [make_item().model_dump(by_alias=True)],
                    "executionTime": 1250,
                },
            },
            "options": {"generateEmbeddings": False},
        })

        response = await processor.process_request(request)

        assert response.results_processed == 1
        assert response.results[0].embeddings is None


def test_default_id_generator_is_created() -> None:
    processor = ContentProcessor(backend=object(), store=object())

    assert isinstance(processor.id_generator, IdGenerator)


@pytest.mark.parametrize("seed", [1, 2])
async def test_deterministic_ids_for_same_seed(backend, store, make_item, seed) -> None:
    def build() -> ContentProcessor:
        return ContentProcessor(
            backend, store, id_generator=IdGenerator(clock=lambda: 1.0, rng=random.Random(seed))
        )

    first = await build().process_item(make_item())
    second = await build().process_item(make_item())

    assert first.id == second.id
