"""Storage gateway for processed content.

``ContentStore`` is the contract the pipeline and the API depend on;
``ContentRepository`` implements it on top of an async SQLAlchemy session
factory.

Read paths (and ``delete`` / ``update_keywords``) never raise: on a database
error they log and return an empty result. Callers must read "empty" as
"not found or transient error", not as proof that no record exists.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import ContentRecord
from .schemas import ProcessedResult, StoredContent

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a processed result cannot be persisted."""
    pass


class ContentStore(Protocol):
    """Durable storage of one record per processed item."""

    async def store(self, result: ProcessedResult) -> StoredContent: ...

    async def store_many(self, results: list[ProcessedResult]) -> list[StoredContent]: ...

    async def get_by_id(self, record_id: str) -> StoredContent | None: ...

    async def get_by_domain(self, domain: str, limit: int | None = None) -> list[StoredContent]: ...

    async def get_by_url(self, url: str) -> list[StoredContent]: ...

    async def exists(self, url: str) -> bool: ...

    async def delete(self, record_id: str) -> bool: ...

    async def update_keywords(self, record_id: str, keywords: list[str]) -> StoredContent | None: ...


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_record(result: ProcessedResult) -> ContentRecord:
    """Map a ProcessedResult onto a table row."""
    meta = result.processing_metadata
    return ContentRecord(
        id=result.id,
        url=result.url,
        domain=result.domain,
        original_content=result.original_content.model_dump(by_alias=True),
        structured=result.structured.model_dump(by_alias=True, exclude_none=True),
        keywords=list(result.keywords),
        embedding=result.embeddings,
        processed_at=_parse_timestamp(meta.processed_at),
        processing_time=meta.processing_time,
        model=meta.model,
        success=meta.success,
        error=meta.error,
    )


def to_stored(record: ContentRecord) -> StoredContent:
    """Map a table row onto the StoredContent schema."""
    embedding = None
    if record.embedding is not None:
        embedding = [float(x) for x in record.embedding]
    return StoredContent(
        id=record.id,
        url=record.url,
        domain=record.domain,
        original_content=record.original_content,
        structured=record.structured,
        keywords=list(record.keywords or []),
        embeddings=embedding,
        processed_at=record.processed_at,
        processing_time=record.processing_time,
        model=record.model,
        success=record.success,
        error=record.error,
    )


class ContentRepository:
    """SQLAlchemy-backed ``ContentStore``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def store(self, result: ProcessedResult) -> StoredContent:
        """Upsert a processed result keyed by its id.

        Raises:
            StorageError: If the write fails
        """
        async with self._session_factory() as session:
            try:
                record = await session.merge(to_record(result))
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error(f"Failed to store content item {result.id}: {e}")
                raise StorageError(f"Failed to store content: {e}") from e

        logger.info(f"Stored content item: {result.id}")
        return to_stored(record)

    async def store_many(self, results: list[ProcessedResult]) -> list[StoredContent]:
        """Store each result independently; failures are logged and skipped."""
        stored: list[StoredContent] = []
        for result in results:
            try:
                stored.append(await self.store(result))
            except StorageError as e:
                logger.warning(f"Skipping item {result.id}: {e}")

        logger.info(f"Stored {len(stored)}/{len(results)} content items")
        return stored

    async def get_by_id(self, record_id: str) -> StoredContent | None:
        try:
            async with self._session_factory() as session:
                record = await session.get(ContentRecord, record_id)
                return to_stored(record) if record is not None else None
        except Exception as e:
            logger.error(f"Failed to retrieve content item {record_id}: {e}")
            return None

    async def get_by_domain(self, domain: str, limit: int | None = None) -> list[StoredContent]:
        """Records for a domain, most recently processed first."""
        query = (
            select(ContentRecord)
            .where(ContentRecord.domain == domain)
            .order_by(ContentRecord.processed_at.desc())
        )
        if limit is not None:
            query = query.limit(limit)

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return [to_stored(r) for r in result.scalars().all()]
        except Exception as e:
            logger.error(f"Failed to retrieve content items for domain {domain}: {e}")
            return []

    async def get_by_url(self, url: str) -> list[StoredContent]:
        """Records for a URL, most recently processed first."""
        query = (
            select(ContentRecord)
            .where(ContentRecord.url == url)
            .order_by(ContentRecord.processed_at.desc())
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return [to_stored(r) for r in result.scalars().all()]
        except Exception as e:
            logger.error(f"Failed to retrieve content items for URL {url}: {e}")
            return []

    async def exists(self, url: str) -> bool:
        items = await self.get_by_url(url)
        return len(items) > 0

    async def delete(self, record_id: str) -> bool:
        """Delete a record. True when the delete went through, even if nothing matched."""
        try:
            async with self._session_factory() as session:
                record = await session.get(ContentRecord, record_id)
                if record is not None:
                    await session.delete(record)
                    await session.commit()
        except Exception as e:
            logger.error(f"Failed to delete content item {record_id}: {e}")
            return False

        logger.info(f"Deleted content item: {record_id}")
        return True

    async def update_keywords(self, record_id: str, keywords: list[str]) -> StoredContent | None:
        try:
            async with self._session_factory() as session:
                record = await session.get(ContentRecord, record_id)
                if record is None:
                    return None
                record.keywords = list(keywords)
                await session.commit()
                updated = to_stored(record)
        except Exception as e:
            logger.error(f"Failed to update keywords for content item {record_id}: {e}")
            return None

        logger.info(f"Updated keywords for content item: {record_id}")
        return updated
