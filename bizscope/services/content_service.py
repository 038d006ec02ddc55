"""Service for persisting ingested content."""

import logging
from typing import Sequence

from sqlalchemy import func, select

from ..orm.base import new_id
from ..orm.raw_content import RawContent
from ..schemas import RawContentRecord
from .database import DatabaseService

logger = logging.getLogger(__name__)

# 14 columns per row keeps a chunk well under asyncpg's 32767 bind parameters
INSERT_CHUNK_SIZE = 500


class ContentService:
    """Bulk writes and aggregate reads over raw content."""

    def __init__(self, db_service: DatabaseService, chunk_size: int = INSERT_CHUNK_SIZE):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.db_service = db_service
        self.chunk_size = chunk_size

    async def create_many(self, records: Sequence[RawContentRecord]) -> int:
        """Insert records in one transaction, skipping duplicate URLs.

        Rows are written in chunks of ``chunk_size`` per statement.

        Returns:
            Number of rows actually inserted.
        """
        if not records:
            return 0

        rows = [
            {
                "id": new_id(),
                "platform": record.platform.value,
                "original_url": record.original_url,
                "title": record.title,
                "content": record.content,
                "author": record.author,
                "published_at": record.published_at,
                "collected_at": record.collected_at,
                "likes_count": record.likes_count,
                "shares_count": record.shares_count,
                "comments_count": record.comments_count,
                "view_count": record.view_count,
                "tags": record.tags,
                "status": record.status.value,
            }
            for record in records
        ]

        inserted = 0
        async with self.db_service.session() as session:
            for start in range(0, len(rows), self.chunk_size):
                stmt = (
                    self.db_service.insert(RawContent)
                    .values(rows[start : start + self.chunk_size])
                    .on_conflict_do_nothing()
                    .returning(RawContent.id)
                )
                result = await session.execute(stmt)
                inserted += len(result.scalars().all())
            await session.commit()

        logger.debug("Inserted %d of %d content rows", inserted, len(rows))
        return inserted

    async def count(self) -> int:
        async with self.db_service.session() as session:
            result = await session.execute(select(func.count(RawContent.id)))
            return result.scalar_one()

    async def count_by_platform_and_status(self) -> list[tuple[str, str, int]]:
        """Row counts grouped by platform and status."""
        async with self.db_service.session() as session:
            result = await session.execute(
                select(RawContent.platform, RawContent.status, func.count(RawContent.id))
                .group_by(RawContent.platform, RawContent.status)
                .order_by(RawContent.platform, RawContent.status)
            )
            return [(platform, status, count) for platform, status, count in result.all()]
