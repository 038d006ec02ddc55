"""Tests for the ingestion pipeline."""

import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr
from sqlalchemy import select

from bizscope.config import WebhookSecurityConfig
from bizscope.orm.raw_content import RawContent
from bizscope.security import WebhookSecurityGate
from bizscope.services.content_service import ContentService
from bizscope.services.database import as_utc
from bizscope.services.ingestion_service import (
    DATABASE_WRITE_FAILED,
    INVALID_JSON,
    NO_VALID_CONTENT,
    VALIDATION_FAILED,
    IngestAccepted,
    IngestionPipeline,
    IngestRejected,
    ingestion_health,
)


def make_body(items, platform="twitter", timestamp="2024-01-01T00:00:00Z", **extra) -> str:
    return json.dumps({"platform": platform, "data": items, "timestamp": timestamp, **extra})


async def stored_rows(db_service) -> list[RawContent]:
    async with db_service.session() as session:
        result = await session.execute(select(RawContent).order_by(RawContent.title))
        return list(result.scalars().all())


@pytest.fixture
def pipeline(db_service):
    return IngestionPipeline(ContentService(db_service))


class TestAcceptedBatches:
    async def test_single_item(self, pipeline, db_service):
        result = await pipeline.ingest(make_body([{"title": "T1", "content": "C1", "likesCount": 5}]))

        assert isinstance(result, IngestAccepted)
        assert (result.received, result.processed, result.inserted) == (1, 1, 1)
        assert result.platform == "twitter"
        assert result.timestamp == "2024-01-01T00:00:00Z"

        rows = await stored_rows(db_service)
        assert len(rows) == 1
        assert rows[0].likes_count == 5
        assert rows[0].status == "pending"

    async def test_normalization(self, pipeline, db_service):
        items = [
            {
                "originalUrl": "https://twitter.com/test/status/123",
                "title": "Full",
                "content": "",
                "author": "",
                "publishedAt": "2023-12-31T10:00:00Z",
                "tags": "startup,investing",
            },
            {"title": "Bare"},
        ]
        await pipeline.ingest(make_body(items, timestamp="2024-01-02T03:04:05Z"))

        bare, full = await stored_rows(db_service)
        collected = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        assert full.content is None
        assert full.author is None
        assert full.tags == "startup,investing"
        assert as_utc(full.published_at) == datetime(2023, 12, 31, 10, tzinfo=timezone.utc)
        assert as_utc(full.collected_at) == collected

        assert bare.original_url is None
        assert bare.published_at is None
        assert as_utc(bare.collected_at) == collected
        assert bare.platform == "twitter"

    async def test_status_is_always_pending(self, pipeline, db_service):
        await pipeline.ingest(make_body([{"title": "T", "status": "analyzed"}]))

        rows = await stored_rows(db_service)
        assert rows[0].status == "pending"

    async def test_empty_items_are_filtered(self, pipeline, db_service):
        items = [
            {"title": "Kept"},
            {"author": "EmptyUser", "likesCount": 3},
            {"title": "", "content": ""},
            {"content": "Also kept"},
        ]
        result = await pipeline.ingest(make_body(items))

        assert (result.received, result.processed, result.inserted) == (4, 2, 2)
        rows = await stored_rows(db_service)
        assert all(row.title or row.content for row in rows)

    async def test_duplicate_urls_are_skipped(self, pipeline, db_service):
        body = make_body([{"originalUrl": "https://example.com/a", "title": "A"}])

        first = await pipeline.ingest(body)
        second = await pipeline.ingest(body)

        assert (first.received, first.processed, first.inserted) == (1, 1, 1)
        assert (second.received, second.processed, second.inserted) == (1, 1, 0)
        assert len(await stored_rows(db_service)) == 1

    async def test_duplicate_within_one_batch(self, pipeline):
        items = [
            {"originalUrl": "https://example.com/a", "title": "A"},
            {"originalUrl": "https://example.com/a", "title": "A again"},
            {"title": "No URL"},
            {"title": "No URL"},
        ]
        result = await pipeline.ingest(make_body(items))

        assert (result.received, result.processed, result.inserted) == (4, 4, 3)

    async def test_bytes_body(self, pipeline):
        result = await pipeline.ingest(make_body([{"title": "T"}]).encode("utf-8"))
        assert isinstance(result, IngestAccepted)


class TestChunkedWrites:
    async def test_batch_larger_than_one_chunk(self, db_service):
        pipeline = IngestionPipeline(ContentService(db_service, chunk_size=3))
        items = [{"originalUrl": f"https://example.com/{i}", "title": f"T{i}"} for i in range(7)]
        # repeats a URL from the first chunk inside the third
        items.append({"originalUrl": "https://example.com/0", "title": "again"})

        result = await pipeline.ingest(make_body(items))

        assert (result.received, result.processed, result.inserted) == (8, 8, 7)
        assert len(await stored_rows(db_service)) == 7

    async def test_default_chunk_covers_large_batches(self, db_service):
        pipeline = IngestionPipeline(ContentService(db_service))
        items = [{"title": f"T{i}"} for i in range(1201)]

        result = await pipeline.ingest(make_body(items))

        assert result.inserted == 1201
        assert await ContentService(db_service).count() == 1201

    async def test_rejects_empty_chunk(self, db_service):
        with pytest.raises(ValueError):
            ContentService(db_service, chunk_size=0)


class TestRejectedBatches:
    async def test_invalid_json(self, pipeline, db_service):
        result = await pipeline.ingest("{not json")

        assert isinstance(result, IngestRejected)
        assert result.reason == INVALID_JSON
        assert result.status_code == 400

    async def test_schema_violation(self, pipeline, db_service):
        result = await pipeline.ingest(make_body([{"title": "T", "likesCount": -5}]))

        assert result.reason == VALIDATION_FAILED
        assert result.status_code == 400
        assert result.details[0]["path"] == ["data", "0", "likesCount"]
        assert await stored_rows(db_service) == []

    async def test_non_object_payload(self, pipeline):
        result = await pipeline.ingest("[1, 2, 3]")
        assert result.reason == VALIDATION_FAILED

    async def test_all_items_empty(self, pipeline, db_service):
        result = await pipeline.ingest(make_body([{"author": "EmptyUser"}, {"title": ""}]))

        assert isinstance(result, IngestRejected)
        assert result.reason == NO_VALID_CONTENT
        assert result.status_code == 400
        assert await stored_rows(db_service) == []

    async def test_empty_data_list(self, pipeline):
        result = await pipeline.ingest(make_body([]))
        assert result.reason == NO_VALID_CONTENT

    async def test_database_failure(self):
        content_service = MagicMock()
        content_service.create_many = AsyncMock(side_effect=RuntimeError("connection lost"))
        pipeline = IngestionPipeline(content_service)

        result = await pipeline.ingest(make_body([{"title": "T"}]))

        assert result.reason == DATABASE_WRITE_FAILED
        assert result.status_code == 500
        assert result.is_server_error
        assert result.details is None

    async def test_database_failure_details_in_development(self):
        content_service = MagicMock()
        content_service.create_many = AsyncMock(side_effect=RuntimeError("connection lost"))
        pipeline = IngestionPipeline(content_service, include_error_details=True)

        result = await pipeline.ingest(make_body([{"title": "T"}]))

        assert result.details == "connection lost"

    async def test_database_timeout(self):
        async def stalled(records):
            await asyncio.sleep(5)

        content_service = MagicMock()
        content_service.create_many = stalled
        pipeline = IngestionPipeline(content_service, persist_timeout_seconds=0.05)

        result = await pipeline.ingest(make_body([{"title": "T"}]))

        assert result.reason == DATABASE_WRITE_FAILED
        assert result.status_code == 500


class TestHealth:
    async def test_health_reports_flags(self, db_service):
        gate = WebhookSecurityGate(
            lambda: WebhookSecurityConfig(secret=SecretStr("x"), require_user_agent=True)
        )

        health = await ingestion_health(db_service, gate)

        assert health.database_connected is True
        assert health.secret_configured is True
        assert health.allowlist_configured is False
        assert health.source_required is False
        assert health.user_agent_required is True
        assert health.supported_platforms == ["twitter", "reddit", "hackernews", "producthunt"]

    async def test_health_reports_disconnected_database(self, db_service):
        real_engine = db_service.engine
        db_service.engine = MagicMock()
        db_service.engine.connect.side_effect = RuntimeError("down")
        try:
            health = await ingestion_health(
                db_service, WebhookSecurityGate(lambda: WebhookSecurityConfig())
            )
        finally:
            db_service.engine = real_engine

        assert health.database_connected is False
