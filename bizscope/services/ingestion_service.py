"""Webhook content ingestion pipeline.

A batch moves through parse -> validate -> normalize -> filter -> persist.
Every stage before persist is pure; the first failing stage ends the run
with a rejection and nothing is written.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from pydantic import ValidationError

from ..schemas import (
    SUPPORTED_PLATFORMS,
    ContentStatus,
    RawContentRecord,
    WebhookBatch,
    format_validation_errors,
    parse_iso_datetime,
)
from ..security import WebhookSecurityGate, request_signature
from .content_service import ContentService
from .database import DatabaseService

logger = logging.getLogger(__name__)

INVALID_JSON = "invalid JSON format"
VALIDATION_FAILED = "data format validation failed"
NO_VALID_CONTENT = "no valid content data"
DATABASE_WRITE_FAILED = "database write failed"


@dataclass(frozen=True)
class IngestAccepted:
    platform: str
    received: int
    processed: int
    inserted: int
    timestamp: str
    processing_time_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform,
            "received": self.received,
            "processed": self.processed,
            "inserted": self.inserted,
            "timestamp": self.timestamp,
            "processingTime": self.processing_time_ms,
        }


@dataclass(frozen=True)
class IngestRejected:
    reason: str
    status_code: int = 400
    details: Optional[Any] = None

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


IngestResult = Union[IngestAccepted, IngestRejected]


@dataclass(frozen=True)
class IngestionHealth:
    database_connected: bool
    secret_configured: bool
    allowlist_configured: bool
    source_required: bool
    user_agent_required: bool
    supported_platforms: list[str] = field(default_factory=lambda: list(SUPPORTED_PLATFORMS))


def normalize_batch(batch: WebhookBatch) -> list[RawContentRecord]:
    """Map validated items onto records.

    Platform and collection time come from the envelope. Empty strings are
    stored as None and every record starts out pending.
    """
    collected_at = parse_iso_datetime(batch.timestamp)
    records = []
    for item in batch.data:
        published_at = parse_iso_datetime(item.publishedAt) if item.publishedAt else None
        records.append(
            RawContentRecord(
                platform=batch.platform,
                original_url=item.originalUrl or None,
                title=item.title or None,
                content=item.content or None,
                author=item.author or None,
                published_at=published_at,
                collected_at=collected_at,
                likes_count=item.likesCount,
                shares_count=item.sharesCount,
                comments_count=item.commentsCount,
                view_count=item.viewCount,
                tags=item.tags or None,
                status=ContentStatus.PENDING,
            )
        )
    return records


class IngestionPipeline:
    """Turns one webhook request body into persisted content rows."""

    def __init__(
        self,
        content_service: ContentService,
        persist_timeout_seconds: float = 10.0,
        include_error_details: bool = False,
    ):
        """Initialize the pipeline.

        Args:
            content_service: Bulk writer for raw content
            persist_timeout_seconds: Upper bound on the database write
            include_error_details: Attach database error text to rejections
        """
        self.content_service = content_service
        self.persist_timeout_seconds = persist_timeout_seconds
        self.include_error_details = include_error_details

    async def ingest(self, raw_body: bytes | str, client_ip: str = "unknown") -> IngestResult:
        """Run a request body through the full pipeline."""
        started = time.monotonic()
        signature = request_signature(raw_body)

        try:
            payload = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Invalid webhook JSON: ip=%s, signature=%s, error=%s", client_ip, signature, e)
            return IngestRejected(INVALID_JSON)

        try:
            batch = WebhookBatch.model_validate(payload)
        except ValidationError as e:
            logger.warning(
                "Webhook validation failed: ip=%s, signature=%s, errors=%d",
                client_ip,
                signature,
                e.error_count(),
            )
            return IngestRejected(VALIDATION_FAILED, details=format_validation_errors(e))

        received = len(batch.data)
        logger.info(
            "Received webhook batch: platform=%s, items=%d, source=%s, ip=%s, signature=%s",
            batch.platform.value,
            received,
            batch.source,
            client_ip,
            signature,
        )

        records = [record for record in normalize_batch(batch) if record.has_content]
        if not records:
            logger.warning(
                "Webhook batch had no usable items: ip=%s, signature=%s", client_ip, signature
            )
            return IngestRejected(NO_VALID_CONTENT)

        db_started = time.monotonic()
        try:
            inserted = await asyncio.wait_for(
                self.content_service.create_many(records),
                timeout=self.persist_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(
                "Database write timed out after %.1fs: ip=%s, signature=%s",
                self.persist_timeout_seconds,
                client_ip,
                signature,
            )
            details = "timeout" if self.include_error_details else None
            return IngestRejected(DATABASE_WRITE_FAILED, status_code=500, details=details)
        except Exception as e:
            logger.error(
                "Database write failed: ip=%s, signature=%s, error=%s",
                client_ip,
                signature,
                e,
                exc_info=True,
            )
            details = str(e) if self.include_error_details else None
            return IngestRejected(DATABASE_WRITE_FAILED, status_code=500, details=details)

        finished = time.monotonic()
        result = IngestAccepted(
            platform=batch.platform.value,
            received=received,
            processed=len(records),
            inserted=inserted,
            timestamp=batch.timestamp,
            processing_time_ms=int((finished - started) * 1000),
        )
        logger.info(
            "Webhook batch stored: platform=%s, received=%d, processed=%d, inserted=%d, "
            "db_time=%dms, total_time=%dms, ip=%s, signature=%s",
            result.platform,
            result.received,
            result.processed,
            result.inserted,
            int((finished - db_started) * 1000),
            result.processing_time_ms,
            client_ip,
            signature,
        )
        return result


async def ingestion_health(
    db_service: DatabaseService,
    gate: WebhookSecurityGate,
) -> IngestionHealth:
    """Report database connectivity and which security checks are active."""
    settings = gate.settings()
    return IngestionHealth(
        database_connected=await db_service.health_check(),
        secret_configured=settings.secret is not None,
        allowlist_configured=bool(settings.allowed_ips),
        source_required=settings.require_source,
        user_agent_required=settings.require_user_agent,
    )
