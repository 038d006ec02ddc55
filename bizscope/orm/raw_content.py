"""RawContent model for ingested content items."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import SqlalchemyBase


class RawContent(SqlalchemyBase):
    """One item of external content awaiting AI analysis.

    original_url is the de-duplication key for bulk inserts. Rows without a
    URL never conflict with each other.
    """

    __tablename__ = "raw_contents"
    __table_args__ = (
        Index("idx_raw_contents_platform", "platform"),
        Index("idx_raw_contents_status", "status"),
        Index("idx_raw_contents_collected_at", "collected_at"),
    )

    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    original_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True, unique=True)
    title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    author: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    collected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Engagement counters
    likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shares_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comments_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    tags: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)  # comma-joined
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<RawContent(id={self.id}, platform={self.platform}, "
            f"status={self.status}, url={self.original_url})>"
        )
