"""User model with embedded account lock state."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import SqlalchemyBase


class User(SqlalchemyBase):
    """Registered account."""

    __tablename__ = "users"
    __table_args__ = (Index("idx_users_email", "email", unique=True),)

    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    image: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    # None for accounts that only sign in through an external provider
    hashed_password: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    subscription_type: Mapped[str] = mapped_column(String(32), nullable=False, default="free")
    usage_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=50)

    # Lock state
    login_failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    lock_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    last_active_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<User(id={self.id}, email={self.email}, "
            f"failed={self.login_failed_count}, lock_until={self.lock_until})>"
        )
