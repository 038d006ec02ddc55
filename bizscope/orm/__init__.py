"""ORM models for database persistence."""

from .base import Base, SqlalchemyBase
from .raw_content import RawContent
from .user import User

__all__ = [
    "Base",
    "SqlalchemyBase",
    "RawContent",
    "User",
]
