"""User accounts and password hashing.

Uses Argon2 for password hashing.
"""

import asyncio
import logging
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..orm.user import User
from .database import DatabaseService

logger = logging.getLogger(__name__)

_password_hasher = PasswordHasher()

DEFAULT_SUBSCRIPTION_TYPE = "free"
DEFAULT_USAGE_LIMIT = 50


class EmailAlreadyRegistered(Exception):
    """Raised when registering an email that already has an account."""

    pass


def hash_password(password: str) -> str:
    """Hash a password using Argon2.

    Args:
        password: The plaintext password to hash.

    Returns:
        The hashed password string.
    """
    return _password_hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash.

    Args:
        password: The plaintext password to verify.
        password_hash: The hash to verify against.

    Returns:
        True if the password matches, False otherwise (including malformed hashes).
    """
    if not password or not password_hash:
        return False

    try:
        return _password_hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


class UserService:
    """Lookup and creation of user accounts."""

    def __init__(self, db_service: DatabaseService):
        self.db_service = db_service

    async def get_by_email(self, email: str) -> Optional[User]:
        async with self.db_service.session() as session:
            result = await session.execute(select(User).where(User.email == email))
            return result.scalar_one_or_none()

    async def create_user(
        self,
        email: str,
        password: Optional[str],
        name: Optional[str] = None,
        image: Optional[str] = None,
    ) -> User:
        """Create an account.

        Args:
            email: Unique email address.
            password: Plaintext password, or None for provider-only accounts.
            name: Display name; defaults to the local part of the email.
            image: Avatar URL.

        Raises:
            EmailAlreadyRegistered: If the email is taken.
        """
        if await self.get_by_email(email) is not None:
            raise EmailAlreadyRegistered(email)

        hashed_password = await asyncio.to_thread(hash_password, password) if password else None

        user = User(
            email=email,
            name=name or email.split("@")[0],
            image=image,
            hashed_password=hashed_password,
            subscription_type=DEFAULT_SUBSCRIPTION_TYPE,
            usage_limit=DEFAULT_USAGE_LIMIT,
            login_failed_count=0,
        )

        try:
            async with self.db_service.session() as session:
                session.add(user)
                await session.commit()
                await session.refresh(user)
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            raise EmailAlreadyRegistered(email) from None

        logger.info("Created user %s", user.id)
        return user
