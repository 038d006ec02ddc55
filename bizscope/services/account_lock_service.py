"""Login-failure tracking and temporary account lockout.

Accounts move between two states:

    Unlocked(n) --failure--> Unlocked(n + 1)     while n + 1 < max_failed_attempts
    Unlocked(n) --failure--> Locked(now + lock_duration)
    Unlocked(n) --success--> Unlocked(0)
    Locked      --success--> Unlocked(0)
    Locked      --lock_until passes, next observation--> Unlocked(0)

All store access is best effort: errors are logged and the previous state is
left untouched, so a failing database never locks or unlocks anyone.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import select, update

from ..orm.user import User
from .database import DatabaseService, as_utc

logger = logging.getLogger(__name__)

DEFAULT_MAX_FAILED_ATTEMPTS = 5
DEFAULT_LOCK_DURATION = timedelta(minutes=30)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LockInfo:
    is_locked: bool
    failed_attempts: int
    remaining_attempts: int
    lock_until: Optional[datetime] = None


class AccountLockService:
    """Tracks failed logins per account email and enforces lockout."""

    def __init__(
        self,
        db_service: DatabaseService,
        max_failed_attempts: int = DEFAULT_MAX_FAILED_ATTEMPTS,
        lock_duration: timedelta = DEFAULT_LOCK_DURATION,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db_service = db_service
        self.max_failed_attempts = max_failed_attempts
        self.lock_duration = lock_duration
        self._clock = clock

    async def is_locked(self, email: str) -> bool:
        """Check whether the account is locked right now.

        An expired lock is cleared as a side effect.
        """
        try:
            async with self.db_service.session() as session:
                result = await session.execute(select(User.lock_until).where(User.email == email))
                lock_until = as_utc(result.scalar_one_or_none())
        except Exception as e:
            logger.error("Failed to read lock state for %s: %s", email, e, exc_info=True)
            return False

        if lock_until is None:
            return False

        if lock_until <= self._clock():
            await self.clear_lock(email)
            return False

        return True

    async def record_failure(self, email: str) -> None:
        """Count a failed login and lock the account at the threshold."""
        try:
            async with self.db_service.session() as session:
                result = await session.execute(select(User).where(User.email == email))
                user = result.scalar_one_or_none()
                if user is None:
                    return

                failed_count = user.login_failed_count + 1
                user.login_failed_count = failed_count

                if failed_count >= self.max_failed_attempts:
                    now = self._clock()
                    user.locked_at = now
                    user.lock_until = now + self.lock_duration
                    logger.warning(
                        "Account %s locked until %s after %d failed logins",
                        email,
                        user.lock_until.isoformat(),
                        failed_count,
                    )

                await session.commit()
        except Exception as e:
            logger.error("Failed to record login failure for %s: %s", email, e, exc_info=True)

    async def record_success(self, email: str) -> None:
        """Reset failure state after a successful login."""
        await self._reset(email, last_active_at=self._clock())

    async def clear_lock(self, email: str) -> None:
        """Reset the failure count and remove any lock."""
        await self._reset(email)

    async def get_lock_info(self, email: str) -> LockInfo:
        """Read-only snapshot of an account's lock state."""
        default = LockInfo(
            is_locked=False,
            failed_attempts=0,
            remaining_attempts=self.max_failed_attempts,
        )

        try:
            async with self.db_service.session() as session:
                result = await session.execute(
                    select(User.login_failed_count, User.lock_until).where(User.email == email)
                )
                row = result.one_or_none()
        except Exception as e:
            logger.error("Failed to read lock info for %s: %s", email, e, exc_info=True)
            return default

        if row is None:
            return default

        failed_attempts, lock_until = row
        lock_until = as_utc(lock_until)
        return LockInfo(
            is_locked=lock_until is not None and lock_until > self._clock(),
            failed_attempts=failed_attempts,
            remaining_attempts=max(0, self.max_failed_attempts - failed_attempts),
            lock_until=lock_until,
        )

    async def _reset(self, email: str, **extra_values) -> None:
        try:
            async with self.db_service.session() as session:
                await session.execute(
                    update(User)
                    .where(User.email == email)
                    .values(login_failed_count=0, locked_at=None, lock_until=None, **extra_values)
                )
                await session.commit()
        except Exception as e:
            logger.error("Failed to reset lock state for %s: %s", email, e, exc_info=True)
