"""Credential verification for password sign-in."""

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Optional

from pydantic import ValidationError

from ..rate_limiter import RateLimiter
from ..schemas import SignInCredentials
from .account_lock_service import AccountLockService
from .user_service import UserService, verify_password

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """Minimal authenticated identity handed to the session layer."""

    id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class CredentialVerifier:
    """Combines rate limiting, lockout and password checks into one decision.

    authorize() returns None for every kind of denial so callers cannot tell
    an unknown email from a wrong password, a lockout or a rate limit.
    """

    def __init__(
        self,
        user_service: UserService,
        lock_service: AccountLockService,
        limiter: RateLimiter,
    ):
        self.user_service = user_service
        self.lock_service = lock_service
        self.limiter = limiter

    async def authorize(
        self,
        email: Optional[str],
        password: Optional[str],
        client_ip: str,
    ) -> Optional[Principal]:
        """Verify credentials.

        Args:
            email: Account email
            password: Plaintext password
            client_ip: Resolved client IP, used as the rate-limit key

        Returns:
            The principal on success, None on any denial
        """
        if not email or not password:
            return None

        try:
            credentials = SignInCredentials(email=email, password=password)
        except ValidationError:
            return None

        limit = self.limiter.check(client_ip)
        if not limit.allowed:
            logger.warning("Sign-in rate limit exceeded: ip=%s", client_ip)
            return None

        if await self.lock_service.is_locked(credentials.email):
            logger.warning("Sign-in attempt on locked account: ip=%s", client_ip)
            return None

        user = await self.user_service.get_by_email(credentials.email)
        if user is None:
            return None

        if not user.hashed_password:
            await self.lock_service.record_failure(user.email)
            return None

        # Argon2 is CPU bound, run it in a worker thread
        matches = await asyncio.to_thread(verify_password, credentials.password, user.hashed_password)
        if not matches:
            await self.lock_service.record_failure(user.email)
            logger.info("Wrong password for user %s: ip=%s", user.id, client_ip)
            return None

        await self.lock_service.record_success(user.email)
        return Principal(id=user.id, email=user.email, name=user.name, image=user.image)
