"""In-memory fixed-window rate limiting.

Each limiter counts requests per identifier inside fixed, non-overlapping
windows. Window state lives in a bounded recency cache with its own TTL, so
entries can be evicted before their window ends; a client whose entry was
evicted simply starts a fresh window. Limits are per process.

Usage:
    limiter = RateLimiter(AUTH_POLICY)
    result = limiter.check(client_ip)
    if not result.allowed:
        retry_after = result.retry_after_seconds()
"""

import math
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

V = TypeVar("V")

DEFAULT_CACHE_MAX_ENTRIES = 500
DEFAULT_CACHE_TTL_SECONDS = 60.0


class RecencyCache(Generic[V]):
    """Least-recently-used cache with a per-entry time to live.

    Writing an entry refreshes its TTL. Reads of expired entries return None
    and drop the entry.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[V, float]] = OrderedDict()

    def get(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        return value

    def set(self, key: str, value: V) -> None:
        self._entries[key] = (value, self._clock() + self.ttl_seconds)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class RateLimitPolicy:
    """Limits for one use site.

    Attributes:
        name: Purpose of the limiter, used to namespace cache keys.
        interval_ms: Window length in milliseconds.
        max_requests: Requests allowed per window.
    """

    name: str
    interval_ms: int
    max_requests: int


@dataclass
class RateLimitWindow:
    count: int
    reset_time: int  # epoch millis


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: int  # epoch millis

    def retry_after_seconds(self, now_ms: Optional[int] = None) -> int:
        """Seconds until the window resets, suitable for a Retry-After header."""
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return max(1, math.ceil((self.reset_time - now_ms) / 1000))


AUTH_POLICY = RateLimitPolicy(name="auth", interval_ms=15 * 60 * 1000, max_requests=5)
REGISTER_POLICY = RateLimitPolicy(name="register", interval_ms=60 * 60 * 1000, max_requests=3)
GENERAL_POLICY = RateLimitPolicy(name="general", interval_ms=60 * 1000, max_requests=10)


class RateLimiter:
    """Fixed-window request counter keyed by client identifier."""

    def __init__(
        self,
        policy: RateLimitPolicy,
        cache: Optional[RecencyCache[RateLimitWindow]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.policy = policy
        self._clock = clock
        self._cache = cache if cache is not None else RecencyCache(clock=clock)

    def check(self, identifier: str) -> RateLimitResult:
        """Count one request for identifier and decide whether to admit it."""
        now_ms = int(self._clock() * 1000)
        key = f"{self.policy.name}:{identifier}"

        window = self._cache.get(key)
        if window is None or window.reset_time <= now_ms:
            window = RateLimitWindow(count=1, reset_time=now_ms + self.policy.interval_ms)
            self._cache.set(key, window)
            return RateLimitResult(
                allowed=True,
                remaining=self.policy.max_requests - 1,
                reset_time=window.reset_time,
            )

        if window.count >= self.policy.max_requests:
            return RateLimitResult(allowed=False, remaining=0, reset_time=window.reset_time)

        window.count += 1
        self._cache.set(key, window)
        return RateLimitResult(
            allowed=True,
            remaining=self.policy.max_requests - window.count,
            reset_time=window.reset_time,
        )


def build_limiter(
    policy: RateLimitPolicy,
    cache_max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
    clock: Callable[[], float] = time.time,
) -> RateLimiter:
    """Create a limiter with its own backing cache."""
    cache: RecencyCache[RateLimitWindow] = RecencyCache(
        max_entries=cache_max_entries,
        ttl_seconds=cache_ttl_seconds,
        clock=clock,
    )
    return RateLimiter(policy, cache=cache, clock=clock)
