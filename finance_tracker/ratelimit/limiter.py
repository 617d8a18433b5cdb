"""
Per-User Rate Limiting

The AI endpoints cost real money per call, so each user gets a fixed
budget per window:

    ai-chat   10 requests / 60 s
    receipt   20 requests / 60 s

ALGORITHM: Fixed window. The first request (or the first after the window
expired) opens a window of `window_seconds` with count=1. Further requests
increment the count until `limit` is reached; after that they are denied
until reset_time.

CONCURRENCY: check() is synchronous and never awaits. On a single event
loop two concurrent requests therefore cannot both read the same count.

DESIGN DECISION: The limiter FAILS OPEN by default. If the limiter itself
breaks (store error, bad entry) the request is allowed and the failure is
logged - an outage of the limiter must not become an outage of the app.
Pass fail_open=False to deny instead.
"""

import asyncio
import math
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Iterable, Optional

import structlog
from pydantic import BaseModel, Field


logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# CONFIGURATION
# =============================================================================

class EndpointClass(str, Enum):
    """Rate-limited endpoint families."""
    AI_CHAT = "ai-chat"
    RECEIPT = "receipt"


class RateLimitConfig(BaseModel):
    limit: int = Field(..., gt=0)
    window_seconds: float = Field(..., gt=0)

    @property
    def window(self) -> timedelta:
        return timedelta(seconds=self.window_seconds)


RATE_LIMITS: dict[EndpointClass, RateLimitConfig] = {
    EndpointClass.AI_CHAT: RateLimitConfig(limit=10, window_seconds=60),
    EndpointClass.RECEIPT: RateLimitConfig(limit=20, window_seconds=60),
}


def rate_limit_key(endpoint: EndpointClass, user_id: str) -> str:
    return f"{endpoint.value}:{user_id}"


# =============================================================================
# STATE
# =============================================================================

class RateLimitEntry(BaseModel):
    """Counter for one key in its current window."""

    count: int
    reset_time: datetime


class RateLimitDecision(BaseModel):
    allowed: bool
    reset_at: Optional[datetime] = None
    remaining: Optional[int] = None

    def retry_after_seconds(self, now: datetime) -> int:
        """Whole seconds until the window resets, never less than 1."""
        if self.reset_at is None:
            return 1
        return max(1, math.ceil((self.reset_at - now).total_seconds()))


class RateLimitStore(ABC):
    """
    Where the counters live.

    The shipped implementation is process memory. A shared store
    (e.g. Redis) would implement the same four methods.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[RateLimitEntry]:
        pass

    @abstractmethod
    def set(self, key: str, entry: RateLimitEntry) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def items(self) -> Iterable[tuple[str, RateLimitEntry]]:
        pass


class InMemoryRateLimitStore(RateLimitStore):
    """Counters in a dict. Lost on restart."""

    def __init__(self):
        self._entries: dict[str, RateLimitEntry] = {}

    def get(self, key: str) -> Optional[RateLimitEntry]:
        return self._entries.get(key)

    def set(self, key: str, entry: RateLimitEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def items(self) -> Iterable[tuple[str, RateLimitEntry]]:
        # Copy: sweep() deletes while iterating
        return list(self._entries.items())

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# LIMITER
# =============================================================================

class RateLimiter:
    """Fixed-window limiter over an injectable store and clock."""

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        fail_open: bool = True,
        clock: Optional[Clock] = None,
    ):
        self._store = store if store is not None else InMemoryRateLimitStore()
        self._fail_open = fail_open
        self._clock = clock or utc_now

    def now(self) -> datetime:
        return self._clock()

    def _check(self, key: str, config: RateLimitConfig, now: datetime) -> RateLimitDecision:
        entry = self._store.get(key)

        if entry is None or now >= entry.reset_time:
            reset_time = now + config.window
            self._store.set(key, RateLimitEntry(count=1, reset_time=reset_time))
            return RateLimitDecision(
                allowed=True, reset_at=reset_time, remaining=config.limit - 1
            )

        if entry.count < config.limit:
            entry = RateLimitEntry(count=entry.count + 1, reset_time=entry.reset_time)
            self._store.set(key, entry)
            return RateLimitDecision(
                allowed=True,
                reset_at=entry.reset_time,
                remaining=config.limit - entry.count,
            )

        return RateLimitDecision(allowed=False, reset_at=entry.reset_time, remaining=0)

    def check(self, key: str, config: RateLimitConfig) -> RateLimitDecision:
        """Count one request against `key` and decide whether it may proceed."""
        now = self.now()
        try:
            return self._check(key, config, now)
        except Exception as e:
            logger.error(
                "rate_limiter_failed",
                key=key,
                error=str(e),
                fail_open=self._fail_open,
                exc_info=True,
            )
            if self._fail_open:
                return RateLimitDecision(allowed=True)
            return RateLimitDecision(allowed=False, reset_at=now + config.window)

    def check_endpoint(self, endpoint: EndpointClass, user_id: str) -> RateLimitDecision:
        return self.check(rate_limit_key(endpoint, user_id), RATE_LIMITS[endpoint])

    def sweep(self) -> int:
        """Delete expired windows. Returns how many were removed."""
        now = self.now()
        removed = 0
        for key, entry in self._store.items():
            if now >= entry.reset_time:
                self._store.delete(key)
                removed += 1
        return removed

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Sweep forever. Run as a background task; cancel to stop."""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                removed = self.sweep()
            except Exception as e:
                logger.error("rate_limit_sweep_failed", error=str(e), exc_info=True)
                continue
            if removed:
                logger.debug("rate_limit_swept", removed=removed)
