"""Per-user rate limiting for the AI endpoints."""

from finance_tracker.ratelimit.limiter import (
    RATE_LIMITS,
    EndpointClass,
    InMemoryRateLimitStore,
    RateLimitConfig,
    RateLimitDecision,
    RateLimitEntry,
    RateLimiter,
    RateLimitStore,
    rate_limit_key,
    utc_now,
)

__all__ = [
    "RATE_LIMITS",
    "EndpointClass",
    "InMemoryRateLimitStore",
    "RateLimitConfig",
    "RateLimitDecision",
    "RateLimitEntry",
    "RateLimiter",
    "RateLimitStore",
    "rate_limit_key",
    "utc_now",
]
