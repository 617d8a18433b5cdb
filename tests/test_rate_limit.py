"""Tests for the fixed-window rate limiter."""

import asyncio
from datetime import timedelta

import pytest
from pydantic import ValidationError

from finance_tracker.ratelimit import (
    RATE_LIMITS,
    EndpointClass,
    InMemoryRateLimitStore,
    RateLimitConfig,
    RateLimitDecision,
    RateLimiter,
    rate_limit_key,
)


class BrokenStore(InMemoryRateLimitStore):
    def get(self, key):
        raise RuntimeError("store unavailable")


CONFIG = RateLimitConfig(limit=3, window_seconds=60)


class TestConfig:
    """Tests for limits and keys."""

    def test_endpoint_limits(self):
        """Test the shipped per-endpoint budgets."""
        assert RATE_LIMITS[EndpointClass.AI_CHAT].limit == 10
        assert RATE_LIMITS[EndpointClass.AI_CHAT].window_seconds == 60
        assert RATE_LIMITS[EndpointClass.RECEIPT].limit == 20
        assert RATE_LIMITS[EndpointClass.RECEIPT].window_seconds == 60

    def test_key_format(self):
        """Test keys combine endpoint and user."""
        assert rate_limit_key(EndpointClass.RECEIPT, "abc") == "receipt:abc"

    @pytest.mark.parametrize("limit,window", [(0, 60), (5, 0), (-1, 10)])
    def test_non_positive_config_rejected(self, limit, window):
        """Test limit and window must be positive."""
        with pytest.raises(ValidationError):
            RateLimitConfig(limit=limit, window_seconds=window)


class TestFixedWindow:
    """Tests for counting within and across windows."""

    def test_counts_down_then_denies(self, clock):
        """Test limit requests pass and the next one is denied."""
        limiter = RateLimiter(clock=clock)
        start = clock()

        decisions = [limiter.check("k", CONFIG) for _ in range(3)]
        assert [d.allowed for d in decisions] == [True, True, True]
        assert [d.remaining for d in decisions] == [2, 1, 0]

        denied = limiter.check("k", CONFIG)
        assert denied.allowed is False
        assert denied.remaining == 0
        assert denied.reset_at == start + timedelta(seconds=60)

    def test_window_resets(self, clock):
        """Test a new window opens at reset_time."""
        limiter = RateLimiter(clock=clock)
        for _ in range(4):
            limiter.check("k", CONFIG)

        clock.advance(59)
        assert limiter.check("k", CONFIG).allowed is False

        clock.advance(1)
        decision = limiter.check("k", CONFIG)
        assert decision.allowed is True
        assert decision.remaining == 2
        assert decision.reset_at == clock() + timedelta(seconds=60)

    def test_denied_requests_do_not_extend_window(self, clock):
        """Test hammering a closed window does not push reset_at."""
        limiter = RateLimiter(clock=clock)
        first = limiter.check("k", CONFIG)
        for _ in range(10):
            clock.advance(1)
            denied = limiter.check("k", CONFIG)
        assert denied.reset_at == first.reset_at

    def test_keys_are_independent(self, clock):
        """Test users and endpoints have separate budgets."""
        limiter = RateLimiter(clock=clock)
        for _ in range(10):
            assert limiter.check_endpoint(EndpointClass.AI_CHAT, "alice").allowed
        assert not limiter.check_endpoint(EndpointClass.AI_CHAT, "alice").allowed

        assert limiter.check_endpoint(EndpointClass.AI_CHAT, "bob").allowed
        assert limiter.check_endpoint(EndpointClass.RECEIPT, "alice").allowed

    def test_retry_after_seconds(self, clock):
        """Test the wait is rounded up and at least one second."""
        reset_at = clock() + timedelta(seconds=10, milliseconds=200)
        decision = RateLimitDecision(allowed=False, reset_at=reset_at)
        assert decision.retry_after_seconds(clock()) == 11
        assert decision.retry_after_seconds(reset_at) == 1
        assert RateLimitDecision(allowed=False).retry_after_seconds(clock()) == 1


class TestFailureModes:
    """Tests for limiter failures."""

    def test_fails_open_by_default(self, clock):
        """Test a broken store lets requests through."""
        limiter = RateLimiter(store=BrokenStore(), clock=clock)
        decision = limiter.check("k", CONFIG)
        assert decision.allowed is True

    def test_fail_closed(self, clock):
        """Test fail_open=False denies with a full window."""
        limiter = RateLimiter(store=BrokenStore(), fail_open=False, clock=clock)
        decision = limiter.check("k", CONFIG)
        assert decision.allowed is False
        assert decision.reset_at == clock() + timedelta(seconds=60)


class TestSweep:
    """Tests for expired window cleanup."""

    def test_sweep_removes_only_expired(self, clock):
        """Test sweep() drops windows whose reset_time has passed."""
        store = InMemoryRateLimitStore()
        limiter = RateLimiter(store=store, clock=clock)
        limiter.check("old", CONFIG)
        clock.advance(30)
        limiter.check("new", CONFIG)
        clock.advance(30)

        assert limiter.sweep() == 1
        assert store.get("old") is None
        assert store.get("new") is not None

    async def test_background_sweeper(self, clock):
        """Test run_sweeper() sweeps until cancelled."""
        store = InMemoryRateLimitStore()
        limiter = RateLimiter(store=store, clock=clock)
        limiter.check("k", CONFIG)
        clock.advance(120)

        task = asyncio.create_task(limiter.run_sweeper(0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(store) == 0
