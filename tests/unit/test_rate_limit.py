"""Tests for promixel.api.rate_limit: sliding window limiter."""

from __future__ import annotations

from promixel.api.rate_limit import RateLimiter


def _limiter(clock, **overrides) -> RateLimiter:
    params = dict(
        max_requests=3,
        window_seconds=60,
        block_seconds=600,
        max_consecutive_failures=2,
        clock=clock,
    )
    params.update(overrides)
    return RateLimiter(**params)


class TestWindow:
    def test_requests_within_ceiling_allowed(self, clock):
        limiter = _limiter(clock)
        decisions = [limiter.check("ip") for _ in range(3)]
        assert all(d.allowed for d in decisions)
        assert [d.remaining for d in decisions] == [2, 1, 0]

    def test_every_request_beyond_ceiling_rejected(self, clock):
        limiter = _limiter(clock)
        for _ in range(3):
            limiter.check("ip")
        for _ in range(5):
            clock.advance(1)
            decision = limiter.check("ip")
            assert not decision.allowed
            assert "Retry-After" in decision.headers()

    def test_retry_after_points_at_window_end(self, clock):
        limiter = _limiter(clock)
        for _ in range(3):
            limiter.check("ip")
        clock.advance(20)
        decision = limiter.check("ip")
        assert decision.retry_after == 40

    def test_counter_resets_after_window(self, clock):
        limiter = _limiter(clock)
        for _ in range(4):
            limiter.check("ip")
        clock.advance(60)
        decision = limiter.check("ip")
        assert decision.allowed
        assert decision.remaining == 2

    def test_keys_are_independent(self, clock):
        limiter = _limiter(clock)
        for _ in range(4):
            limiter.check("a")
        assert limiter.check("b").allowed

    def test_headers_when_allowed(self, clock):
        limiter = _limiter(clock)
        headers = limiter.check("ip").headers()
        assert headers["X-RateLimit-Limit"] == "3"
        assert headers["X-RateLimit-Remaining"] == "2"
        assert "Retry-After" not in headers


class TestFailures:
    def test_consecutive_failures_block_for_cooldown(self, clock):
        limiter = _limiter(clock)
        limiter.check("ip")
        limiter.record_failure("ip")
        limiter.record_failure("ip")

        decision = limiter.check("ip")
        assert not decision.allowed
        assert decision.retry_after == 600

        clock.advance(601)
        assert limiter.check("ip").allowed

    def test_success_resets_failure_streak(self, clock):
        limiter = _limiter(clock)
        limiter.record_failure("ip")
        limiter.record_success("ip")
        limiter.record_failure("ip")
        assert limiter.check("ip").allowed
        assert limiter.get_record("ip").consecutive_failures == 1


class TestSweep:
    def test_idle_records_removed(self, clock):
        limiter = _limiter(clock)
        limiter.check("old")
        clock.advance(601)
        limiter.check("fresh")
        assert limiter.sweep() == 1
        assert limiter.get_record("old") is None
        assert limiter.get_record("fresh") is not None

    def test_active_block_survives_sweep(self, clock):
        limiter = _limiter(clock, block_seconds=600, window_seconds=60)
        limiter.record_failure("ip")
        limiter.record_failure("ip")
        clock.advance(599)
        assert limiter.sweep() == 0
        assert len(limiter) == 1
