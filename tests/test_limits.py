"""Tests for pricing, request spacing and the spend guard."""

import asyncio

import pytest

from plumb.limits import Pricing, RateLimiter, SpendGuard


class TestPricing:
    def test_default_rates(self):
        pricing = Pricing()
        assert pricing.cost(1_000_000, 0) == pytest.approx(3.0)
        assert pricing.cost(0, 1_000_000) == pytest.approx(15.0)

    def test_mixed(self):
        assert Pricing(1.0, 2.0).cost(500_000, 250_000) == pytest.approx(1.0)

    def test_zero_tokens(self):
        assert Pricing().cost(0, 0) == 0


class TestRateLimiter:
    """Tests for the fixed-spacing rate limiter."""

    def test_spacing(self):
        assert RateLimiter(10).spacing == pytest.approx(6.0)
        assert RateLimiter(120).spacing == pytest.approx(0.5)

    def test_waits_before_every_request(self, recording_sleep):
        limiter = RateLimiter(10, sleep=recording_sleep)

        async def three_requests():
            for _ in range(3):
                await limiter.wait()

        asyncio.run(three_requests())
        assert recording_sleep.delays == [6.0, 6.0, 6.0]
        assert limiter.waits == 3

    @pytest.mark.parametrize("rpm", [0, -1])
    def test_rejects_non_positive_rate(self, rpm):
        with pytest.raises(ValueError, match="must be positive"):
            RateLimiter(rpm)


class TestSpendGuard:
    """Tests for the cumulative spend ceiling."""

    def test_not_exhausted_below_ceiling(self):
        guard = SpendGuard(1.0)
        guard.charge(0.4)
        assert not guard.exhausted
        assert guard.spent == pytest.approx(0.4)

    def test_exhausted_at_ceiling(self):
        guard = SpendGuard(1.0)
        guard.charge(1.0)
        assert guard.exhausted

    def test_overshoot_is_recorded(self):
        guard = SpendGuard(0.01)
        guard.charge(0.02)
        assert guard.exhausted
        assert guard.spent == pytest.approx(0.02)

    def test_zero_ceiling_is_exhausted_immediately(self):
        assert SpendGuard(0).exhausted
