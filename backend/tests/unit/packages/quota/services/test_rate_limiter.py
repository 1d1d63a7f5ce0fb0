"""Unit tests for PlanRateLimiter."""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock

from limits.errors import StorageError as LimitsStorageError

from common.core.exceptions import ValidationError
from packages.quota.exceptions import QuotaFetchFailed, RateLimited
from packages.quota.models.domain.enums import PlanTier, QuotaErrorType, RateLimitTier
from packages.quota.services.rate_limiter import (
    DEFAULT_RATE_LIMITS,
    PlanRateLimiter,
    RateLimitPolicy,
)

USER = "user-1"


@pytest_asyncio.fixture
async def rate_limiter():
    return PlanRateLimiter("async+memory://")


async def _hit(limiter, identifier: str, tier: RateLimitTier, times: int):
    result = None
    for _ in range(times):
        result = await limiter.check_rate_limit(identifier, tier)
    return result


@pytest.mark.asyncio
class TestCheckRateLimit:
    """Tests for counting requests against a tier's window."""

    async def test_free_tier_allows_sixty_then_denies(self, rate_limiter):
        result = await _hit(rate_limiter, USER, RateLimitTier.FREE, 60)
        assert result.success
        assert result.limit == 60
        assert result.remaining == 0

        denied = await rate_limiter.check_rate_limit(USER, RateLimitTier.FREE)
        assert not denied.success
        assert 1 <= denied.retry_after_seconds <= 60

    async def test_strict_tier_denies_sixth_attempt(self, rate_limiter):
        assert (await _hit(rate_limiter, USER, RateLimitTier.STRICT, 5)).success

        assert not (await rate_limiter.check_rate_limit(USER, RateLimitTier.STRICT)).success

    async def test_remaining_counts_down(self, rate_limiter):
        first = await rate_limiter.check_rate_limit(USER, RateLimitTier.PRO)
        assert first.remaining == 299
        assert first.retry_after_seconds == 0

    async def test_identifiers_are_independent(self, rate_limiter):
        await _hit(rate_limiter, USER, RateLimitTier.STRICT, 5)

        other = await rate_limiter.check_rate_limit("user-2", RateLimitTier.STRICT)
        assert other.success
        assert other.remaining == 4

    async def test_tiers_are_independent(self, rate_limiter):
        await _hit(rate_limiter, USER, RateLimitTier.STRICT, 5)

        result = await rate_limiter.check_rate_limit(USER, RateLimitTier.FREE)
        assert result.success
        assert result.remaining == 59

    async def test_storage_outage_lets_request_through(self, rate_limiter):
        rate_limiter._limiter.hit = AsyncMock(side_effect=LimitsStorageError(Exception("down")))

        result = await rate_limiter.check_rate_limit(USER, RateLimitTier.STRICT)

        assert result.success
        assert result.remaining == 5

    @pytest.mark.parametrize("identifier", ["", "   "])
    async def test_blank_identifier_rejected(self, rate_limiter, identifier):
        with pytest.raises(ValidationError):
            await rate_limiter.check_rate_limit(identifier, RateLimitTier.FREE)


@pytest.mark.asyncio
class TestEnforceRateLimit:
    """Tests for raising RateLimited on a full window."""

    async def test_raises_with_retry_after(self, rate_limiter):
        await _hit(rate_limiter, USER, RateLimitTier.FREE, 60)

        with pytest.raises(RateLimited) as exc_info:
            await rate_limiter.enforce_rate_limit(USER, RateLimitTier.FREE)

        error = exc_info.value
        assert error.status_code == 429
        assert error.type == QuotaErrorType.RATE_LIMITED
        assert error.user_facing
        assert 1 <= error.retry_after <= 60
        assert error.context["tier"] == "free"
        assert error.context["limit"] == 60
        assert error.context["window_seconds"] == 60
        assert error.message == DEFAULT_RATE_LIMITS[RateLimitTier.FREE].error_message

    async def test_within_limit_returns_result(self, rate_limiter):
        result = await rate_limiter.enforce_rate_limit(USER, RateLimitTier.GUEST)

        assert result.success
        assert result.remaining == 29


@pytest.mark.asyncio
class TestRateLimitStatus:
    """Tests for reading a window without counting."""

    async def test_none_before_any_request(self, rate_limiter):
        assert await rate_limiter.get_rate_limit_status(USER, RateLimitTier.FREE) is None

    async def test_status_does_not_count(self, rate_limiter):
        await _hit(rate_limiter, USER, RateLimitTier.FREE, 3)

        first = await rate_limiter.get_rate_limit_status(USER, RateLimitTier.FREE)
        second = await rate_limiter.get_rate_limit_status(USER, RateLimitTier.FREE)

        assert first.remaining == 57
        assert second.remaining == 57
        assert first.success

    async def test_full_window_reports_failure(self, rate_limiter):
        await _hit(rate_limiter, USER, RateLimitTier.STRICT, 5)

        status = await rate_limiter.get_rate_limit_status(USER, RateLimitTier.STRICT)

        assert not status.success
        assert status.remaining == 0
        assert status.retry_after_seconds >= 1

    async def test_storage_outage_raises_fetch_failed(self, rate_limiter):
        rate_limiter._limiter.get_window_stats = AsyncMock(
            side_effect=LimitsStorageError(Exception("down"))
        )

        with pytest.raises(QuotaFetchFailed):
            await rate_limiter.get_rate_limit_status(USER, RateLimitTier.FREE)


@pytest.mark.asyncio
class TestResetRateLimit:
    """Tests for clearing windows."""

    async def test_reset_one_tier_restores_access(self, rate_limiter):
        await _hit(rate_limiter, USER, RateLimitTier.STRICT, 6)

        assert await rate_limiter.reset_rate_limit(USER, RateLimitTier.STRICT)

        assert (await rate_limiter.check_rate_limit(USER, RateLimitTier.STRICT)).success

    async def test_reset_all_tiers(self, rate_limiter):
        await _hit(rate_limiter, USER, RateLimitTier.STRICT, 5)
        await _hit(rate_limiter, USER, RateLimitTier.FREE, 2)

        assert await rate_limiter.reset_rate_limit(USER)

        assert await rate_limiter.get_rate_limit_status(USER, RateLimitTier.STRICT) is None
        assert await rate_limiter.get_rate_limit_status(USER, RateLimitTier.FREE) is None

    async def test_reset_leaves_other_identifiers(self, rate_limiter):
        await _hit(rate_limiter, "user-2", RateLimitTier.STRICT, 2)

        await rate_limiter.reset_rate_limit(USER)

        status = await rate_limiter.get_rate_limit_status("user-2", RateLimitTier.STRICT)
        assert status.remaining == 3

    async def test_storage_outage_returns_false(self, rate_limiter):
        rate_limiter._limiter.clear = AsyncMock(side_effect=LimitsStorageError(Exception("down")))

        assert not await rate_limiter.reset_rate_limit(USER, RateLimitTier.FREE)


class TestPolicies:
    """Tests for tier policies and plan mapping."""

    def test_default_limits(self):
        limits = {
            tier: (policy.max_requests, policy.window_seconds)
            for tier, policy in DEFAULT_RATE_LIMITS.items()
        }
        assert limits == {
            RateLimitTier.GUEST: (30, 60),
            RateLimitTier.FREE: (60, 60),
            RateLimitTier.PREMIUM: (120, 60),
            RateLimitTier.PRO: (300, 60),
            RateLimitTier.STRICT: (5, 60),
        }

    @pytest.mark.parametrize(
        "plan,tier",
        [
            (None, RateLimitTier.GUEST),
            (PlanTier.FREE, RateLimitTier.FREE),
            (PlanTier.PREMIUM, RateLimitTier.PREMIUM),
            (PlanTier.PRO, RateLimitTier.PRO),
        ],
    )
    def test_tier_for_plan(self, plan, tier):
        assert RateLimitTier.for_plan(plan) == tier

    def test_missing_tier_rejected(self):
        policies = dict(DEFAULT_RATE_LIMITS)
        del policies[RateLimitTier.STRICT]

        with pytest.raises(ValueError):
            PlanRateLimiter(policies=policies)

    def test_non_positive_limit_rejected(self):
        policies = dict(DEFAULT_RATE_LIMITS)
        policies[RateLimitTier.FREE] = RateLimitPolicy(0, 60, "nope")

        with pytest.raises(ValueError):
            PlanRateLimiter(policies=policies)

    def test_custom_policy_is_used(self):
        policies = dict(DEFAULT_RATE_LIMITS)
        policies[RateLimitTier.FREE] = RateLimitPolicy(10, 30, "slow down")

        limiter = PlanRateLimiter(policies=policies)

        assert limiter.policy_for(RateLimitTier.FREE).max_requests == 10
