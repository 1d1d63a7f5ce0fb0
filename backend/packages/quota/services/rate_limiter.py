"""
Service for short-window request rate limiting.

Sits next to the daily quota: the quota bounds how much a user does per UTC
day, the rate limit bounds how fast. Windows are moving windows kept in a
`limits` storage, so Redis storage shares them across every process.
"""

import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Mapping, Optional

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.aio.strategies import MovingWindowRateLimiter
from limits.errors import StorageError as LimitsStorageError
from limits.storage import storage_from_string

from common.core.exceptions import ValidationError
from common.core.otel_axiom_exporter import get_logger, trace_span
from packages.quota.exceptions import QuotaFetchFailed, RateLimited
from packages.quota.models.domain.enums import RateLimitTier
from packages.quota.models.domain.quota import RateLimitResult

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """Requests allowed per window for one tier, and the denial message."""

    max_requests: int
    window_seconds: int
    error_message: str


DEFAULT_RATE_LIMITS: Mapping[RateLimitTier, RateLimitPolicy] = MappingProxyType(
    {
        RateLimitTier.GUEST: RateLimitPolicy(
            30, 60, "Rate limit exceeded. Please sign in for higher limits."
        ),
        RateLimitTier.FREE: RateLimitPolicy(
            60, 60, "Rate limit exceeded. Upgrade to Premium for higher limits."
        ),
        RateLimitTier.PREMIUM: RateLimitPolicy(
            120, 60, "Rate limit exceeded. Please try again in a moment."
        ),
        RateLimitTier.PRO: RateLimitPolicy(
            300, 60, "Rate limit exceeded. Please try again in a moment."
        ),
        RateLimitTier.STRICT: RateLimitPolicy(
            5, 60, "Too many attempts. Please try again later."
        ),
    }
)


class PlanRateLimiter:
    """
    Per-identifier rate limiter with one moving window per tier.

    Identifiers are user ids for signed-in callers and client addresses for
    guests. A storage outage lets requests through: the daily quota check
    stays the hard gate.
    """

    def __init__(
        self,
        storage_uri: str = "async+memory://",
        policies: Optional[Mapping[RateLimitTier, RateLimitPolicy]] = None,
    ):
        policies = dict(policies if policies is not None else DEFAULT_RATE_LIMITS)
        missing = [tier.value for tier in RateLimitTier if tier not in policies]
        if missing:
            raise ValueError(f"Rate limits are missing for: {', '.join(missing)}")
        for tier, policy in policies.items():
            if policy.max_requests <= 0 or policy.window_seconds <= 0:
                raise ValueError(f"Rate limit for {tier.value} must be positive, got {policy}")

        self._policies: Mapping[RateLimitTier, RateLimitPolicy] = MappingProxyType(policies)
        self._items: Mapping[RateLimitTier, RateLimitItem] = MappingProxyType(
            {
                tier: RateLimitItemPerSecond(
                    policy.max_requests, policy.window_seconds, namespace="quota-rate"
                )
                for tier, policy in policies.items()
            }
        )
        self._storage = storage_from_string(storage_uri, wrap_exceptions=True)
        self._limiter = MovingWindowRateLimiter(self._storage)

    def policy_for(self, tier: RateLimitTier) -> RateLimitPolicy:
        return self._policies[tier]

    @staticmethod
    def _validate_identifier(identifier: str) -> None:
        if not isinstance(identifier, str) or not identifier.strip():
            raise ValidationError("rate limit identifier must be a non-empty string")

    async def _result(
        self, identifier: str, tier: RateLimitTier, success: Optional[bool] = None
    ) -> RateLimitResult:
        """Build a result from the window stats; success defaults to "room left"."""
        policy = self._policies[tier]
        stats = await self._limiter.get_window_stats(self._items[tier], tier.value, identifier)
        remaining = max(0, stats.remaining)
        if success is None:
            success = remaining > 0
        retry_after = 0 if success else max(1, math.ceil(stats.reset_time - time.time()))
        return RateLimitResult(
            success=success,
            limit=policy.max_requests,
            remaining=remaining,
            reset_at=datetime.fromtimestamp(stats.reset_time, tz=timezone.utc),
            retry_after_seconds=retry_after,
        )

    @trace_span
    async def check_rate_limit(self, identifier: str, tier: RateLimitTier) -> RateLimitResult:
        """
        Count one request and report whether it fits in the tier's window.

        Args:
            identifier: User id, or client address for guests
            tier: Rate tier to apply

        Returns:
            RateLimitResult; success is False when the window is full
        """
        self._validate_identifier(identifier)
        policy = self._policies[tier]

        try:
            allowed = await self._limiter.hit(self._items[tier], tier.value, identifier)
            return await self._result(identifier, tier, allowed)
        except LimitsStorageError as e:
            logger.error(
                f"Rate limit storage unavailable, allowing request for {identifier}: {e}",
                extra={"identifier": identifier, "tier": tier.value},
            )
            return RateLimitResult(
                success=True,
                limit=policy.max_requests,
                remaining=policy.max_requests,
                reset_at=datetime.now(timezone.utc),
            )

    @trace_span
    async def enforce_rate_limit(self, identifier: str, tier: RateLimitTier) -> RateLimitResult:
        """
        Count one request, raising when the tier's window is full.

        Raises:
            RateLimited: The window is full; carries retry_after in seconds
        """
        result = await self.check_rate_limit(identifier, tier)
        if not result.success:
            policy = self._policies[tier]
            logger.warning(
                f"Rate limit hit for {identifier} on tier {tier.value}",
                extra={
                    "identifier": identifier,
                    "tier": tier.value,
                    "retry_after": result.retry_after_seconds,
                },
            )
            raise RateLimited(
                policy.error_message,
                tier=tier.value,
                limit=policy.max_requests,
                window_seconds=policy.window_seconds,
                retry_after=result.retry_after_seconds,
            )
        return result

    @trace_span
    async def get_rate_limit_status(
        self, identifier: str, tier: RateLimitTier
    ) -> Optional[RateLimitResult]:
        """
        Read the current window without counting a request.

        Returns:
            None when the identifier has no requests in the window

        Raises:
            QuotaFetchFailed: The storage could not be read
        """
        self._validate_identifier(identifier)
        try:
            result = await self._result(identifier, tier)
        except LimitsStorageError as e:
            raise QuotaFetchFailed(
                "Failed to fetch rate limit status", context={"identifier": identifier}
            ) from e

        if result.remaining >= result.limit:
            return None
        return result

    @trace_span
    async def reset_rate_limit(
        self, identifier: str, tier: Optional[RateLimitTier] = None
    ) -> bool:
        """
        Clear an identifier's window for one tier, or for every tier.

        Returns:
            False when the storage could not be written
        """
        self._validate_identifier(identifier)
        tiers = [tier] if tier is not None else list(self._items.keys())

        try:
            for t in tiers:
                await self._limiter.clear(self._items[t], t.value, identifier)
        except LimitsStorageError as e:
            logger.error(
                f"Failed to reset rate limit for {identifier}: {e}",
                extra={"identifier": identifier},
            )
            return False

        logger.info(
            f"Reset rate limit for {identifier}",
            extra={"identifier": identifier, "tiers": [t.value for t in tiers]},
        )
        return True
