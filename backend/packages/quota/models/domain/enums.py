"""
Quota enums - strongly typed enumerations for plans, thresholds and billing events.
"""

from enum import Enum
from typing import Optional


class PlanTier(str, Enum):
    """
    Subscription plan tiers.

    The closed set of plans a user can be on. Daily budgets live in
    PlanCatalog; billing owns which tier a user is on.
    """

    FREE = "free"  # 10 daily operations
    PREMIUM = "premium"  # 500 daily operations
    PRO = "pro"  # 2000 daily operations

    @classmethod
    def from_value(cls, value: object, strict: bool = False) -> Optional["PlanTier"]:
        """
        Return the matching tier, or None when value is not in the closed set.

        Stored values are matched case- and whitespace-insensitively; with
        strict=True only the exact canonical value matches.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value if strict else value.strip().lower())
            except ValueError:
                return None
        return None


class QuotaStatus(str, Enum):
    """Display status derived from the usage percentage."""

    NORMAL = "normal"  # below 80%
    WARNING = "warning"  # 80% up to the limit
    CRITICAL = "critical"  # at or over the limit


class QuotaErrorType(str, Enum):
    """Kinds of quota failures."""

    EXCEEDED = "quota_exceeded"
    CHECK_FAILED = "quota_check_failed"
    FETCH_FAILED = "quota_fetch_failed"
    INVALID_PLAN = "invalid_plan"
    RATE_LIMITED = "rate_limited"


class RateLimitTier(str, Enum):
    """
    Short-window request rate tiers.

    One per plan, plus guest for unauthenticated callers and strict for
    sensitive operations regardless of plan.
    """

    GUEST = "guest"  # 30 requests per minute
    FREE = "free"  # 60 requests per minute
    PREMIUM = "premium"  # 120 requests per minute
    PRO = "pro"  # 300 requests per minute
    STRICT = "strict"  # 5 requests per minute

    @classmethod
    def for_plan(cls, plan: Optional[PlanTier]) -> "RateLimitTier":
        """Rate tier for a plan; guest when there is no signed-in user."""
        if plan is None:
            return cls.GUEST
        return cls(plan.value)


class SubscriptionEventType(str, Enum):
    """Billing lifecycle events that can change a user's plan."""

    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"


class SubscriptionStatus(str, Enum):
    """
    Subscription status values as reported by the billing platform.

    Flow: incomplete -> trialing/active -> past_due -> canceled/unpaid
    """

    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"

    def grants_paid_plan(self) -> bool:
        """Check if this status keeps the subscribed plan in effect."""
        return self in (
            SubscriptionStatus.TRIALING,
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.PAST_DUE,
        )
