"""Domain models for quotas."""

from packages.quota.models.domain.enums import (
    PlanTier,
    QuotaStatus,
    QuotaErrorType,
    RateLimitTier,
    SubscriptionEventType,
    SubscriptionStatus,
)
from packages.quota.models.domain.quota import (
    UsageRecord,
    UserPlanState,
    UserProfile,
    QuotaSnapshot,
    QuotaReservation,
    ToolUsageEvent,
    NotificationResult,
    SweepSummary,
    RateLimitResult,
)
from packages.quota.models.domain.events import SubscriptionLifecycleEvent

__all__ = [
    # Enums
    "PlanTier",
    "QuotaStatus",
    "QuotaErrorType",
    "RateLimitTier",
    "SubscriptionEventType",
    "SubscriptionStatus",
    # Quota
    "UsageRecord",
    "UserPlanState",
    "UserProfile",
    "QuotaSnapshot",
    "QuotaReservation",
    "ToolUsageEvent",
    "NotificationResult",
    "SweepSummary",
    "RateLimitResult",
    # Events
    "SubscriptionLifecycleEvent",
]
