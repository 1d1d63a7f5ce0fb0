"""Quota services."""

from packages.quota.services.quota_engine import QuotaEngine
from packages.quota.services.threshold_notifier import ThresholdNotifier
from packages.quota.services.plan_change_listener import PlanChangeListener
from packages.quota.services.rate_limiter import PlanRateLimiter

__all__ = [
    "QuotaEngine",
    "ThresholdNotifier",
    "PlanChangeListener",
    "PlanRateLimiter",
]
