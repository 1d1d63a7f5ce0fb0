"""
Quota error taxonomy.

Only QuotaExceeded, RateLimited and InvalidPlan are meant to reach an end user as a
deliberate denial. The others are degraded backend conditions that callers
surface as a generic "try again" failure.
"""

from typing import Any, Dict, Optional

from common.core.exceptions import AppException, StorageError
from packages.quota.models.domain.enums import QuotaErrorType


class QuotaError(AppException):
    """Base class for quota failures."""

    user_facing = False

    def __init__(
        self,
        type: QuotaErrorType,
        message: str,
        status_code: int,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.type = type
        self.status_code = status_code

    @property
    def is_user_facing(self) -> bool:
        return self.user_facing

    def to_dict(self) -> Dict[str, Any]:
        """Serialise for an upstream error response."""
        return {
            "type": self.type.value,
            "message": self.message,
            "status_code": self.status_code,
            "context": self.context,
        }


class QuotaExceeded(QuotaError):
    """Legitimate deny: the user has used their whole daily budget."""

    user_facing = True

    def __init__(self, current_usage: int, daily_limit: int):
        super().__init__(
            QuotaErrorType.EXCEEDED,
            f"Daily quota exceeded ({current_usage}/{daily_limit}). "
            "Upgrade your plan or wait for the daily reset.",
            429,
            {"current_usage": current_usage, "daily_limit": daily_limit},
        )

    @property
    def current_usage(self) -> int:
        return self.context["current_usage"]

    @property
    def daily_limit(self) -> int:
        return self.context["daily_limit"]


class QuotaCheckFailed(QuotaError):
    """Store fault while checking quota. The operation is not permitted."""

    def __init__(
        self,
        message: str = "Failed to verify quota",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(QuotaErrorType.CHECK_FAILED, message, 503, context)


class QuotaFetchFailed(QuotaError):
    """Store fault while reading a quota snapshot."""

    def __init__(
        self,
        message: str = "Failed to fetch quota information",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(QuotaErrorType.FETCH_FAILED, message, 503, context)


class InvalidPlan(QuotaError):
    """Plan value outside the closed set of tiers."""

    user_facing = True

    def __init__(self, plan: Any):
        super().__init__(
            QuotaErrorType.INVALID_PLAN,
            f"Invalid plan type: {plan!r}",
            400,
            {"plan": str(plan)},
        )


class StoreError(StorageError):
    """Connectivity or query failure inside a usage store."""

    pass


class RateLimited(QuotaError):
    """Too many requests in the short window for the caller's tier."""

    user_facing = True

    def __init__(self, message: str, tier: str, limit: int, window_seconds: int, retry_after: int):
        super().__init__(
            QuotaErrorType.RATE_LIMITED,
            message,
            429,
            {
                "tier": tier,
                "limit": limit,
                "window_seconds": window_seconds,
                "retry_after": retry_after,
            },
        )

    @property
    def retry_after(self) -> int:
        return self.context["retry_after"]
