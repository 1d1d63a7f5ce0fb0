"""
Domain models for daily usage tracking and quotas.
"""

from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from common.core.otel_axiom_exporter import get_logger
from packages.quota.models.domain.enums import PlanTier, QuotaStatus
from packages.quota.periods import as_utc, percentage_used

logger = get_logger(__name__)

WARNING_PERCENT = 80


def _coerce_plan(value: object) -> PlanTier:
    """Map a stored plan value onto the closed set, defaulting to free."""
    if value is None:
        return PlanTier.FREE
    plan = PlanTier.from_value(value)
    if plan is None:
        logger.warning(
            f"Unknown stored plan {value!r}, treating as free",
            extra={"stored_plan": str(value)},
        )
        return PlanTier.FREE
    return plan


class UsageRecord(BaseModel):
    """One user's metered-operation count for one UTC day."""

    user_id: str
    usage_date: date
    count: int = Field(ge=0)

    class Config:
        from_attributes = True


class UserPlanState(BaseModel):
    """
    Plan state for a user.

    plan is owned by billing; quota_reset_date records the last
    administrative reset (not the natural daily rollover).
    """

    user_id: str
    plan: PlanTier = PlanTier.FREE
    quota_reset_date: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("plan", mode="before")
    @classmethod
    def _plan_fail_safe(cls, value: object) -> PlanTier:
        return _coerce_plan(value)

    @field_validator("quota_reset_date")
    @classmethod
    def _reset_date_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


class UserProfile(BaseModel):
    """
    Contact details and preferences for a user.

    Profile rows are written by the account system; the quota engine only
    reads them (for plan lookups and warning delivery).
    """

    user_id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    plan: PlanTier = PlanTier.FREE
    quota_reset_date: Optional[datetime] = None
    quota_warnings_enabled: bool = True

    class Config:
        from_attributes = True

    @field_validator("plan", mode="before")
    @classmethod
    def _plan_fail_safe(cls, value: object) -> PlanTier:
        return _coerce_plan(value)

    @field_validator("quota_reset_date")
    @classmethod
    def _reset_date_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None

    def plan_state(self) -> UserPlanState:
        return UserPlanState(
            user_id=self.user_id,
            plan=self.plan,
            quota_reset_date=self.quota_reset_date,
        )


class QuotaSnapshot(BaseModel):
    """
    Read-only view of a user's quota for the current UTC day.

    Built on every read and never persisted. Construction rejects data that
    breaks the remaining/limit/usage relationship.
    """

    plan: PlanTier
    daily_limit: int = Field(gt=0)
    current_usage: int = Field(ge=0)
    remaining: int = Field(ge=0)
    reset_at: datetime
    usage_date: date
    quota_reset_date: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_consistency(self) -> "QuotaSnapshot":
        expected = max(0, self.daily_limit - self.current_usage)
        if self.remaining != expected:
            raise ValueError(
                f"Inconsistent quota data: remaining={self.remaining}, expected {expected}"
            )
        if as_utc(self.reset_at).date() <= self.usage_date:
            raise ValueError("reset_at must fall after the usage date")
        return self

    @classmethod
    def build(
        cls,
        plan: PlanTier,
        daily_limit: int,
        current_usage: int,
        reset_at: datetime,
        usage_date: date,
        quota_reset_date: Optional[datetime] = None,
    ) -> "QuotaSnapshot":
        """Build a snapshot, deriving remaining from limit and usage."""
        return cls(
            plan=plan,
            daily_limit=daily_limit,
            current_usage=current_usage,
            remaining=max(0, daily_limit - current_usage),
            reset_at=reset_at,
            usage_date=usage_date,
            quota_reset_date=quota_reset_date,
        )

    @property
    def percentage_used(self) -> int:
        return percentage_used(self.current_usage, self.daily_limit)

    @property
    def status(self) -> QuotaStatus:
        if self.current_usage >= self.daily_limit:
            return QuotaStatus.CRITICAL
        if self.current_usage * 100 >= WARNING_PERCENT * self.daily_limit:
            return QuotaStatus.WARNING
        return QuotaStatus.NORMAL

    @property
    def exhausted(self) -> bool:
        return self.current_usage >= self.daily_limit

    def get_user_message(self) -> Optional[str]:
        """Get user-friendly message about quota status."""
        if self.exhausted:
            return f"Daily limit reached ({self.daily_limit:,}). Upgrade your plan or wait for the daily reset."

        if self.status == QuotaStatus.WARNING:
            return f"You've used {self.percentage_used}% of your daily quota ({self.current_usage:,}/{self.daily_limit:,})."

        return None


class QuotaReservation(BaseModel):
    """An operation counted up front by check_and_reserve."""

    user_id: str
    usage_date: date
    tool_name: str
    count_after: int
    daily_limit: int
    plan: PlanTier


class ToolUsageEvent(BaseModel):
    """
    Audit record for one metered operation.

    Not authoritative for enforcement; the daily counter is.
    """

    user_id: str
    tool_name: str
    usage_date: date
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationResult(BaseModel):
    """Outcome reported by a quota warning sender."""

    success: bool
    error: Optional[str] = None


class SweepSummary(BaseModel):
    """Totals for one pass over a day's active users."""

    users_checked: int = 0
    notifications_sent: int = 0
    errors: List[str] = Field(default_factory=list)


class RateLimitResult(BaseModel):
    """Outcome of one rate-limit check for an identifier."""

    success: bool
    limit: int = Field(gt=0)
    remaining: int = Field(ge=0)
    reset_at: datetime
    retry_after_seconds: int = Field(default=0, ge=0)
