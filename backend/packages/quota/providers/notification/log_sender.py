from typing import Optional

from common.core.otel_axiom_exporter import get_logger
from packages.quota.models.domain.enums import PlanTier
from packages.quota.models.domain.quota import NotificationResult
from .interface import QuotaWarningSenderInterface

logger = get_logger(__name__)


class LogQuotaWarningSender(QuotaWarningSenderInterface):
    """Writes quota warnings to the log instead of delivering them. For local and dev."""

    async def send_quota_warning(
        self,
        email: str,
        name: Optional[str],
        current_usage: int,
        daily_limit: int,
        plan: PlanTier,
        threshold_percent: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> NotificationResult:
        logger.info(
            f"Quota warning for {email}: {current_usage}/{daily_limit} on {plan.value} plan",
            extra={
                "user_id": user_id,
                "current_usage": current_usage,
                "daily_limit": daily_limit,
                "plan": plan.value,
                "threshold": threshold_percent,
            },
        )
        return NotificationResult(success=True)
