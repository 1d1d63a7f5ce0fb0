"""
Service for quota warning notifications.

Warnings are sent at most once per threshold per user per UTC day. The
sent-marker is claimed in the store before delivery and released again if
delivery fails, so a later evaluation can retry.
"""

from datetime import date
from typing import List, Optional, Sequence, Tuple

from common.core.exceptions import AppException
from common.core.otel_axiom_exporter import get_logger, log_span_event, trace_span
from packages.quota.models.domain.enums import PlanTier
from packages.quota.models.domain.quota import NotificationResult, SweepSummary
from packages.quota.periods import threshold_reached
from packages.quota.providers.notification.interface import QuotaWarningSenderInterface
from packages.quota.providers.usage_store.interface import UsageStoreInterface
from packages.quota.services.quota_engine import QuotaEngine

logger = get_logger(__name__)

DEFAULT_THRESHOLDS = (80, 100)


class ThresholdNotifier:
    """Watches usage crossing warning thresholds and notifies the user."""

    def __init__(
        self,
        engine: QuotaEngine,
        store: UsageStoreInterface,
        sender: QuotaWarningSenderInterface,
        thresholds: Sequence[int] = DEFAULT_THRESHOLDS,
    ):
        if not thresholds or any(t <= 0 or t > 100 for t in thresholds):
            raise ValueError("thresholds must be percentages within 1..100")
        self.engine = engine
        self.store = store
        self.sender = sender
        self.thresholds: List[int] = sorted(set(thresholds))

    @trace_span
    async def maybe_notify(self, user_id: str) -> bool:
        """
        Evaluate a user's usage after an increment and send any due warning.

        Never raises. Returns False when a due warning could not be delivered
        (or the user's data could not be read), True otherwise.
        """
        try:
            snapshot = await self.engine.get_quota_snapshot(user_id)
            delivered, _ = await self._evaluate(
                user_id,
                snapshot.usage_date,
                snapshot.current_usage,
                snapshot.daily_limit,
                snapshot.plan,
            )
            return delivered
        except AppException as e:
            logger.error(
                f"Quota warning evaluation failed for user {user_id}: {e}",
                extra={"user_id": user_id},
            )
            return False

    @trace_span
    async def sweep(self, usage_date: Optional[date] = None) -> SweepSummary:
        """
        Evaluate every user with usage on a UTC day (today by default).

        Per-user failures are collected in the summary and do not stop the
        sweep. A failure to list the day's users raises StoreError.
        """
        usage_date = usage_date or self.engine.today()
        records = await self.store.list_usage(usage_date)
        summary = SweepSummary()

        for record in records:
            summary.users_checked += 1
            try:
                plan = await self.engine.get_user_plan(record.user_id)
                delivered, sent = await self._evaluate(
                    record.user_id,
                    usage_date,
                    record.count,
                    self.engine.catalog.budget_for(plan),
                    plan,
                )
            except AppException as e:
                logger.error(
                    f"Quota warning sweep failed for user {record.user_id}: {e}",
                    extra={"user_id": record.user_id},
                )
                summary.errors.append(f"{record.user_id}: {e}")
                continue

            if sent:
                summary.notifications_sent += 1
            if not delivered:
                summary.errors.append(f"{record.user_id}: warning not delivered")

        logger.info(
            f"Quota warning sweep for {usage_date.isoformat()} checked {summary.users_checked} users, "
            f"sent {summary.notifications_sent}",
            extra={
                "usage_date": usage_date.isoformat(),
                "users_checked": summary.users_checked,
                "notifications_sent": summary.notifications_sent,
                "error_count": len(summary.errors),
            },
        )
        return summary

    async def _evaluate(
        self,
        user_id: str,
        usage_date: date,
        current_usage: int,
        daily_limit: int,
        plan: PlanTier,
    ) -> Tuple[bool, bool]:
        """
        Claim and deliver warnings for reached thresholds.

        All newly reached thresholds are claimed, and one warning is sent for
        the highest of them.

        Returns:
            (delivered, sent): delivered is False when a due warning could not
            be delivered; sent is True when a warning went out
        """
        reached = [
            t for t in self.thresholds if threshold_reached(current_usage, daily_limit, t)
        ]
        if not reached:
            return True, False

        profile = await self.store.read_profile(user_id)
        if profile is None or not profile.email:
            logger.warning(
                f"Cannot send quota warning to user {user_id}: no email on file",
                extra={"user_id": user_id},
            )
            return False, False

        if not profile.quota_warnings_enabled:
            logger.debug(
                f"User {user_id} opted out of quota warnings",
                extra={"user_id": user_id},
            )
            return True, False

        claimed = []
        for threshold in reached:
            if await self.store.mark_threshold_sent(user_id, usage_date, threshold):
                claimed.append(threshold)
        if not claimed:
            return True, False

        threshold = claimed[-1]
        result = await self._deliver(
            user_id,
            profile.email,
            profile.full_name,
            current_usage,
            daily_limit,
            plan,
            threshold,
        )

        if not result.success:
            for claimed_threshold in claimed:
                await self.store.clear_threshold_marker(user_id, usage_date, claimed_threshold)
            logger.error(
                f"Quota warning delivery failed for user {user_id}: {result.error}",
                extra={"user_id": user_id, "threshold": threshold},
            )
            return False, False

        log_span_event(
            f"Sent {threshold}% quota warning to user {user_id} ({current_usage}/{daily_limit})",
            {
                "user_id": user_id,
                "threshold": threshold,
                "current_usage": current_usage,
                "daily_limit": daily_limit,
            },
        )
        return True, True

    async def _deliver(
        self,
        user_id: str,
        email: str,
        name: Optional[str],
        current_usage: int,
        daily_limit: int,
        plan: PlanTier,
        threshold: int,
    ) -> NotificationResult:
        """Call the sender, turning a raised error into a failed result."""
        try:
            return await self.sender.send_quota_warning(
                email=email,
                name=name,
                current_usage=current_usage,
                daily_limit=daily_limit,
                plan=plan,
                threshold_percent=threshold,
                user_id=user_id,
            )
        except Exception as e:
            logger.error(
                f"Quota warning sender raised for user {user_id}: {e}",
                extra={"user_id": user_id, "threshold": threshold},
                exc_info=True,
            )
            return NotificationResult(success=False, error=str(e))
