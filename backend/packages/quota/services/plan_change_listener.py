"""
Applies billing lifecycle changes to a user's plan.

Billing owns which plan a user is on. It calls this listener after it has
verified its own webhook; the listener only maps the event to a tier.
"""

from typing import Optional, Union

from common.core.otel_axiom_exporter import get_logger, trace_span
from packages.quota.models.domain.enums import (
    PlanTier,
    SubscriptionEventType,
    SubscriptionStatus,
)
from packages.quota.models.domain.events import SubscriptionLifecycleEvent
from packages.quota.models.domain.quota import UserPlanState
from packages.quota.services.quota_engine import QuotaEngine

logger = get_logger(__name__)


class PlanChangeListener:
    """Handler for plan changes coming from billing."""

    def __init__(self, engine: QuotaEngine):
        self.engine = engine

    @trace_span
    async def on_plan_changed(self, user_id: str, new_plan: Union[PlanTier, str]) -> UserPlanState:
        """
        Apply a new plan for a user.

        Raises:
            InvalidPlan: new_plan is outside the closed set
        """
        tier = self.engine.catalog.parse(new_plan)
        return await self.engine.update_plan(user_id, tier)

    @trace_span
    async def on_subscription_cancelled(self, user_id: str) -> UserPlanState:
        """Cancellation drops the user back to free."""
        logger.info(
            f"Subscription cancelled for user {user_id}, downgrading to free",
            extra={"user_id": user_id},
        )
        return await self.engine.update_plan(user_id, PlanTier.FREE)

    @trace_span
    async def handle_subscription_event(
        self, event: SubscriptionLifecycleEvent
    ) -> Optional[UserPlanState]:
        """
        Map a subscription lifecycle event to a plan change.

        - deleted, or a terminal status: free
        - trialing / active / past_due: the event's plan
        - incomplete: ignored until payment settles

        Returns:
            The stored plan state, or None when the event was ignored
        """
        if event.type == SubscriptionEventType.SUBSCRIPTION_DELETED:
            return await self.on_subscription_cancelled(event.user_id)

        if event.status == SubscriptionStatus.INCOMPLETE:
            logger.info(
                f"Ignoring {event.type.value} for user {event.user_id} with incomplete subscription",
                extra={"user_id": event.user_id, "subscription_id": event.subscription_id},
            )
            return None

        if not event.status.grants_paid_plan():
            return await self.on_subscription_cancelled(event.user_id)

        logger.info(
            f"Subscription {event.status.value} for user {event.user_id}, plan {event.plan}",
            extra={"user_id": event.user_id, "subscription_id": event.subscription_id},
        )
        return await self.on_plan_changed(event.user_id, event.plan)
