"""
Service for daily quota enforcement and accounting.

Checks fail closed and increments fail open: a check that cannot read the
store denies the operation, while an increment that cannot write still
reports success because the operation has already happened.
"""

from datetime import date, datetime
from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError

from common.core.exceptions import ValidationError
from common.core.otel_axiom_exporter import get_logger, trace_span
from packages.quota.exceptions import (
    QuotaCheckFailed,
    QuotaExceeded,
    QuotaFetchFailed,
    StoreError,
)
from packages.quota.models.domain.enums import PlanTier
from packages.quota.models.domain.quota import (
    QuotaReservation,
    QuotaSnapshot,
    UserPlanState,
)
from packages.quota.periods import Clock, next_utc_midnight, usage_date_for, utc_now
from packages.quota.plans import PlanCatalog
from packages.quota.providers.usage_store.interface import UsageStoreInterface

logger = get_logger(__name__)


class QuotaEngine:
    """
    Per-user daily quota state machine.

    Keeps no state between calls: every decision is recomputed from the
    store's counter for the current UTC day and the user's plan budget.
    """

    def __init__(
        self,
        store: UsageStoreInterface,
        catalog: Optional[PlanCatalog] = None,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.catalog = catalog or PlanCatalog()
        self._clock = clock

    def today(self) -> date:
        """UTC date that usage is currently counted against."""
        return usage_date_for(self._clock())

    def get_quota_reset_time(self) -> datetime:
        """Next UTC midnight, strictly after now."""
        return next_utc_midnight(self._clock())

    @staticmethod
    def _validate_user_id(user_id: str) -> None:
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError("user_id must be a non-empty string")

    @staticmethod
    def _validate_quantity(quantity: int) -> None:
        if quantity <= 0:
            raise ValidationError(f"quantity must be positive, got {quantity}")

    async def _load_plan_state(self, user_id: str) -> UserPlanState:
        """Read plan state, defaulting to free when the user has no profile."""
        state = await self.store.read_plan(user_id)
        if state is None:
            logger.debug(
                f"No profile for user {user_id}, using free plan",
                extra={"user_id": user_id},
            )
            return UserPlanState(user_id=user_id, plan=PlanTier.FREE)
        return state

    async def _build_snapshot(self, user_id: str) -> QuotaSnapshot:
        """Read plan and today's count and build a snapshot. Raises StoreError."""
        now = self._clock()
        usage_date = usage_date_for(now)

        state = await self._load_plan_state(user_id)
        current_usage = await self.store.read_count(user_id, usage_date)

        try:
            return QuotaSnapshot.build(
                plan=state.plan,
                daily_limit=self.catalog.budget_for(state.plan),
                current_usage=current_usage,
                reset_at=next_utc_midnight(now),
                usage_date=usage_date,
                quota_reset_date=state.quota_reset_date,
            )
        except PydanticValidationError as e:
            raise StoreError(f"Inconsistent quota data for user {user_id}") from e

    @trace_span
    async def check_quota(self, user_id: str) -> QuotaSnapshot:
        """
        Check if a user may perform another metered operation today.

        Args:
            user_id: The user identifier

        Returns:
            QuotaSnapshot for today when the user is under budget

        Raises:
            QuotaExceeded: Usage has reached the daily limit
            QuotaCheckFailed: The store could not be read
        """
        self._validate_user_id(user_id)

        try:
            snapshot = await self._build_snapshot(user_id)
        except StoreError as e:
            logger.error(
                f"Quota check failed for user {user_id}: {e}",
                extra={"user_id": user_id},
            )
            raise QuotaCheckFailed(context={"user_id": user_id}) from e

        if snapshot.exhausted:
            logger.warning(
                f"User {user_id} exceeded daily quota",
                extra={
                    "user_id": user_id,
                    "current_usage": snapshot.current_usage,
                    "daily_limit": snapshot.daily_limit,
                },
            )
            raise QuotaExceeded(snapshot.current_usage, snapshot.daily_limit)

        return snapshot

    @trace_span
    async def enforce_quota(self, user_id: str) -> QuotaSnapshot:
        """
        Gate an operation before it runs.

        Same semantics as check_quota; calling it repeatedly without an
        increment in between changes nothing.
        """
        return await self.check_quota(user_id)

    @trace_span
    async def can_use(self, user_id: str) -> bool:
        """Boolean form of check_quota. False when exceeded or unverifiable."""
        try:
            await self.check_quota(user_id)
            return True
        except (QuotaExceeded, QuotaCheckFailed):
            return False

    @trace_span
    async def increment_usage(self, user_id: str, tool_name: str, quantity: int = 1) -> bool:
        """
        Count operations that have already completed.

        Always reports success once inputs are valid: a store failure is
        logged and the increment is dropped rather than failing the caller.

        Args:
            user_id: The user identifier
            tool_name: Name of the metered tool, for the audit trail
            quantity: Number of operations to count

        Returns:
            True
        """
        self._validate_user_id(user_id)
        self._validate_quantity(quantity)
        usage_date = self.today()

        try:
            count = await self.store.increment_count(user_id, usage_date, quantity)
        except StoreError as e:
            logger.error(
                f"Failed to increment usage for user {user_id}, continuing: {e}",
                extra={"user_id": user_id, "tool_name": tool_name, "quantity": quantity},
            )
            return True

        logger.debug(
            f"Incremented usage for user {user_id} to {count}",
            extra={"user_id": user_id, "tool_name": tool_name, "current_usage": count},
        )
        await self._record_event(user_id, tool_name, usage_date)
        return True

    @trace_span
    async def decrement_usage(self, user_id: str, quantity: int = 1) -> bool:
        """Compensate today's counter for operations that did not happen."""
        self._validate_user_id(user_id)
        self._validate_quantity(quantity)

        try:
            await self.store.decrement_count(user_id, self.today(), quantity)
            return True
        except StoreError as e:
            logger.error(
                f"Failed to decrement usage for user {user_id}: {e}",
                extra={"user_id": user_id, "quantity": quantity},
            )
            return False

    async def _record_event(self, user_id: str, tool_name: str, usage_date: date) -> None:
        """Append to the audit trail. Best effort."""
        try:
            await self.store.record_usage_event(user_id, tool_name, usage_date)
        except StoreError as e:
            logger.warning(
                f"Failed to record usage event for user {user_id}: {e}",
                extra={"user_id": user_id, "tool_name": tool_name},
            )

    @trace_span
    async def check_and_reserve(self, user_id: str, tool_name: str) -> QuotaReservation:
        """
        Check quota and count the operation up front.

        The store's atomic increment decides the race between concurrent
        reservations: one that lands past the limit is taken back and denied.
        Follow with commit() once the operation succeeds or rollback() if it
        fails.

        Raises:
            QuotaExceeded: Usage has reached the daily limit
            QuotaCheckFailed: The store could not be read or written
        """
        snapshot = await self.check_quota(user_id)

        try:
            count = await self.store.increment_count(user_id, snapshot.usage_date, 1)
        except StoreError as e:
            logger.error(
                f"Failed to reserve quota for user {user_id}: {e}",
                extra={"user_id": user_id, "tool_name": tool_name},
            )
            raise QuotaCheckFailed(
                "Failed to reserve quota", context={"user_id": user_id}
            ) from e

        if count > snapshot.daily_limit:
            try:
                await self.store.decrement_count(user_id, snapshot.usage_date, 1)
            except StoreError as e:
                logger.error(
                    f"Failed to release over-limit reservation for user {user_id}: {e}",
                    extra={"user_id": user_id},
                )
            logger.warning(
                f"User {user_id} lost reservation race at {count}/{snapshot.daily_limit}",
                extra={
                    "user_id": user_id,
                    "current_usage": count - 1,
                    "daily_limit": snapshot.daily_limit,
                },
            )
            raise QuotaExceeded(snapshot.daily_limit, snapshot.daily_limit)

        logger.info(
            f"Reserved {tool_name} for user {user_id} ({count}/{snapshot.daily_limit})",
            extra={"user_id": user_id, "tool_name": tool_name, "current_usage": count},
        )
        return QuotaReservation(
            user_id=user_id,
            usage_date=snapshot.usage_date,
            tool_name=tool_name,
            count_after=count,
            daily_limit=snapshot.daily_limit,
            plan=snapshot.plan,
        )

    @trace_span
    async def commit(self, reservation: QuotaReservation) -> bool:
        """Confirm a reservation after the operation succeeded."""
        await self._record_event(
            reservation.user_id, reservation.tool_name, reservation.usage_date
        )
        return True

    @trace_span
    async def rollback(self, reservation: QuotaReservation) -> bool:
        """
        Give back a reservation whose operation failed.

        Decrements the reservation's own day, so a rollback after midnight
        does not touch the new day's counter.

        Returns:
            False when the store could not be written
        """
        try:
            await self.store.decrement_count(reservation.user_id, reservation.usage_date, 1)
        except StoreError as e:
            logger.error(
                f"Failed to roll back reservation for user {reservation.user_id}: {e}",
                extra={"user_id": reservation.user_id, "tool_name": reservation.tool_name},
            )
            return False

        logger.info(
            f"Rolled back {reservation.tool_name} reservation for user {reservation.user_id}",
            extra={"user_id": reservation.user_id, "tool_name": reservation.tool_name},
        )
        return True

    @trace_span
    async def get_quota_snapshot(self, user_id: str) -> QuotaSnapshot:
        """
        Get the read-only quota view for today.

        Missing records read as zero usage; only a store failure raises.

        Raises:
            QuotaFetchFailed: The store could not be read
        """
        self._validate_user_id(user_id)

        try:
            return await self._build_snapshot(user_id)
        except StoreError as e:
            logger.error(
                f"Failed to fetch quota for user {user_id}: {e}",
                extra={"user_id": user_id},
            )
            raise QuotaFetchFailed(context={"user_id": user_id}) from e

    @trace_span
    async def get_daily_usage(self, user_id: str, usage_date: Optional[date] = None) -> int:
        """Get a user's count for a UTC day (today by default)."""
        self._validate_user_id(user_id)

        try:
            return await self.store.read_count(user_id, usage_date or self.today())
        except StoreError as e:
            raise QuotaFetchFailed(context={"user_id": user_id}) from e

    @trace_span
    async def get_user_plan(self, user_id: str) -> PlanTier:
        """Get a user's plan, free when the user has no profile."""
        self._validate_user_id(user_id)

        try:
            state = await self._load_plan_state(user_id)
        except StoreError as e:
            raise QuotaFetchFailed(context={"user_id": user_id}) from e
        return state.plan

    @trace_span
    async def reset_user_quota(self, user_id: str) -> bool:
        """
        Administrative reset: clear every stored count for a user.

        Returns:
            True on success, False if the store failed
        """
        self._validate_user_id(user_id)
        reset_at = self._clock()

        try:
            removed = await self.store.reset_all(user_id, reset_at)
        except StoreError as e:
            logger.error(
                f"Failed to reset quota for user {user_id}: {e}",
                extra={"user_id": user_id},
            )
            return False

        logger.info(
            f"Reset quota for user {user_id}, removed {removed} usage records",
            extra={"user_id": user_id, "removed": removed},
        )
        return True

    @trace_span
    async def update_plan(self, user_id: str, new_plan: Union[PlanTier, str]) -> UserPlanState:
        """
        Change a user's plan. Usage already counted today is kept.

        Args:
            user_id: The user identifier
            new_plan: One of free, premium, pro

        Returns:
            The stored plan state

        Raises:
            InvalidPlan: new_plan is outside the closed set (nothing is written)
            StoreError: The store could not be written
        """
        self._validate_user_id(user_id)
        tier = self.catalog.parse(new_plan)

        state = await self.store.write_plan(user_id, tier)
        logger.info(
            f"Updated plan for user {user_id} to {tier.value}",
            extra={"user_id": user_id, "plan": tier.value},
        )
        return state
