"""
SQL usage store.

Counters are changed with single atomic statements (upsert-increment,
clamped update) so concurrent requests for the same user never lose an
increment, whatever process they run in.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncGenerator, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from common.core.exceptions import ValidationError
from common.core.otel_axiom_exporter import get_logger, trace_span
from common.db.scoped import session_scope
from packages.quota.exceptions import StoreError
from packages.quota.models.database.quota import (
    DailyUsageEntity,
    QuotaNotificationEntity,
    QuotaProfileEntity,
    ToolUsageEventEntity,
)
from packages.quota.models.domain.enums import PlanTier
from packages.quota.models.domain.quota import UsageRecord, UserPlanState, UserProfile
from packages.quota.periods import Clock, utc_now
from .interface import UsageStoreInterface

logger = get_logger(__name__)


class SqlUsageStore(UsageStoreInterface):
    """Usage store backed by SQLAlchemy (PostgreSQL in production, SQLite in tests)."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = utc_now,
        engine: Optional[AsyncEngine] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._engine = engine  # Disposed on close when this store owns it

    @asynccontextmanager
    async def _scope(
        self, operation: str, readonly: bool = False
    ) -> AsyncGenerator[AsyncSession, None]:
        """Session scope that turns driver and row-shape errors into StoreError."""
        try:
            async with session_scope(self._session_factory, readonly=readonly) as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(
                f"Usage store {operation} failed: {e}",
                extra={"operation": operation},
            )
            raise StoreError(f"Usage store {operation} failed") from e
        except (OSError, asyncio.TimeoutError) as e:
            # asyncpg raises these unwrapped for refused connections and command timeouts
            logger.error(
                f"Usage store {operation} could not reach the database: {e!r}",
                extra={"operation": operation},
            )
            raise StoreError(f"Usage store {operation} could not reach the database") from e
        except PydanticValidationError as e:
            logger.error(
                f"Usage store {operation} returned malformed data: {e}",
                extra={"operation": operation},
            )
            raise StoreError(f"Usage store {operation} returned malformed data") from e

    @staticmethod
    def _insert(session: AsyncSession, entity):
        """Dialect-specific INSERT supporting ON CONFLICT."""
        if session.get_bind().dialect.name == "postgresql":
            return postgresql.insert(entity)
        return sqlite.insert(entity)

    @staticmethod
    def _check_delta(delta: int) -> None:
        if delta <= 0:
            raise ValidationError(f"delta must be positive, got {delta}")

    @trace_span
    async def read_count(self, user_id: str, usage_date: date) -> int:
        async with self._scope("read_count", readonly=True) as session:
            result = await session.execute(
                select(DailyUsageEntity.operation_count).where(
                    DailyUsageEntity.user_id == user_id,
                    DailyUsageEntity.usage_date == usage_date,
                )
            )
            return result.scalar_one_or_none() or 0

    @trace_span
    async def increment_count(self, user_id: str, usage_date: date, delta: int = 1) -> int:
        self._check_delta(delta)
        async with self._scope("increment_count") as session:
            stmt = self._insert(session, DailyUsageEntity).values(
                user_id=user_id, usage_date=usage_date, operation_count=delta
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "usage_date"],
                set_={
                    "operation_count": DailyUsageEntity.operation_count + delta,
                    "updated_at": func.now(),
                },
            ).returning(DailyUsageEntity.operation_count)
            result = await session.execute(stmt)
            return result.scalar_one()

    @trace_span
    async def decrement_count(self, user_id: str, usage_date: date, delta: int = 1) -> int:
        self._check_delta(delta)
        async with self._scope("decrement_count") as session:
            stmt = (
                update(DailyUsageEntity)
                .where(
                    DailyUsageEntity.user_id == user_id,
                    DailyUsageEntity.usage_date == usage_date,
                )
                .values(
                    operation_count=case(
                        (
                            DailyUsageEntity.operation_count > delta,
                            DailyUsageEntity.operation_count - delta,
                        ),
                        else_=0,
                    ),
                    updated_at=func.now(),
                )
                .returning(DailyUsageEntity.operation_count)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none() or 0

    @trace_span
    async def reset_all(self, user_id: str, reset_at: datetime) -> int:
        async with self._scope("reset_all") as session:
            result = await session.execute(
                delete(DailyUsageEntity)
                .where(DailyUsageEntity.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            removed = result.rowcount or 0

            stmt = self._insert(session, QuotaProfileEntity).values(
                user_id=user_id,
                plan=PlanTier.FREE.value,
                quota_reset_date=reset_at,
                quota_warnings_enabled=True,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id"],
                set_={"quota_reset_date": reset_at, "updated_at": func.now()},
            )
            await session.execute(stmt)
            return removed

    @trace_span
    async def read_plan(self, user_id: str) -> Optional[UserPlanState]:
        profile = await self.read_profile(user_id)
        return profile.plan_state() if profile else None

    @trace_span
    async def write_plan(self, user_id: str, plan: PlanTier) -> UserPlanState:
        async with self._scope("write_plan") as session:
            stmt = self._insert(session, QuotaProfileEntity).values(
                user_id=user_id,
                plan=plan.value,
                quota_warnings_enabled=True,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id"],
                set_={"plan": plan.value, "updated_at": func.now()},
            ).returning(
                QuotaProfileEntity.user_id,
                QuotaProfileEntity.plan,
                QuotaProfileEntity.quota_reset_date,
            )
            row = (await session.execute(stmt)).one()
            return UserPlanState(
                user_id=row.user_id,
                plan=row.plan,
                quota_reset_date=row.quota_reset_date,
            )

    @trace_span
    async def read_profile(self, user_id: str) -> Optional[UserProfile]:
        async with self._scope("read_profile", readonly=True) as session:
            result = await session.execute(
                select(QuotaProfileEntity).where(QuotaProfileEntity.user_id == user_id)
            )
            entity = result.scalar_one_or_none()
            return UserProfile.model_validate(entity) if entity else None

    @trace_span
    async def upsert_profile(self, profile: UserProfile) -> UserProfile:
        values = {
            "email": profile.email,
            "full_name": profile.full_name,
            "plan": profile.plan.value,
            "quota_reset_date": profile.quota_reset_date,
            "quota_warnings_enabled": profile.quota_warnings_enabled,
        }
        async with self._scope("upsert_profile") as session:
            stmt = self._insert(session, QuotaProfileEntity).values(
                user_id=profile.user_id, **values
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id"],
                set_={**values, "updated_at": func.now()},
            )
            await session.execute(stmt)
        return profile

    @trace_span
    async def mark_threshold_sent(self, user_id: str, usage_date: date, threshold: int) -> bool:
        async with self._scope("mark_threshold_sent") as session:
            stmt = self._insert(session, QuotaNotificationEntity).values(
                user_id=user_id, usage_date=usage_date, threshold=threshold
            )
            stmt = stmt.on_conflict_do_nothing(
                index_elements=["user_id", "usage_date", "threshold"]
            ).returning(QuotaNotificationEntity.id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None

    @trace_span
    async def clear_threshold_marker(self, user_id: str, usage_date: date, threshold: int) -> None:
        async with self._scope("clear_threshold_marker") as session:
            await session.execute(
                delete(QuotaNotificationEntity)
                .where(
                    QuotaNotificationEntity.user_id == user_id,
                    QuotaNotificationEntity.usage_date == usage_date,
                    QuotaNotificationEntity.threshold == threshold,
                )
                .execution_options(synchronize_session=False)
            )

    @trace_span
    async def list_usage(self, usage_date: date) -> List[UsageRecord]:
        async with self._scope("list_usage", readonly=True) as session:
            result = await session.execute(
                select(DailyUsageEntity)
                .where(
                    DailyUsageEntity.usage_date == usage_date,
                    DailyUsageEntity.operation_count > 0,
                )
                .order_by(DailyUsageEntity.user_id)
            )
            return [
                UsageRecord(
                    user_id=entity.user_id,
                    usage_date=entity.usage_date,
                    count=entity.operation_count,
                )
                for entity in result.scalars().all()
            ]

    @trace_span
    async def record_usage_event(self, user_id: str, tool_name: str, usage_date: date) -> None:
        async with self._scope("record_usage_event") as session:
            session.add(
                ToolUsageEventEntity(
                    user_id=user_id,
                    tool_name=tool_name,
                    usage_date=usage_date,
                    created_at=self._clock(),
                )
            )

    async def close(self) -> None:
        """Dispose the engine if this store created it."""
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("SQL usage store engine disposed")
