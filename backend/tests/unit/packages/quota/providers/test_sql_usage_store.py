"""Unit tests for the SQL usage store (SQLite in-memory)."""

import asyncio
import pytest
import pytest_asyncio
from datetime import date, datetime, timezone
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine
from unittest.mock import AsyncMock, MagicMock

from common.core.config import Settings
from common.core.constants import UsageStoreBackend
from common.core.exceptions import ValidationError
from common.db.session import create_session_factory
from packages.quota.exceptions import QuotaCheckFailed, QuotaFetchFailed, StoreError
from packages.quota.models.database.quota import QuotaProfileEntity, ToolUsageEventEntity
from packages.quota.models.domain.enums import PlanTier
from packages.quota.models.domain.quota import UserProfile
from packages.quota.providers.usage_store.factory import create_usage_store
from packages.quota.providers.usage_store.sql_store import SqlUsageStore
from packages.quota.services.quota_engine import QuotaEngine
from packages.quota.services.threshold_notifier import ThresholdNotifier

TODAY = date(2025, 3, 14)
YESTERDAY = date(2025, 3, 13)
USER = "user-1"


@pytest_asyncio.fixture(scope="function")
async def broken_store(clock):
    """Store whose database has no schema, so every query fails."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    yield SqlUsageStore(create_session_factory(engine), clock=clock)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def unreachable_store(clock):
    """PostgreSQL store pointed at a port nothing listens on."""
    store = create_usage_store(
        Settings(
            usage_store_backend=UsageStoreBackend.SQL,
            db_host="127.0.0.1",
            db_port=1,
            db_command_timeout_seconds=1.0,
        ),
        clock=clock,
    )
    yield store
    await store.close()


@pytest.fixture
def timing_out_store(clock):
    """Store whose sessions time out while connecting."""
    session_factory = MagicMock()
    session_factory.return_value.__aenter__ = AsyncMock(side_effect=asyncio.TimeoutError())
    session_factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return SqlUsageStore(session_factory, clock=clock)


@pytest.mark.asyncio
class TestCounters:
    """Tests for daily counters."""

    async def test_missing_record_reads_zero(self, sql_store):
        assert await sql_store.read_count(USER, TODAY) == 0

    async def test_increment_creates_then_adds(self, sql_store):
        assert await sql_store.increment_count(USER, TODAY) == 1
        assert await sql_store.increment_count(USER, TODAY) == 2
        assert await sql_store.increment_count(USER, TODAY, delta=5) == 7

        assert await sql_store.read_count(USER, TODAY) == 7

    async def test_days_and_users_are_independent(self, sql_store):
        await sql_store.increment_count(USER, YESTERDAY, delta=4)
        await sql_store.increment_count(USER, TODAY)
        await sql_store.increment_count("user-2", TODAY, delta=2)

        assert await sql_store.read_count(USER, YESTERDAY) == 4
        assert await sql_store.read_count(USER, TODAY) == 1
        assert await sql_store.read_count("user-2", TODAY) == 2

    @pytest.mark.parametrize("delta", [0, -1])
    async def test_rejects_non_positive_delta(self, sql_store, delta):
        with pytest.raises(ValidationError):
            await sql_store.increment_count(USER, TODAY, delta=delta)
        with pytest.raises(ValidationError):
            await sql_store.decrement_count(USER, TODAY, delta=delta)

    async def test_decrement_clamps_at_zero(self, sql_store):
        await sql_store.increment_count(USER, TODAY, delta=3)

        assert await sql_store.decrement_count(USER, TODAY) == 2
        assert await sql_store.decrement_count(USER, TODAY, delta=10) == 0
        assert await sql_store.read_count(USER, TODAY) == 0

    async def test_decrement_missing_record_creates_nothing(self, sql_store):
        assert await sql_store.decrement_count(USER, TODAY) == 0
        assert await sql_store.list_usage(TODAY) == []

    async def test_list_usage_only_positive_counts_for_day(self, sql_store):
        await sql_store.increment_count("b-user", TODAY, delta=2)
        await sql_store.increment_count("a-user", TODAY, delta=5)
        await sql_store.increment_count("c-user", TODAY)
        await sql_store.decrement_count("c-user", TODAY)
        await sql_store.increment_count("a-user", YESTERDAY)

        records = await sql_store.list_usage(TODAY)

        assert [(r.user_id, r.count) for r in records] == [("a-user", 5), ("b-user", 2)]


@pytest.mark.asyncio
class TestResetAndPlans:
    """Tests for reset and plan state."""

    async def test_reset_removes_every_day_and_stamps_date(self, sql_store, clock):
        await sql_store.increment_count(USER, YESTERDAY, delta=3)
        await sql_store.increment_count(USER, TODAY, delta=2)
        await sql_store.increment_count("user-2", TODAY)

        removed = await sql_store.reset_all(USER, clock())

        assert removed == 2
        assert await sql_store.read_count(USER, TODAY) == 0
        assert await sql_store.read_count(USER, YESTERDAY) == 0
        assert await sql_store.read_count("user-2", TODAY) == 1
        state = await sql_store.read_plan(USER)
        assert state.plan == PlanTier.FREE
        assert state.quota_reset_date == clock()

    async def test_reset_keeps_existing_plan(self, sql_store, clock):
        await sql_store.write_plan(USER, PlanTier.PRO)

        await sql_store.reset_all(USER, clock())

        assert (await sql_store.read_plan(USER)).plan == PlanTier.PRO

    async def test_missing_plan_reads_none(self, sql_store):
        assert await sql_store.read_plan(USER) is None

    async def test_write_plan_creates_and_updates(self, sql_store):
        created = await sql_store.write_plan(USER, PlanTier.PREMIUM)
        updated = await sql_store.write_plan(USER, PlanTier.PRO)

        assert created.plan == PlanTier.PREMIUM
        assert updated.plan == PlanTier.PRO
        assert (await sql_store.read_plan(USER)).plan == PlanTier.PRO

    async def test_unknown_stored_plan_reads_as_free(self, sql_store, test_db):
        test_db.add(QuotaProfileEntity(user_id=USER, plan="legacy-gold"))
        await test_db.commit()

        assert (await sql_store.read_plan(USER)).plan == PlanTier.FREE

    async def test_profile_round_trip(self, sql_store):
        profile = UserProfile(
            user_id=USER,
            email="user@example.com",
            full_name="Some User",
            plan=PlanTier.PREMIUM,
            quota_reset_date=datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc),
            quota_warnings_enabled=False,
        )

        await sql_store.upsert_profile(profile)

        assert await sql_store.read_profile(USER) == profile

    async def test_write_plan_keeps_profile_details(self, sql_store):
        await sql_store.upsert_profile(UserProfile(user_id=USER, email="user@example.com"))

        await sql_store.write_plan(USER, PlanTier.PRO)

        profile = await sql_store.read_profile(USER)
        assert profile.email == "user@example.com"
        assert profile.plan == PlanTier.PRO


@pytest.mark.asyncio
class TestMarkersAndEvents:
    """Tests for warning markers and the audit trail."""

    async def test_marker_claimed_once(self, sql_store):
        assert await sql_store.mark_threshold_sent(USER, TODAY, 80) is True
        assert await sql_store.mark_threshold_sent(USER, TODAY, 80) is False
        assert await sql_store.mark_threshold_sent(USER, TODAY, 100) is True
        assert await sql_store.mark_threshold_sent(USER, YESTERDAY, 80) is True

    async def test_cleared_marker_can_be_claimed_again(self, sql_store):
        await sql_store.mark_threshold_sent(USER, TODAY, 80)

        await sql_store.clear_threshold_marker(USER, TODAY, 80)

        assert await sql_store.mark_threshold_sent(USER, TODAY, 80) is True

    async def test_usage_event_recorded(self, sql_store, test_db):
        await sql_store.record_usage_event(USER, "image_generation", TODAY)

        result = await test_db.execute(
            select(ToolUsageEventEntity).where(ToolUsageEventEntity.user_id == USER)
        )
        events = result.scalars().all()
        assert [(e.tool_name, e.usage_date) for e in events] == [("image_generation", TODAY)]


@pytest.mark.asyncio
class TestFailures:
    """Database failures surface as StoreError, never as zero."""

    async def test_read_failure_raises_store_error(self, broken_store):
        with pytest.raises(StoreError):
            await broken_store.read_count(USER, TODAY)

    async def test_write_failure_raises_store_error(self, broken_store):
        with pytest.raises(StoreError):
            await broken_store.increment_count(USER, TODAY)

    async def test_engine_over_broken_database(self, broken_store, catalog, clock):
        engine = QuotaEngine(broken_store, catalog, clock=clock)

        with pytest.raises(QuotaCheckFailed):
            await engine.check_quota(USER)
        assert await engine.increment_usage(USER, "image_generation") is True
        assert await engine.reset_user_quota(USER) is False


@pytest.mark.asyncio
class TestEngineOverSql:
    """End-to-end checks of the engine against the SQL store."""

    async def test_limit_boundary(self, sql_store, catalog, clock):
        engine = QuotaEngine(sql_store, catalog, clock=clock)
        await engine.increment_usage(USER, "image_generation", quantity=9)

        assert (await engine.check_quota(USER)).remaining == 1

        await engine.increment_usage(USER, "image_generation")
        assert await engine.can_use(USER) is False

    async def test_plan_upgrade_then_reset(self, sql_store, catalog, clock):
        engine = QuotaEngine(sql_store, catalog, clock=clock)
        await engine.increment_usage(USER, "image_generation", quantity=10)

        await engine.update_plan(USER, "pro")
        snapshot = await engine.get_quota_snapshot(USER)
        assert (snapshot.daily_limit, snapshot.current_usage) == (2000, 10)

        assert await engine.reset_user_quota(USER)
        assert (await engine.get_quota_snapshot(USER)).current_usage == 0


@pytest.mark.asyncio
class TestUnreachableDatabase:
    """Connection failures from the driver surface as StoreError."""

    async def test_refused_connection_raises_store_error(self, unreachable_store):
        with pytest.raises(StoreError):
            await unreachable_store.read_count(USER, TODAY)
        with pytest.raises(StoreError):
            await unreachable_store.increment_count(USER, TODAY)

    async def test_engine_over_unreachable_database(
        self, unreachable_store, catalog, clock, mock_sender
    ):
        engine = QuotaEngine(unreachable_store, catalog, clock=clock)
        notifier = ThresholdNotifier(engine, unreachable_store, mock_sender)

        assert await engine.increment_usage(USER, "image_generation") is True
        with pytest.raises(QuotaCheckFailed):
            await engine.check_quota(USER)
        with pytest.raises(QuotaFetchFailed):
            await engine.get_quota_snapshot(USER)
        assert await engine.reset_user_quota(USER) is False
        assert await notifier.maybe_notify(USER) is False
        mock_sender.send_quota_warning.assert_not_called()

    async def test_connection_timeout_raises_store_error(self, timing_out_store, catalog, clock):
        with pytest.raises(StoreError):
            await timing_out_store.mark_threshold_sent(USER, TODAY, 80)

        engine = QuotaEngine(timing_out_store, catalog, clock=clock)
        assert await engine.increment_usage(USER, "image_generation") is True
        assert await engine.can_use(USER) is False
