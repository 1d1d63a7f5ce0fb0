# Shared pytest configuration and fixtures for all test types
import pytest
import pytest_asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from common.db.base import Base
from packages.quota.models.database.quota import (  # noqa: F401
    DailyUsageEntity,
    QuotaNotificationEntity,
    QuotaProfileEntity,
    ToolUsageEventEntity,
)
from packages.quota.models.domain.enums import PlanTier
from packages.quota.models.domain.quota import NotificationResult, UserProfile
from packages.quota.plans import PlanCatalog
from packages.quota.providers.usage_store.memory_store import MemoryUsageStore
from packages.quota.providers.usage_store.sql_store import SqlUsageStore
from packages.quota.services.quota_engine import QuotaEngine
from packages.quota.services.threshold_notifier import ThresholdNotifier

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Mid-afternoon UTC, well away from the day boundary
FIXED_NOW = datetime(2025, 3, 14, 15, 30, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock for tests. Time only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)

    def set(self, now: datetime) -> None:
        self.now = now


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine and initialize schema."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_connection(test_engine):
    """Create test connection with outer transaction for rollback isolation."""
    async with test_engine.connect() as connection:
        trans = await connection.begin()
        yield connection
        await trans.rollback()


@pytest_asyncio.fixture(scope="function")
async def test_session_factory(test_connection):
    """Create session factory bound to test connection.

    Using join_transaction_mode="create_savepoint" so commits inside the
    store release savepoints instead of ending the outer transaction.
    """
    return async_sessionmaker(
        bind=test_connection,
        class_=AsyncSession,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )


@pytest_asyncio.fixture(scope="function")
async def test_db(test_session_factory):
    """Create a test database session."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def clock():
    """Frozen clock starting at FIXED_NOW."""
    return FrozenClock()


@pytest.fixture
def catalog():
    return PlanCatalog()


@pytest.fixture
def memory_store(clock):
    """In-memory usage store sharing the frozen clock."""
    return MemoryUsageStore(clock=clock)


@pytest.fixture
def sql_store(test_session_factory, clock):
    """SQL usage store on the rolled-back test connection."""
    return SqlUsageStore(test_session_factory, clock=clock)


@pytest.fixture
def quota_engine(memory_store, catalog, clock):
    """Quota engine over the in-memory store."""
    return QuotaEngine(memory_store, catalog, clock=clock)


@pytest.fixture
def mock_sender():
    """Quota warning sender that always succeeds."""
    sender = AsyncMock()
    sender.send_quota_warning = AsyncMock(return_value=NotificationResult(success=True))
    sender.close = AsyncMock(return_value=None)
    return sender


@pytest.fixture
def threshold_notifier(quota_engine, memory_store, mock_sender):
    return ThresholdNotifier(quota_engine, memory_store, mock_sender, thresholds=[80, 100])


@pytest_asyncio.fixture(scope="function")
async def free_user(memory_store):
    """Free-plan user with an email on file."""
    return await memory_store.upsert_profile(
        UserProfile(
            user_id="user-free",
            email="free@example.com",
            full_name="Free User",
            plan=PlanTier.FREE,
        )
    )
