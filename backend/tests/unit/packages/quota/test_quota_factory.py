"""Unit tests for quota component wiring."""

import pytest
from datetime import date

from common.core.config import Settings
from common.core.constants import NotificationProvider, UsageStoreBackend
from packages.quota.factory import build_quota_components
from packages.quota.models.domain.enums import RateLimitTier
from packages.quota.providers.notification.http_sender import HttpQuotaWarningSender
from packages.quota.providers.notification.log_sender import LogQuotaWarningSender
from packages.quota.providers.usage_store.factory import create_usage_store
from packages.quota.providers.usage_store.memory_store import MemoryUsageStore
from packages.quota.providers.usage_store.redis_store import RedisUsageStore
from packages.quota.providers.usage_store.sql_store import SqlUsageStore
from packages.quota.services.rate_limiter import PlanRateLimiter

TODAY = date(2025, 3, 14)


@pytest.mark.asyncio
class TestBuildQuotaComponents:
    """Tests for build_quota_components."""

    async def test_memory_backend_with_log_sender(self, clock):
        components = build_quota_components(
            Settings(usage_store_backend=UsageStoreBackend.MEMORY), clock=clock
        )

        assert isinstance(components.store, MemoryUsageStore)
        assert isinstance(components.sender, LogQuotaWarningSender)
        assert components.engine.store is components.store
        assert components.listener.engine is components.engine
        assert isinstance(components.rate_limiter, PlanRateLimiter)

        await components.engine.increment_usage("user-1", "image_generation")
        snapshot = await components.engine.get_quota_snapshot("user-1")
        assert snapshot.current_usage == 1
        await components.close()

    async def test_http_sender_from_settings(self):
        components = build_quota_components(
            Settings(
                usage_store_backend=UsageStoreBackend.MEMORY,
                notification_provider=NotificationProvider.HTTP,
                notification_endpoint="https://app.example.com/api/email/send",
                notification_api_token="token-123",
            )
        )

        assert isinstance(components.sender, HttpQuotaWarningSender)
        assert components.sender.api_token == "token-123"
        await components.close()

    async def test_injected_store_and_sender_are_used(self, memory_store, mock_sender):
        components = build_quota_components(
            Settings(usage_store_backend=UsageStoreBackend.SQL),
            store=memory_store,
            sender=mock_sender,
        )

        assert components.store is memory_store
        assert components.sender is mock_sender
        await components.close()
        mock_sender.close.assert_awaited_once()

    async def test_rate_limiter_counts_requests(self):
        components = build_quota_components(Settings(usage_store_backend=UsageStoreBackend.MEMORY))

        result = await components.rate_limiter.check_rate_limit("user-1", RateLimitTier.STRICT)

        assert result.success
        assert result.remaining == 4
        await components.close()


@pytest.mark.asyncio
class TestCreateUsageStore:
    """Tests for create_usage_store."""

    async def test_sql_backend_owns_engine(self):
        store = create_usage_store(
            Settings(
                usage_store_backend=UsageStoreBackend.SQL,
                database_url_override="sqlite+aiosqlite:///:memory:",
            )
        )

        assert isinstance(store, SqlUsageStore)
        await store.close()

    async def test_sql_backend_with_existing_session_factory(self, test_session_factory):
        store = create_usage_store(
            Settings(usage_store_backend=UsageStoreBackend.SQL),
            session_factory=test_session_factory,
        )

        assert isinstance(store, SqlUsageStore)
        assert await store.increment_count("user-1", TODAY) == 1

    async def test_redis_backend(self):
        store = create_usage_store(Settings(usage_store_backend=UsageStoreBackend.REDIS))

        assert isinstance(store, RedisUsageStore)
        await store.close()
