"""
Factory for building the configured usage store.
"""

from typing import Optional

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.core.config import Settings
from common.core.constants import UsageStoreBackend
from common.core.otel_axiom_exporter import get_logger
from common.db.session import create_engine_from_settings, create_session_factory
from packages.quota.periods import Clock, utc_now
from .interface import UsageStoreInterface
from .memory_store import MemoryUsageStore
from .redis_store import RedisUsageStore
from .sql_store import SqlUsageStore

logger = get_logger(__name__)


def create_usage_store(
    settings: Settings,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    redis_client: Optional[redis.Redis] = None,
    clock: Clock = utc_now,
) -> UsageStoreInterface:
    """
    Build the usage store selected by settings.usage_store_backend.

    Args:
        settings: Application settings
        session_factory: Existing session factory for the SQL backend; when
            omitted an engine is created from settings and owned by the store
        redis_client: Existing client for the Redis backend
        clock: Time source for audit timestamps

    Returns:
        UsageStoreInterface: Configured usage store
    """
    backend = settings.usage_store_backend

    if backend == UsageStoreBackend.SQL:
        engine = None
        if session_factory is None:
            engine = create_engine_from_settings(settings)
            session_factory = create_session_factory(engine)
        logger.info("Initialized SQL usage store")
        return SqlUsageStore(session_factory, clock=clock, engine=engine)

    if backend == UsageStoreBackend.REDIS:
        if redis_client is None:
            redis_client = redis.Redis(
                host=settings.redis_host,
                port=settings.redis_port,
                password=settings.redis_password,
                db=settings.redis_db,
                decode_responses=True,
                socket_timeout=settings.redis_socket_timeout_seconds,
                socket_connect_timeout=settings.redis_socket_timeout_seconds,
            )
        logger.info(
            f"Initialized Redis usage store - {settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
        )
        return RedisUsageStore(
            redis_client,
            retention_days=settings.redis_usage_retention_days,
            clock=clock,
        )

    logger.info("Initialized memory usage store")
    return MemoryUsageStore(clock=clock)
