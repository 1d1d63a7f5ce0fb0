"""
Engine and session factory construction.

Nothing here is created at import time: the composition root builds one
engine per process and hands the session factory to the stores that need it.
"""

from uuid import uuid4

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy import pool

from common.core.config import Settings
from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """
    Create the async engine for the configured database.

    NullPool (db_use_nullpool=True): No pooling, new connection per operation (for workers)
    Default pool: Connection pooling (for API servers with concurrent requests)
    """
    url = settings.database_url
    engine_kwargs = {
        "echo": settings.debug,
        "pool_pre_ping": True,
    }

    if url.startswith("postgresql+asyncpg://"):
        engine_kwargs["pool_recycle"] = 3600
        engine_kwargs["connect_args"] = {
            "prepared_statement_name_func": lambda: f"__asyncpg_{uuid4()}__",
            "command_timeout": settings.db_command_timeout_seconds,
        }
        if settings.db_use_nullpool:
            logger.info("Using NullPool - no connection pooling (worker mode)")
            engine_kwargs["poolclass"] = pool.NullPool
        else:
            logger.info(
                f"Using connection pooling - pool_size={settings.db_pool_size}, max_overflow={settings.db_pool_overflow}"
            )
            engine_kwargs["pool_size"] = settings.db_pool_size
            engine_kwargs["max_overflow"] = settings.db_pool_overflow
    elif url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"timeout": settings.db_command_timeout_seconds}

    return create_async_engine(url, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory bound to an engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
