"""
Operation-scoped database sessions.

Each store call takes its own session and gives the connection back as soon
as the statement is done, so nothing holds a connection while the caller
runs the metered operation.

Usage:
    async with session_scope(session_factory) as session:
        result = await session.execute(query)
    # committed and released here
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
    readonly: bool = False,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session for one unit of work.

    Commits on success unless readonly; rolls back and re-raises on any error.

    Args:
        session_factory: Factory to open the session from
        readonly: Skip the commit for pure reads
    """
    start = time.perf_counter()
    async with session_factory() as session:
        try:
            yield session
            if not readonly:
                await session.commit()
        except Exception as e:
            logger.warning(
                f"Rolling back session after {type(e).__name__}",
                extra={"readonly": readonly},
            )
            await session.rollback()
            raise
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.debug(f"Session scope closed after {elapsed_ms:.2f}ms, readonly={readonly}")
