import asyncpg
import structlog

from src.config.settings import get_settings

log = structlog.get_logger()

# Query functions accept either the pool or a connection inside a transaction.
Executor = asyncpg.Pool | asyncpg.Connection

_pool: asyncpg.Pool | None = None


async def get_pool() -> asyncpg.Pool:
    """Return the process-wide pool, creating it on first use.

    Owned by the process entry point (FastAPI lifespan or arq worker startup).
    """
    global _pool
    if _pool is None:
        settings = get_settings()
        _pool = await asyncpg.create_pool(settings.database_url, min_size=1, max_size=10)
        log.info("db_pool_created")
    assert _pool is not None
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        log.info("db_pool_closed")
