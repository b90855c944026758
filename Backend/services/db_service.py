# services/db_service.py
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from time import monotonic
from typing import Any, AsyncIterator, Optional
from urllib.parse import urlparse

import asyncpg

from app.config import require_database_url, settings
from app.core.logging import get_logger

logger = get_logger()

APPLICATION_NAME = "latest10-backend"
SLOW_QUERY_THRESHOLD_MS = 1_000

_pool: Optional[asyncpg.Pool] = None
_pool_lock = asyncio.Lock()


def normalize_database_url(raw_dsn: str) -> str:
    """
    Accept SQLAlchemy-style ``postgresql+asyncpg://`` DSNs; asyncpg only
    understands ``postgresql://``. Everything after the scheme is untouched.
    """
    dsn = raw_dsn.strip()
    prefix = "postgresql+asyncpg://"
    if dsn.startswith(prefix):
        return "postgresql://" + dsn[len(prefix):]
    return dsn


async def init_db_pool() -> asyncpg.Pool:
    """Create the shared pool on first use. Safe to call repeatedly."""
    global _pool
    if _pool is not None:
        return _pool

    async with _pool_lock:
        if _pool is not None:
            return _pool

        dsn = normalize_database_url(require_database_url())
        parsed = urlparse(dsn)
        logger.info(
            "db_pool_initializing",
            dsn_host=parsed.hostname,
            dsn_port=parsed.port,
            min_size=settings.DB_POOL_MIN_SIZE,
            max_size=settings.DB_POOL_MAX_SIZE,
        )
        _pool = await asyncpg.create_pool(
            dsn=dsn,
            min_size=settings.DB_POOL_MIN_SIZE,
            max_size=settings.DB_POOL_MAX_SIZE,
            statement_cache_size=0,
            max_inactive_connection_lifetime=30,
            server_settings={
                "application_name": APPLICATION_NAME,
                "statement_timeout": str(settings.DB_STATEMENT_TIMEOUT_MS),
            },
        )
        return _pool


async def close_db_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("db_pool_closed")


@asynccontextmanager
async def connection() -> AsyncIterator[asyncpg.Connection]:
    pool = await init_db_pool()
    async with pool.acquire() as conn:
        yield conn


async def _timed(method: str, query: str, *args: Any, timeout: Optional[float] = None) -> Any:
    effective_timeout = timeout if timeout is not None else settings.DB_QUERY_TIMEOUT_S
    started = monotonic()
    try:
        async with connection() as conn:
            return await getattr(conn, method)(query, *args, timeout=effective_timeout)
    finally:
        duration_ms = (monotonic() - started) * 1000
        if duration_ms >= SLOW_QUERY_THRESHOLD_MS:
            logger.warning(
                "db_slow_query",
                method=method,
                duration_ms=round(duration_ms, 2),
                query_snippet=query.strip().split("\n")[0][:200],
            )


async def fetchrow(query: str, *args: Any, timeout: Optional[float] = None) -> Optional[asyncpg.Record]:
    return await _timed("fetchrow", query, *args, timeout=timeout)


async def execute(query: str, *args: Any, timeout: Optional[float] = None) -> str:
    """Run a statement; returns asyncpg's status tag, e.g. ``DELETE 3``."""
    return await _timed("execute", query, *args, timeout=timeout)
