"""Database module for managing the Postgres connection pool.

This module handles:
- Database connection pool initialization
- Schema management
- Connection lifecycle
"""

import logging
from typing import Optional

import asyncpg
import backoff

from .exceptions import DatabaseError, DatabaseSchemaError
from .lib.schema_manager import SchemaManager

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None
_schema_manager: Optional[SchemaManager] = None

RETRY_ERRORS = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
    OSError,
)


@backoff.on_exception(backoff.expo, RETRY_ERRORS, max_tries=5)
async def _create_pool(db_url: str) -> asyncpg.Pool:
    return await asyncpg.create_pool(
        db_url,
        min_size=1,
        max_size=10,
        max_inactive_connection_lifetime=300.0,  # 5 minutes
        command_timeout=60.0
    )


async def init_db(db_url: Optional[str] = None) -> asyncpg.Pool:
    """Initialize the database connection pool and schema.

    Args:
        db_url: Optional database URL. If not provided, will use settings.

    Returns:
        The connection pool

    Raises:
        DatabaseError: If no database URL is configured
        DatabaseSchemaError: If the schema cannot be applied
    """
    global _pool, _schema_manager

    if _pool is not None:
        return _pool

    if not db_url:
        # Import here to avoid circular imports
        from config import get_settings
        db_url = get_settings().get('db_url')
    if not db_url:
        raise DatabaseError("Database URL not provided")

    pool = await _create_pool(db_url)
    try:
        schema_manager = SchemaManager(pool)
        await schema_manager.initialize()
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        await pool.close()
        raise

    _pool, _schema_manager = pool, schema_manager
    logger.info(f"Database ready at schema version {schema_manager.current_version}")
    return _pool


async def get_pool() -> asyncpg.Pool:
    """Get the database connection pool, initializing it on first use.

    Returns:
        The connection pool
    """
    if not _pool:
        await init_db()
    return _pool


async def close() -> None:
    """Close the database connection pool."""
    global _pool, _schema_manager

    if _pool:
        await _pool.close()
        _pool = None
        _schema_manager = None
        logger.info("Database pool closed")


# Export public interface
__all__ = ['init_db', 'get_pool', 'close', 'DatabaseError', 'DatabaseSchemaError', 'SchemaManager']
