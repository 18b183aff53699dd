"""System health endpoints."""

import logging
import os
import time
from typing import Optional

import psutil
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from market import Marketplace
from market.store.postgres import PostgresStore
from ..dependencies import get_marketplace

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/system",
    tags=["System"]
)


class SystemHealth(BaseModel):
    """Model for system health data."""
    status: str
    uptime: float
    cpu_usage: float
    memory_usage: float
    disk_usage: float
    store_backend: str
    database_status: Optional[str] = None
    in_settlement: bool


async def _database_status(marketplace: Marketplace) -> Optional[str]:
    store = marketplace.store
    if not isinstance(store, PostgresStore):
        return None
    try:
        await store.ensure_pool()
        async with store.pool.acquire() as conn:
            await conn.fetchval('SELECT 1')
        return "connected"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return "unavailable"


@router.get("/health", response_model=SystemHealth)
async def get_system_health(
    request: Request,
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Get system health status.

    Returns:
        SystemHealth object containing process and store status
    """
    process = psutil.Process(os.getpid())
    cpu_percent = psutil.cpu_percent()
    memory = psutil.virtual_memory()
    disk = psutil.disk_usage('/')

    db_status = await _database_status(marketplace)
    healthy = db_status != "unavailable" and cpu_percent < 80

    return SystemHealth(
        status="healthy" if healthy else "degraded",
        uptime=time.time() - process.create_time(),
        cpu_usage=cpu_percent,
        memory_usage=memory.percent,
        disk_usage=disk.percent,
        store_backend=getattr(request.app.state, 'store_backend', 'memory'),
        database_status=db_status,
        in_settlement=marketplace.guard.in_settlement
    )


# Export the router
__all__ = ['router']
