"""REST API module for the marketplace.

This module provides HTTP endpoints for:
- Minting assets and approving the marketplace
- Creating, buying and cancelling listings
- Fee administration, withdrawals and market statistics
- System health monitoring
- Development token issuing
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional, Dict, Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from auth import TokenManager
from config import get_settings
from database import init_db, close as db_close
from market import (
    Marketplace, MemoryStore, InMemoryAssetRegistry, InMemoryPaymentLedger,
    StaticOwnerAuthority
)
from market.store.postgres import PostgresStore, PostgresAssetRegistry

logger = logging.getLogger(__name__)

API_TITLE = "Asset Market API"
API_VERSION = "1.0.0"


async def build_marketplace(settings: Dict[str, Any]) -> Marketplace:
    """Assemble a marketplace from settings.

    With the postgres backend the marketplace state and the asset registry
    are both persisted; the payment ledger is always the in-process one.
    """
    if settings['store_backend'] == 'postgres':
        pool = await init_db(settings['db_url'])
        store = PostgresStore(pool)
        await store.initialize(settings['fee_basis_points'])
        registry = PostgresAssetRegistry(store)
    else:
        store = MemoryStore(fee_basis_points=settings['fee_basis_points'])
        registry = InMemoryAssetRegistry()

    marketplace = Marketplace(
        store=store,
        registry=registry,
        payments=InMemoryPaymentLedger(),
        authority=StaticOwnerAuthority(settings['owner_address']),
        operator_address=settings['marketplace_address'],
        fee_recipient=settings['fee_recipient']
    )
    logger.info(f"Marketplace ready with {settings['store_backend']} store")
    return marketplace


# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    logger.info("Initializing API...")
    owns_marketplace = app.state.marketplace is None
    if owns_marketplace:
        app.state.marketplace = await build_marketplace(app.state.settings)

    yield

    # Shutdown
    logger.info("Shutting down API...")
    if owns_marketplace:
        if isinstance(app.state.marketplace.store, PostgresStore):
            await db_close()
        app.state.marketplace = None


def create_app(
    marketplace: Optional[Marketplace] = None,
    settings: Optional[Dict[str, Any]] = None
) -> FastAPI:
    """Create the API application.

    Args:
        marketplace: Marketplace to serve. Built from settings at startup if omitted.
        settings: Settings dict; loaded from settings.conf if omitted.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=API_TITLE,
        description="REST API for trading uniquely owned digital assets",
        version=API_VERSION,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.marketplace = marketplace
    app.state.store_backend = (
        settings['store_backend'] if marketplace is None
        else ('postgres' if isinstance(marketplace.store, PostgresStore) else 'memory')
    )
    app.state.tokens = TokenManager(
        settings.get('jwt_secret'),
        settings.get('token_expiry_minutes', 60)
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root():
        return {
            "name": API_TITLE,
            "version": API_VERSION,
            "status": "running"
        }

    # Import and include all routers
    from .assets import router as assets_router
    from .listings import router as listings_router
    from .market import router as market_router
    from .system import router as system_router

    app.include_router(assets_router)
    app.include_router(listings_router)
    app.include_router(market_router)
    app.include_router(system_router)

    if settings.get('allow_dev_tokens'):
        from .auth import router as auth_router
        app.include_router(auth_router)
        logger.warning("Development token endpoint enabled at /auth/token")

    return app


__all__ = ['create_app', 'build_marketplace', 'lifespan']
