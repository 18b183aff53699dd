"""Postgres-backed marketplace store and asset registry.

All statements issued inside ``transaction()`` run on one pooled connection
within a single database transaction, so a failed operation leaves no rows
behind. Reads outside a transaction borrow a connection per call.

The registry shares the store's connection, so listings and the ownership
they depend on commit or roll back together.
"""

import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from decimal import Decimal
from typing import Optional

from asyncpg.pool import Pool

from database import get_pool
from ..exceptions import AssetTransferError, InvalidAssetError, NotOwnerError
from ..models import Listing
from ..registry import AssetRegistry
from . import MarketStore, Transactional

logger = logging.getLogger(__name__)


class PostgresStore(MarketStore):
    """Marketplace state stored in the tables created by schema v1."""

    durable = True

    def __init__(self, pool: Optional[Pool] = None):
        """Initialize the store.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
        """
        self.pool = pool
        # Connection of the transaction running in the current task, if any
        self._conn: ContextVar = ContextVar(f"market_store_conn_{id(self)}", default=None)

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def initialize(self, fee_basis_points: int = 0) -> None:
        """Seed the state row on first start.

        An existing row is left alone, so counters and the fee survive restarts.
        """
        async with self.connection() as conn:
            created = await conn.fetchval(
                '''
                INSERT INTO market_state (id, fee_basis_points)
                VALUES (1, $1)
                ON CONFLICT (id) DO NOTHING
                RETURNING id
                ''',
                fee_basis_points
            )
        if created is not None:
            logger.info(f"Seeded market state with fee {fee_basis_points} bps")

    @asynccontextmanager
    async def transaction(self):
        if self._conn.get() is not None:
            # Join the transaction already in progress
            yield self
            return

        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                token = self._conn.set(conn)
                try:
                    yield self
                finally:
                    self._conn.reset(token)

    @asynccontextmanager
    async def connection(self):
        """Connection of the running transaction, or a pooled one."""
        conn = self._conn.get()
        if conn is not None:
            yield conn
            return
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            yield conn

    async def _bump_counter(self, column: str) -> int:
        async with self.connection() as conn:
            value = await conn.fetchval(
                f'''
                UPDATE market_state
                SET {column} = {column} + 1, updated_at = now()
                WHERE id = 1
                RETURNING {column} - 1
                '''
            )
        return int(value)

    async def _read_state(self, column: str) -> int:
        async with self.connection() as conn:
            value = await conn.fetchval(
                f'SELECT {column} FROM market_state WHERE id = 1'
            )
        return int(value)

    async def next_asset_id(self) -> int:
        return await self._bump_counter('next_asset_id')

    async def asset_count(self) -> int:
        return await self._read_state('next_asset_id')

    async def next_listing_id(self) -> int:
        return await self._bump_counter('next_listing_id')

    async def listing_count(self) -> int:
        return await self._read_state('next_listing_id')

    async def insert_listing(self, listing: Listing) -> None:
        async with self.connection() as conn:
            await conn.execute(
                '''
                INSERT INTO listings (
                    id, asset_id, seller_address, price, active
                ) VALUES ($1, $2, $3, $4, $5)
                ''',
                listing.listing_id,
                listing.asset_id,
                listing.seller_address,
                Decimal(listing.price),
                listing.active
            )

    async def get_listing(self, listing_id: int) -> Optional[Listing]:
        async with self.connection() as conn:
            row = await conn.fetchrow(
                'SELECT * FROM listings WHERE id = $1',
                listing_id
            )
        if not row:
            return None
        return Listing(
            listing_id=int(row['id']),
            asset_id=int(row['asset_id']),
            seller_address=row['seller_address'],
            price=int(row['price']),
            active=row['active']
        )

    async def deactivate_listing(self, listing_id: int) -> None:
        async with self.connection() as conn:
            await conn.execute(
                '''
                UPDATE listings
                SET active = false, updated_at = now()
                WHERE id = $1
                ''',
                listing_id
            )

    async def get_active_listing_id(self, asset_id: int) -> Optional[int]:
        async with self.connection() as conn:
            value = await conn.fetchval(
                'SELECT listing_id FROM active_listings WHERE asset_id = $1',
                asset_id
            )
        return int(value) if value is not None else None

    async def set_active_listing_id(self, asset_id: int, listing_id: int) -> None:
        async with self.connection() as conn:
            await conn.execute(
                '''
                INSERT INTO active_listings (asset_id, listing_id)
                VALUES ($1, $2)
                ON CONFLICT (asset_id) DO UPDATE
                SET listing_id = EXCLUDED.listing_id
                ''',
                asset_id,
                listing_id
            )

    async def clear_active_listing_id(self, asset_id: int) -> None:
        async with self.connection() as conn:
            await conn.execute(
                'DELETE FROM active_listings WHERE asset_id = $1',
                asset_id
            )

    async def get_fee_basis_points(self) -> int:
        return await self._read_state('fee_basis_points')

    async def set_fee_basis_points(self, basis_points: int) -> None:
        async with self.connection() as conn:
            await conn.execute(
                '''
                UPDATE market_state
                SET fee_basis_points = $1, updated_at = now()
                WHERE id = 1
                ''',
                basis_points
            )

    async def get_balance(self) -> int:
        return await self._read_state('balance')

    async def adjust_balance(self, delta: int) -> int:
        async with self.connection() as conn:
            value = await conn.fetchval(
                '''
                UPDATE market_state
                SET balance = balance + $1, updated_at = now()
                WHERE id = 1
                RETURNING balance
                ''',
                Decimal(delta)
            )
        return int(value)


class PostgresAssetRegistry(AssetRegistry, Transactional):
    """Asset ownership and approvals stored in the tables created by schema v2.

    Runs on the connection of ``store``; its transaction is the store's.
    """

    durable = True

    def __init__(self, store: PostgresStore):
        self.store = store

    def transaction(self):
        return self.store.transaction()

    async def owner_of(self, asset_id: int) -> Optional[str]:
        async with self.store.connection() as conn:
            return await conn.fetchval(
                'SELECT owner_address FROM assets WHERE id = $1',
                asset_id
            )

    async def token_uri(self, asset_id: int) -> Optional[str]:
        async with self.store.connection() as conn:
            return await conn.fetchval(
                'SELECT uri FROM assets WHERE id = $1',
                asset_id
            )

    async def is_transfer_approved(self, asset_id: int, operator: str) -> bool:
        async with self.store.connection() as conn:
            return await conn.fetchval(
                '''
                SELECT a.owner_address = $2
                    OR EXISTS (
                        SELECT 1 FROM asset_approvals
                        WHERE asset_id = a.id AND operator_address = $2
                    )
                    OR EXISTS (
                        SELECT 1 FROM operator_approvals
                        WHERE owner_address = a.owner_address AND operator_address = $2
                    )
                FROM assets a
                WHERE a.id = $1
                ''',
                asset_id,
                operator
            ) or False

    async def mint(self, to_address: str, asset_id: int, uri: str) -> None:
        async with self.store.connection() as conn:
            created = await conn.fetchval(
                '''
                INSERT INTO assets (id, owner_address, uri)
                VALUES ($1, $2, $3)
                ON CONFLICT (id) DO NOTHING
                RETURNING id
                ''',
                asset_id,
                to_address,
                uri
            )
        if created is None:
            raise InvalidAssetError(f"Asset {asset_id} already exists")
        logger.debug(f"Registry minted asset {asset_id} to {to_address}")

    async def transfer(self, from_address: str, to_address: str, asset_id: int) -> None:
        async with self.store.connection() as conn:
            owner = await conn.fetchval(
                'SELECT owner_address FROM assets WHERE id = $1 FOR UPDATE',
                asset_id
            )
            if owner is None:
                raise AssetTransferError(f"Asset {asset_id} does not exist", asset_id)
            if owner != from_address:
                raise AssetTransferError(
                    f"Asset {asset_id} is owned by {owner}, not {from_address}",
                    asset_id
                )
            await conn.execute(
                'UPDATE assets SET owner_address = $1 WHERE id = $2',
                to_address,
                asset_id
            )
            await conn.execute(
                'DELETE FROM asset_approvals WHERE asset_id = $1',
                asset_id
            )

    async def approve(self, asset_id: int, operator: str, caller: str) -> None:
        """Let ``operator`` move a single asset. Only the owner may approve."""
        owner = await self.owner_of(asset_id)
        if owner is None:
            raise InvalidAssetError(f"Asset {asset_id} does not exist")
        if owner != caller:
            raise NotOwnerError(f"Only the owner of asset {asset_id} can approve operators")
        async with self.store.connection() as conn:
            await conn.execute(
                '''
                INSERT INTO asset_approvals (asset_id, operator_address)
                VALUES ($1, $2)
                ON CONFLICT (asset_id) DO UPDATE
                SET operator_address = EXCLUDED.operator_address
                ''',
                asset_id,
                operator
            )

    async def set_approval_for_all(self, owner: str, operator: str, approved: bool = True) -> None:
        """Let ``operator`` move every asset of ``owner``."""
        async with self.store.connection() as conn:
            if approved:
                await conn.execute(
                    '''
                    INSERT INTO operator_approvals (owner_address, operator_address)
                    VALUES ($1, $2)
                    ON CONFLICT DO NOTHING
                    ''',
                    owner,
                    operator
                )
            else:
                await conn.execute(
                    '''
                    DELETE FROM operator_approvals
                    WHERE owner_address = $1 AND operator_address = $2
                    ''',
                    owner,
                    operator
                )
