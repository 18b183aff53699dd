"""In-process store and snapshot-based transactions."""

import copy
import logging
from abc import abstractmethod
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from ..models import Listing
from . import MarketStore, Transactional

logger = logging.getLogger(__name__)


class SnapshotTransactionMixin(Transactional):
    """Transactions by copying state on entry and restoring it on failure.

    Subclasses implement ``_snapshot`` and ``_restore``. Nested transactions
    join the outermost one.
    """

    _tx_depth = 0

    @abstractmethod
    def _snapshot(self) -> Any:
        """Copy of the state a rollback returns to."""

    @abstractmethod
    def _restore(self, state: Any) -> None:
        """Put back a state taken by ``_snapshot``."""

    @asynccontextmanager
    async def transaction(self):
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield self
            finally:
                self._tx_depth -= 1
            return

        saved = self._snapshot()
        self._tx_depth = 1
        try:
            yield self
        except BaseException:
            self._restore(saved)
            logger.debug(f"Rolled back {type(self).__name__} transaction")
            raise
        finally:
            self._tx_depth = 0


class MemoryStore(SnapshotTransactionMixin, MarketStore):
    """Marketplace state held in process memory."""

    def __init__(self, fee_basis_points: int = 0):
        self._listings: Dict[int, Listing] = {}
        self._active_by_asset: Dict[int, int] = {}
        self._next_asset_id = 0
        self._next_listing_id = 0
        self._fee_basis_points = fee_basis_points
        self._balance = 0

    def _snapshot(self) -> Dict[str, Any]:
        return {
            'listings': copy.deepcopy(self._listings),
            'active_by_asset': dict(self._active_by_asset),
            'next_asset_id': self._next_asset_id,
            'next_listing_id': self._next_listing_id,
            'fee_basis_points': self._fee_basis_points,
            'balance': self._balance,
        }

    def _restore(self, state: Dict[str, Any]) -> None:
        self._listings = state['listings']
        self._active_by_asset = state['active_by_asset']
        self._next_asset_id = state['next_asset_id']
        self._next_listing_id = state['next_listing_id']
        self._fee_basis_points = state['fee_basis_points']
        self._balance = state['balance']

    async def next_asset_id(self) -> int:
        asset_id = self._next_asset_id
        self._next_asset_id += 1
        return asset_id

    async def asset_count(self) -> int:
        return self._next_asset_id

    async def next_listing_id(self) -> int:
        listing_id = self._next_listing_id
        self._next_listing_id += 1
        return listing_id

    async def listing_count(self) -> int:
        return self._next_listing_id

    async def insert_listing(self, listing: Listing) -> None:
        self._listings[listing.listing_id] = copy.copy(listing)

    async def get_listing(self, listing_id: int) -> Optional[Listing]:
        listing = self._listings.get(listing_id)
        # Callers get a copy so only the store mutates records
        return copy.copy(listing) if listing else None

    async def deactivate_listing(self, listing_id: int) -> None:
        self._listings[listing_id].active = False

    async def get_active_listing_id(self, asset_id: int) -> Optional[int]:
        return self._active_by_asset.get(asset_id)

    async def set_active_listing_id(self, asset_id: int, listing_id: int) -> None:
        self._active_by_asset[asset_id] = listing_id

    async def clear_active_listing_id(self, asset_id: int) -> None:
        self._active_by_asset.pop(asset_id, None)

    async def get_fee_basis_points(self) -> int:
        return self._fee_basis_points

    async def set_fee_basis_points(self, basis_points: int) -> None:
        self._fee_basis_points = basis_points

    async def get_balance(self) -> int:
        return self._balance

    async def adjust_balance(self, delta: int) -> int:
        self._balance += delta
        return self._balance
