"""Storage for marketplace state.

The store holds everything the marketplace persists:
- Listing records keyed by listing id (tombstones included)
- The asset id -> active listing id index
- The asset and listing id counters
- The fee in basis points
- The marketplace balance (funds held between receipt and payout)

Stores are transactional: every mutating operation runs inside
``transaction()``, and all writes made inside it are discarded if the block
raises.
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager, Optional

from ..models import Listing


class Transactional(ABC):
    """Something that can take part in a unit of work.

    ``durable`` participants commit to external storage, where the commit
    itself can fail. In-memory participants cannot fail to commit.
    """

    durable = False

    @abstractmethod
    def transaction(self) -> AsyncContextManager:
        """Open a transaction that rolls back if the block raises."""


class MarketStore(Transactional):
    """Abstract marketplace state store."""

    @abstractmethod
    async def next_asset_id(self) -> int:
        """Allocate and return the next asset id."""

    @abstractmethod
    async def asset_count(self) -> int:
        """Number of asset ids allocated so far."""

    @abstractmethod
    async def next_listing_id(self) -> int:
        """Allocate and return the next listing id."""

    @abstractmethod
    async def listing_count(self) -> int:
        """Number of listing ids allocated so far."""

    @abstractmethod
    async def insert_listing(self, listing: Listing) -> None:
        """Store a new listing record."""

    @abstractmethod
    async def get_listing(self, listing_id: int) -> Optional[Listing]:
        """Return the listing record or None."""

    @abstractmethod
    async def deactivate_listing(self, listing_id: int) -> None:
        """Mark a listing record inactive."""

    @abstractmethod
    async def get_active_listing_id(self, asset_id: int) -> Optional[int]:
        """Return the indexed active listing id for an asset, if any."""

    @abstractmethod
    async def set_active_listing_id(self, asset_id: int, listing_id: int) -> None:
        """Index a listing as the active one for an asset."""

    @abstractmethod
    async def clear_active_listing_id(self, asset_id: int) -> None:
        """Remove the index entry for an asset."""

    @abstractmethod
    async def get_fee_basis_points(self) -> int:
        """Return the current fee."""

    @abstractmethod
    async def set_fee_basis_points(self, basis_points: int) -> None:
        """Replace the current fee."""

    @abstractmethod
    async def get_balance(self) -> int:
        """Return the funds currently held by the marketplace."""

    @abstractmethod
    async def adjust_balance(self, delta: int) -> int:
        """Add ``delta`` to the balance and return the new balance."""


from .memory import MemoryStore, SnapshotTransactionMixin  # noqa: E402

__all__ = ['Transactional', 'MarketStore', 'MemoryStore', 'SnapshotTransactionMixin']
