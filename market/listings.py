"""Listing ledger.

The ledger is the only component that writes listing records and the
asset -> active listing index. It guarantees:
- every listing has a positive integer price
- an asset has at most one active listing at a time
- a listing is retired exactly once and never reactivated
- retired listings stay queryable by id but leave the asset index
"""

import logging
from typing import Optional

from .events import Listed
from .exceptions import (
    AlreadyListedError,
    InvalidAssetError,
    InvalidPriceError,
    ListingNotActiveError,
    ListingNotFoundError,
    NoActiveListingError,
    NotApprovedError,
    NotOwnerError,
    NotSellerError,
)
from .models import Listing
from .registry import AssetRegistry
from .store import MarketStore
from .unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def validate_price(price: int) -> int:
    """Return ``price`` if it is a positive integer.

    Raises:
        InvalidPriceError: Otherwise
    """
    if isinstance(price, bool) or not isinstance(price, int):
        raise InvalidPriceError(f"Price must be an integer amount, got {price!r}")
    if price <= 0:
        raise InvalidPriceError(f"Price must be positive, got {price}")
    return price


class ListingLedger:
    """Creates, stores and retires listings."""

    def __init__(self, store: MarketStore, registry: AssetRegistry, operator_address: str):
        """Initialize the ledger.

        Args:
            store: Marketplace state store
            registry: Asset registry used for ownership and approval checks
            operator_address: Address the registry must approve before an
                asset can be listed (the marketplace itself)
        """
        self.store = store
        self.registry = registry
        self.operator_address = operator_address

    async def create(
        self,
        uow: UnitOfWork,
        asset_id: int,
        price: int,
        seller_address: str
    ) -> Listing:
        """Create an active listing for an asset.

        Preconditions are checked in this order, before any write:
        the asset exists, the seller owns it, the price is positive, the
        marketplace is approved to move it, and it is not already listed.

        Raises:
            InvalidAssetError: Asset unknown to the registry
            NotOwnerError: Seller does not own the asset
            InvalidPriceError: Price is not a positive integer
            NotApprovedError: Marketplace may not move the asset
            AlreadyListedError: Asset already has an active listing
        """
        owner = await self.registry.owner_of(asset_id)
        if owner is None:
            raise InvalidAssetError(f"Asset {asset_id} does not exist")
        if owner != seller_address:
            raise NotOwnerError(f"{seller_address} does not own asset {asset_id}")
        validate_price(price)
        if not await self.registry.is_transfer_approved(asset_id, self.operator_address):
            raise NotApprovedError(
                f"Marketplace {self.operator_address} is not approved to transfer asset {asset_id}"
            )
        existing = await self.store.get_active_listing_id(asset_id)
        if existing is not None:
            raise AlreadyListedError(f"Asset {asset_id} is already listed as {existing}")

        listing = Listing(
            listing_id=await self.store.next_listing_id(),
            asset_id=asset_id,
            seller_address=seller_address,
            price=price,
            active=True
        )
        await self.store.insert_listing(listing)
        await self.store.set_active_listing_id(asset_id, listing.listing_id)

        uow.record(Listed(
            listing_id=listing.listing_id,
            asset_id=asset_id,
            seller_address=seller_address,
            price=price
        ))
        logger.debug(f"Created listing {listing.listing_id} for asset {asset_id} at {price}")
        return listing

    async def retire(self, listing_id: int, required_seller: Optional[str] = None) -> Listing:
        """Deactivate a listing and drop it from the asset index.

        Args:
            listing_id: Listing to retire
            required_seller: If given, must match the listing's seller

        Returns:
            The listing as it was before retirement

        Raises:
            ListingNotActiveError: Listing unknown or already retired
            NotSellerError: ``required_seller`` is not the seller
        """
        listing = await self.store.get_listing(listing_id)
        if listing is None or not listing.active:
            raise ListingNotActiveError(f"Listing {listing_id} is not active")
        if required_seller is not None and required_seller != listing.seller_address:
            raise NotSellerError(f"{required_seller} is not the seller of listing {listing_id}")

        await self.store.deactivate_listing(listing_id)
        await self.store.clear_active_listing_id(listing.asset_id)
        logger.debug(f"Retired listing {listing_id} for asset {listing.asset_id}")
        return listing

    async def lookup_active(self, asset_id: int) -> Listing:
        """Return the active listing for an asset.

        Raises:
            NoActiveListingError: The asset has no active listing
        """
        listing_id = await self.store.get_active_listing_id(asset_id)
        if listing_id is None:
            raise NoActiveListingError(f"Asset {asset_id} has no active listing")
        listing = await self.store.get_listing(listing_id)
        if listing is None or not listing.active:
            raise NoActiveListingError(f"Asset {asset_id} has no active listing")
        return listing

    async def get(self, listing_id: int) -> Listing:
        """Return a listing record, retired ones included.

        Raises:
            ListingNotFoundError: No listing with this id was ever created
        """
        listing = await self.store.get_listing(listing_id)
        if listing is None:
            raise ListingNotFoundError(f"Listing {listing_id} not found")
        return listing

    async def find(self, listing_id: int) -> Optional[Listing]:
        return await self.store.get_listing(listing_id)

    async def count(self) -> int:
        return await self.store.listing_count()
