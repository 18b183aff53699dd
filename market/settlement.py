"""Settlement engine: the atomic purchase of a listed asset.

A purchase either fully happens or leaves no trace. It must run inside a
UnitOfWork and behind the SettlementGuard; the engine itself only orders the
steps:

1. check preconditions (listing active, exact payment, buyer is not the
   seller, asset still exists) and abort before any write if one fails
2. take the payment into the marketplace balance
3. retire the listing and compute the fee split, before any outside call
4. move the asset from seller to buyer
5. pay the seller, then the fee recipient
6. record the Sold event

Steps 4 and 5 call collaborators that may run arbitrary code or fail. A
failure there rolls back everything, including the retirement from step 3.
"""

import logging

from .events import Sold
from .exceptions import (
    AssetTransferError,
    IncorrectPaymentError,
    InvalidAssetError,
    ListingNotActiveError,
    MarketError,
    PaymentRejectedError,
    SelfPurchaseError,
)
from .fees import FeePolicy
from .listings import ListingLedger
from .models import Settlement
from .payments import PaymentSink
from .registry import AssetRegistry
from .store import MarketStore
from .unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class SettlementEngine:
    """Executes purchases against the ledger, registry and payment sink."""

    def __init__(
        self,
        store: MarketStore,
        ledger: ListingLedger,
        fee_policy: FeePolicy,
        registry: AssetRegistry,
        payments: PaymentSink,
        fee_recipient: str
    ):
        self.store = store
        self.ledger = ledger
        self.fee_policy = fee_policy
        self.registry = registry
        self.payments = payments
        self.fee_recipient = fee_recipient

    async def buy(
        self,
        uow: UnitOfWork,
        listing_id: int,
        payment: int,
        buyer_address: str
    ) -> Settlement:
        """Settle a purchase.

        Args:
            uow: Unit of work the purchase runs in
            listing_id: Listing being bought
            payment: Amount attached by the buyer; must equal the price
            buyer_address: Address receiving the asset

        Returns:
            Settlement record with the fee split

        Raises:
            ListingNotActiveError: Listing unknown or retired
            IncorrectPaymentError: Payment differs from the price
            SelfPurchaseError: Buyer is the seller
            InvalidAssetError: Asset no longer resolves in the registry
            AssetTransferError: Registry refused the transfer
            PaymentRejectedError: Seller or fee recipient refused funds
        """
        listing = await self.ledger.find(listing_id)
        if listing is None or not listing.active:
            raise ListingNotActiveError(f"Listing {listing_id} is not active")
        if isinstance(payment, bool) or not isinstance(payment, int) or payment != listing.price:
            raise IncorrectPaymentError(listing.price, payment)
        if buyer_address == listing.seller_address:
            raise SelfPurchaseError(f"{buyer_address} cannot buy their own listing {listing_id}")
        if await self.registry.owner_of(listing.asset_id) is None:
            raise InvalidAssetError(f"Asset {listing.asset_id} no longer exists")

        logger.debug(f"Preconditions passed for listing {listing_id}, buyer {buyer_address}")

        await self.store.adjust_balance(payment)

        # Effects before interactions: nothing outside sees an active listing
        await self.ledger.retire(listing_id)
        fee, seller_amount = self.fee_policy.compute_split(
            listing.price,
            await self.fee_policy.current_fee()
        )

        await self._transfer_asset(uow, listing.seller_address, buyer_address, listing.asset_id)
        await self._pay(uow, listing.seller_address, seller_amount)
        await self._pay(uow, self.fee_recipient, fee)

        uow.record(Sold(
            listing_id=listing_id,
            asset_id=listing.asset_id,
            buyer_address=buyer_address,
            seller_address=listing.seller_address,
            price=listing.price
        ))

        return Settlement(
            listing_id=listing_id,
            asset_id=listing.asset_id,
            buyer_address=buyer_address,
            seller_address=listing.seller_address,
            price=listing.price,
            fee=fee,
            seller_amount=seller_amount
        )

    async def _transfer_asset(self, uow: UnitOfWork, seller: str, buyer: str, asset_id: int) -> None:
        try:
            await self.registry.transfer(seller, buyer, asset_id)
        except AssetTransferError:
            raise
        except MarketError as e:
            raise AssetTransferError(f"Transfer of asset {asset_id} failed: {e}", asset_id) from e
        except Exception as e:
            logger.error(f"Registry error transferring asset {asset_id}: {e}")
            raise AssetTransferError(f"Transfer of asset {asset_id} failed: {e}", asset_id) from e

        if not uow.covers(self.registry):
            uow.on_rollback(
                f"transfer of asset {asset_id}",
                lambda: self.registry.transfer(buyer, seller, asset_id)
            )

    async def _pay(self, uow: UnitOfWork, to_address: str, amount: int) -> None:
        if amount == 0:
            return

        await self.store.adjust_balance(-amount)
        try:
            await self.payments.send(to_address, amount)
        except PaymentRejectedError:
            raise
        except MarketError as e:
            raise PaymentRejectedError(f"Payment of {amount} to {to_address} failed: {e}", to_address, amount) from e
        except Exception as e:
            logger.error(f"Payment sink error paying {amount} to {to_address}: {e}")
            raise PaymentRejectedError(f"Payment of {amount} to {to_address} failed: {e}", to_address, amount) from e

        if not uow.covers(self.payments):
            uow.on_rollback(
                f"payment of {amount} to {to_address}",
                lambda: self.payments.reclaim(to_address, amount)
            )
