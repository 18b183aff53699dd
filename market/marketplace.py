"""Marketplace entry points.

Marketplace wires the ledger, fee policy and settlement engine to their
collaborators and exposes the public operations. Every mutating operation:

1. passes the settlement guard (serialized, never reentrant)
2. runs inside one UnitOfWork (all-or-nothing)
3. publishes its events only after the unit of work commits
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from .authority import OwnerAuthority
from .events import Cancelled, EventBus, MarketEvent, Minted
from .exceptions import EmptyURIError, InvalidAmountError, NoFundsError, UnauthorizedError
from .fees import FeePolicy
from .guard import SettlementGuard
from .listings import ListingLedger
from .models import Listing, Settlement
from .payments import PaymentSink
from .registry import AssetRegistry
from .settlement import SettlementEngine
from .store import MarketStore, Transactional
from .unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class Marketplace:
    """Fixed-price marketplace for uniquely owned assets."""

    def __init__(
        self,
        store: MarketStore,
        registry: AssetRegistry,
        payments: PaymentSink,
        authority: OwnerAuthority,
        operator_address: str,
        fee_recipient: str,
        events: Optional[EventBus] = None
    ):
        """Initialize the marketplace.

        Args:
            store: Marketplace state store
            registry: Asset registry collaborator
            payments: Payment sink used for payouts and withdrawals
            authority: Decides who may run owner-only operations
            operator_address: Identity the registry must approve for listing
            fee_recipient: Address receiving the marketplace fee
            events: Optional event bus; a private one is created if omitted
        """
        self.store = store
        self.registry = registry
        self.payments = payments
        self.authority = authority
        self.operator_address = operator_address
        self.fee_recipient = fee_recipient
        self.events = events or EventBus()

        self.guard = SettlementGuard()
        self.ledger = ListingLedger(store, registry, operator_address)
        self.fee_policy = FeePolicy(store, authority)
        self.engine = SettlementEngine(
            store, self.ledger, self.fee_policy, registry, payments, fee_recipient
        )

        self._participants: List[Transactional] = [
            collaborator for collaborator in (registry, payments)
            if isinstance(collaborator, Transactional)
        ]
        self._participants.append(store)

    @asynccontextmanager
    async def _operation(self, name: str, settlement: bool = False):
        async with self.guard.enter(name, settlement=settlement):
            uow = UnitOfWork(self._participants, operation=name)
            async with uow:
                yield uow
        await self._publish(uow.events)

    async def _publish(self, events: List[MarketEvent]) -> None:
        if events:
            await self.events.publish(events)

    # Mutating operations

    async def mint(self, recipient_address: str, uri: str) -> int:
        """Mint a new asset to ``recipient_address``.

        Returns:
            The new asset id; ids start at 0 and have no gaps

        Raises:
            EmptyURIError: If ``uri`` is empty
        """
        async with self._operation('mint') as uow:
            if not uri or not uri.strip():
                raise EmptyURIError("Metadata URI cannot be empty")
            asset_id = await self.store.next_asset_id()
            await self.registry.mint(recipient_address, asset_id, uri)
            uow.record(Minted(asset_id=asset_id, to_address=recipient_address, uri=uri))
        logger.info(f"Minted asset {asset_id} to {recipient_address}")
        return asset_id

    async def list_asset(self, asset_id: int, price: int, caller_address: str) -> int:
        """List an asset owned by the caller.

        Returns:
            The new listing id

        Raises:
            InvalidAssetError, NotOwnerError, InvalidPriceError,
            NotApprovedError, AlreadyListedError
        """
        async with self._operation('list') as uow:
            listing = await self.ledger.create(uow, asset_id, price, caller_address)
        logger.info(
            f"Listed asset {asset_id} as listing {listing.listing_id} "
            f"by {caller_address} for {price}"
        )
        return listing.listing_id

    async def buy(self, listing_id: int, payment: int, buyer_address: str) -> Settlement:
        """Buy a listing, paying exactly its price.

        Raises:
            ListingNotActiveError, IncorrectPaymentError, SelfPurchaseError,
            InvalidAssetError, AssetTransferError, PaymentRejectedError,
            ReentrantCallError
        """
        async with self._operation('buy', settlement=True) as uow:
            settlement = await self.engine.buy(uow, listing_id, payment, buyer_address)
        logger.info(
            f"Sold listing {listing_id} (asset {settlement.asset_id}) to {buyer_address} "
            f"for {settlement.price}: seller {settlement.seller_amount}, fee {settlement.fee}"
        )
        return settlement

    async def cancel(self, listing_id: int, caller_address: str) -> None:
        """Cancel an active listing. Only its seller may cancel.

        Raises:
            ListingNotActiveError, NotSellerError
        """
        async with self._operation('cancel') as uow:
            listing = await self.ledger.retire(listing_id, required_seller=caller_address)
            uow.record(Cancelled(listing_id=listing_id, asset_id=listing.asset_id))
        logger.info(f"Cancelled listing {listing_id} by {caller_address}")

    async def set_fee(self, basis_points: int, caller_address: str) -> None:
        """Replace the marketplace fee. Owner only.

        Raises:
            UnauthorizedError, InvalidFeeError, FeeTooHighError
        """
        async with self._operation('set_fee'):
            await self.fee_policy.set_fee(basis_points, caller_address)

    async def deposit(self, sender_address: str, amount: int) -> int:
        """Accept funds sent to the marketplace outside a purchase.

        They stay in the marketplace balance until the owner withdraws them.

        Returns:
            The new balance

        Raises:
            InvalidAmountError: If ``amount`` is not a positive integer
        """
        async with self._operation('deposit'):
            if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
                raise InvalidAmountError(f"Deposit must be a positive integer, got {amount!r}")
            balance = await self.store.adjust_balance(amount)
        logger.info(f"Received {amount} from {sender_address}, balance {balance}")
        return balance

    async def withdraw(self, caller_address: str) -> int:
        """Send any funds held by the marketplace to the owner. Owner only.

        Returns:
            The amount withdrawn

        Raises:
            UnauthorizedError: Caller is not the owner
            NoFundsError: Balance is zero
            PaymentRejectedError: Owner refused the funds
        """
        async with self._operation('withdraw') as uow:
            if not await self.authority.is_owner(caller_address):
                raise UnauthorizedError(f"{caller_address} may not withdraw funds")
            balance = await self.store.get_balance()
            if balance <= 0:
                raise NoFundsError("No funds to withdraw")

            owner = self.authority.owner_address
            await self.store.adjust_balance(-balance)
            await self.payments.send(owner, balance)
            if not uow.covers(self.payments):
                uow.on_rollback(
                    f"withdrawal of {balance}",
                    lambda: self.payments.reclaim(owner, balance)
                )
        logger.info(f"Withdrew {balance} to owner {owner}")
        return balance

    # Queries

    async def listing_by_asset(self, asset_id: int) -> Listing:
        """Active listing of an asset.

        Raises:
            NoActiveListingError: The asset is not listed
        """
        return await self.ledger.lookup_active(asset_id)

    async def get_listing(self, listing_id: int) -> Listing:
        """Listing record by id, retired listings included."""
        return await self.ledger.get(listing_id)

    async def total_minted(self) -> int:
        return await self.store.asset_count()

    async def total_listings_ever_created(self) -> int:
        return await self.ledger.count()

    async def current_fee(self) -> int:
        return await self.fee_policy.current_fee()

    async def balance(self) -> int:
        return await self.store.get_balance()
