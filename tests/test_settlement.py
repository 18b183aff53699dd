"""Tests for the settlement engine: purchases, rollback and reentrancy."""

import asyncio
from contextlib import asynccontextmanager

import pytest

from market import Sold, Settlement, InMemoryAssetRegistry, MemoryStore, GuardState
from market.exceptions import (
    AssetTransferError, ExternalCallError, IncorrectPaymentError,
    InvalidAssetError, ListingNotActiveError, NoActiveListingError,
    PaymentMismatchError, PaymentRejectedError, ReentrantCallError,
    SelfPurchaseError
)

from conftest import (
    OWNER, SELLER, BUYER, OTHER_BUYER, TREASURY, OPERATOR, ASSET_URI, PRICE,
    build_marketplace
)


class BurnableRegistry(InMemoryAssetRegistry):
    """Registry that can make an asset disappear."""

    def burn(self, asset_id: int) -> None:
        self._owners.pop(asset_id, None)


async def assert_untouched(marketplace, listing_id, asset_id):
    """Listing still active, asset with the seller, no funds moved."""
    listing = await marketplace.listing_by_asset(asset_id)
    assert listing.listing_id == listing_id
    assert listing.active is True
    assert await marketplace.registry.owner_of(asset_id) == SELLER
    assert marketplace.payments.balance_of(SELLER) == 0
    assert marketplace.payments.balance_of(TREASURY) == 0
    assert await marketplace.balance() == 0
    assert not any(isinstance(e, Sold) for e in marketplace.events.history)
    assert marketplace.guard.state is GuardState.IDLE


@pytest.mark.asyncio
async def test_buy_scenario(marketplace):
    """mint -> list -> buy with a 250 bps fee splits 25_000 / 975_000."""
    asset_id = await marketplace.mint(SELLER, ASSET_URI)
    assert asset_id == 0
    marketplace.registry.approve(asset_id, OPERATOR, SELLER)

    listing_id = await marketplace.list_asset(asset_id, PRICE, SELLER)
    assert listing_id == 0

    settlement = await marketplace.buy(listing_id, PRICE, BUYER)

    assert settlement == Settlement(
        listing_id=0,
        asset_id=0,
        buyer_address=BUYER,
        seller_address=SELLER,
        price=PRICE,
        fee=25_000,
        seller_amount=975_000
    )
    assert marketplace.payments.balance_of(SELLER) == 975_000
    assert marketplace.payments.balance_of(TREASURY) == 25_000
    assert await marketplace.registry.owner_of(asset_id) == BUYER
    assert (await marketplace.get_listing(listing_id)).active is False
    with pytest.raises(NoActiveListingError):
        await marketplace.listing_by_asset(asset_id)

    # The marketplace keeps nothing from a settled purchase
    assert await marketplace.balance() == 0

    assert marketplace.events.history[-1] == Sold(
        listing_id=0,
        asset_id=0,
        buyer_address=BUYER,
        seller_address=SELLER,
        price=PRICE
    )


@pytest.mark.asyncio
async def test_buy_clears_token_approval(marketplace, listing_id, minted_asset):
    """The new owner must approve the marketplace again before relisting."""
    await marketplace.buy(listing_id, PRICE, BUYER)

    assert not await marketplace.registry.is_transfer_approved(minted_asset, OPERATOR)


@pytest.mark.asyncio
@pytest.mark.parametrize("payment", [PRICE - 1, PRICE + 1, 0, PRICE * 2, float(PRICE), True])
async def test_buy_requires_exact_payment(marketplace, listing_id, minted_asset, payment):
    """Under- and overpayment are rejected, not refunded."""
    with pytest.raises(IncorrectPaymentError) as exc_info:
        await marketplace.buy(listing_id, payment, BUYER)

    assert isinstance(exc_info.value, PaymentMismatchError)
    assert exc_info.value.expected == PRICE
    assert exc_info.value.received == payment
    await assert_untouched(marketplace, listing_id, minted_asset)


@pytest.mark.asyncio
async def test_buy_self_purchase(marketplace, listing_id, minted_asset):
    """The seller cannot buy their own listing."""
    with pytest.raises(SelfPurchaseError):
        await marketplace.buy(listing_id, PRICE, SELLER)

    await assert_untouched(marketplace, listing_id, minted_asset)


@pytest.mark.asyncio
async def test_buy_inactive_listing(marketplace, listing_id):
    """Unknown, cancelled and sold listings cannot be bought."""
    with pytest.raises(ListingNotActiveError):
        await marketplace.buy(99, PRICE, BUYER)

    await marketplace.buy(listing_id, PRICE, BUYER)

    with pytest.raises(ListingNotActiveError):
        await marketplace.buy(listing_id, PRICE, OTHER_BUYER)

    # Exactly one payout happened
    assert marketplace.payments.balance_of(SELLER) == 975_000


@pytest.mark.asyncio
async def test_buy_precondition_order(marketplace, listing_id):
    """Preconditions are reported in a fixed order."""
    # Wrong payment from the seller: payment is checked before self-dealing
    with pytest.raises(IncorrectPaymentError):
        await marketplace.buy(listing_id, PRICE - 1, SELLER)

    await marketplace.cancel(listing_id, SELLER)

    # Retired listing with wrong payment: activity is checked first
    with pytest.raises(ListingNotActiveError):
        await marketplace.buy(listing_id, PRICE - 1, SELLER)


@pytest.mark.asyncio
async def test_buy_missing_asset():
    """A listing whose asset vanished from the registry cannot be bought."""
    marketplace = build_marketplace(registry=BurnableRegistry())
    asset_id = await marketplace.mint(SELLER, ASSET_URI)
    marketplace.registry.approve(asset_id, OPERATOR, SELLER)
    listing_id = await marketplace.list_asset(asset_id, PRICE, SELLER)

    marketplace.registry.burn(asset_id)

    with pytest.raises(InvalidAssetError):
        await marketplace.buy(listing_id, PRICE, BUYER)
    assert (await marketplace.get_listing(listing_id)).active is True


@pytest.mark.asyncio
async def test_buy_with_zero_fee(marketplace, listing_id):
    """With no fee the seller receives the full price."""
    await marketplace.set_fee(0, OWNER)

    settlement = await marketplace.buy(listing_id, PRICE, BUYER)

    assert settlement.fee == 0
    assert settlement.seller_amount == PRICE
    assert marketplace.payments.balance_of(SELLER) == PRICE
    assert marketplace.payments.balance_of(TREASURY) == 0


@pytest.mark.asyncio
async def test_seller_rejects_payment_rolls_back(marketplace, listing_id, minted_asset):
    """A seller refusing funds undoes the transfer and the retirement."""
    async def refuse(to_address, amount):
        raise RuntimeError("seller wallet offline")

    marketplace.payments.register_receiver(SELLER, refuse)

    with pytest.raises(PaymentRejectedError) as exc_info:
        await marketplace.buy(listing_id, PRICE, BUYER)

    assert isinstance(exc_info.value, ExternalCallError)
    assert exc_info.value.to_address == SELLER
    await assert_untouched(marketplace, listing_id, minted_asset)

    # Once the seller accepts funds the purchase goes through
    marketplace.payments.register_receiver(SELLER, None)
    await marketplace.buy(listing_id, PRICE, BUYER)
    assert await marketplace.registry.owner_of(minted_asset) == BUYER


@pytest.mark.asyncio
async def test_fee_recipient_rejects_payment_rolls_back(marketplace, listing_id, minted_asset):
    """A failure after the seller was paid also undoes the seller payment."""
    async def refuse(to_address, amount):
        raise RuntimeError("treasury closed")

    marketplace.payments.register_receiver(TREASURY, refuse)

    with pytest.raises(PaymentRejectedError):
        await marketplace.buy(listing_id, PRICE, BUYER)

    await assert_untouched(marketplace, listing_id, minted_asset)


@pytest.mark.asyncio
async def test_asset_receiver_rejects_transfer(marketplace, listing_id, minted_asset):
    """A buyer refusing the asset fails the purchase."""
    async def refuse(asset_id, from_address, to_address):
        raise RuntimeError("cannot hold assets")

    marketplace.registry.register_receiver(BUYER, refuse)

    with pytest.raises(AssetTransferError) as exc_info:
        await marketplace.buy(listing_id, PRICE, BUYER)

    assert exc_info.value.asset_id == minted_asset
    await assert_untouched(marketplace, listing_id, minted_asset)


@pytest.mark.asyncio
async def test_reentrant_call_is_rejected(marketplace, listing_id, minted_asset):
    """A receiver calling back into the marketplace is refused, the sale completes."""
    observed = {}

    async def reenter(asset_id, from_address, to_address):
        observed['in_settlement'] = marketplace.guard.in_settlement
        # The listing is already retired when outside code runs
        try:
            await marketplace.listing_by_asset(asset_id)
        except NoActiveListingError as e:
            observed['lookup'] = e
        try:
            await marketplace.buy(listing_id, PRICE, to_address)
        except ReentrantCallError as e:
            observed['buy'] = e
        try:
            await marketplace.list_asset(asset_id, PRICE, to_address)
        except ReentrantCallError as e:
            observed['list'] = e

    marketplace.registry.register_receiver(BUYER, reenter)

    settlement = await marketplace.buy(listing_id, PRICE, BUYER)

    assert observed['in_settlement'] is True
    assert isinstance(observed['lookup'], NoActiveListingError)
    assert observed['buy'].operation == 'buy'
    assert observed['list'].operation == 'list'
    assert settlement.seller_amount == 975_000
    assert marketplace.payments.balance_of(SELLER) == 975_000
    assert await marketplace.total_listings_ever_created() == 1
    assert marketplace.guard.state is GuardState.IDLE


@pytest.mark.asyncio
async def test_reentrant_call_failure_rolls_back(marketplace, listing_id, minted_asset):
    """An uncaught reentrancy error fails the whole purchase."""
    async def reenter(to_address, amount):
        await marketplace.cancel(listing_id, SELLER)

    marketplace.payments.register_receiver(SELLER, reenter)

    with pytest.raises(PaymentRejectedError) as exc_info:
        await marketplace.buy(listing_id, PRICE, BUYER)

    assert isinstance(exc_info.value.__cause__, ReentrantCallError)
    await assert_untouched(marketplace, listing_id, minted_asset)


@pytest.mark.asyncio
async def test_reentrant_call_from_spawned_task(marketplace, listing_id, minted_asset):
    """Work spawned by a callback is still inside the settlement."""
    async def reenter(asset_id, from_address, to_address):
        await asyncio.create_task(marketplace.mint(to_address, ASSET_URI))

    marketplace.registry.register_receiver(BUYER, reenter)

    with pytest.raises(AssetTransferError) as exc_info:
        await marketplace.buy(listing_id, PRICE, BUYER)

    assert isinstance(exc_info.value.__cause__, ReentrantCallError)
    assert await marketplace.total_minted() == 1
    await assert_untouched(marketplace, listing_id, minted_asset)


@pytest.mark.asyncio
async def test_concurrent_buys_settle_once(marketplace, listing_id):
    """Two buyers racing for one listing: exactly one wins."""
    results = await asyncio.gather(
        marketplace.buy(listing_id, PRICE, BUYER),
        marketplace.buy(listing_id, PRICE, OTHER_BUYER),
        return_exceptions=True
    )

    settlements = [r for r in results if isinstance(r, Settlement)]
    errors = [r for r in results if isinstance(r, Exception)]
    assert len(settlements) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], ListingNotActiveError)
    assert marketplace.payments.balance_of(SELLER) == 975_000
    assert marketplace.payments.balance_of(TREASURY) == 25_000


class CommitFailingStore(MemoryStore):
    """Durable store whose commit can be made to fail, like a lost database."""

    durable = True
    fail_commit = False

    @asynccontextmanager
    async def transaction(self):
        outer = not self._tx_depth
        saved = self._snapshot() if outer else None
        async with super().transaction():
            yield self
        if outer and self.fail_commit:
            self._restore(saved)
            raise ConnectionError("connection lost during commit")


@pytest.mark.asyncio
async def test_store_commit_failure_rolls_back_collaborators():
    """A failed store commit also undoes the transfer and the payouts."""
    store = CommitFailingStore(fee_basis_points=250)
    marketplace = build_marketplace(store=store)
    asset_id = await marketplace.mint(SELLER, ASSET_URI)
    marketplace.registry.approve(asset_id, OPERATOR, SELLER)
    listing_id = await marketplace.list_asset(asset_id, PRICE, SELLER)

    store.fail_commit = True
    with pytest.raises(ConnectionError):
        await marketplace.buy(listing_id, PRICE, BUYER)

    await assert_untouched(marketplace, listing_id, asset_id)
    assert marketplace.payments.balance_of(BUYER) == 0

    store.fail_commit = False
    settlement = await marketplace.buy(listing_id, PRICE, BUYER)
    assert settlement.seller_amount == 975_000
    assert await marketplace.registry.owner_of(asset_id) == BUYER


@pytest.mark.asyncio
async def test_task_spawned_during_buy_runs_after_it(marketplace, listing_id, minted_asset):
    """Work a callback schedules for later is not treated as reentry."""
    buy_done = asyncio.Event()
    spawned = []

    async def later():
        await buy_done.wait()
        return await marketplace.mint(BUYER, ASSET_URI)

    async def schedule(asset_id, from_address, to_address):
        spawned.append(asyncio.ensure_future(later()))

    marketplace.registry.register_receiver(BUYER, schedule)

    await marketplace.buy(listing_id, PRICE, BUYER)
    assert marketplace.guard.state is GuardState.IDLE
    buy_done.set()

    assert await asyncio.gather(*spawned) == [minted_asset + 1]
    assert await marketplace.total_minted() == 2
