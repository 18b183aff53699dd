"""Shared fixtures for marketplace tests."""

import pytest_asyncio

from market import (
    Marketplace, MemoryStore, InMemoryAssetRegistry, InMemoryPaymentLedger,
    StaticOwnerAuthority
)

# Test data
OWNER = "owner-address"
SELLER = "seller-address"
BUYER = "buyer-address"
OTHER_BUYER = "other-buyer-address"
TREASURY = "treasury-address"
OPERATOR = "market-operator"
ASSET_URI = "ipfs://QmTestAsset"
PRICE = 1_000_000
FEE_BASIS_POINTS = 250


def build_marketplace(**overrides) -> Marketplace:
    """Marketplace wired to in-memory collaborators."""
    kwargs = dict(
        store=MemoryStore(fee_basis_points=FEE_BASIS_POINTS),
        registry=InMemoryAssetRegistry(),
        payments=InMemoryPaymentLedger(),
        authority=StaticOwnerAuthority(OWNER),
        operator_address=OPERATOR,
        fee_recipient=TREASURY
    )
    kwargs.update(overrides)
    return Marketplace(**kwargs)


@pytest_asyncio.fixture
async def marketplace():
    """Create and return a marketplace with a 2.5% fee."""
    return build_marketplace()


@pytest_asyncio.fixture
async def minted_asset(marketplace) -> int:
    """Mint an asset to the seller and approve the marketplace for it."""
    asset_id = await marketplace.mint(SELLER, ASSET_URI)
    marketplace.registry.approve(asset_id, OPERATOR, SELLER)
    return asset_id


@pytest_asyncio.fixture
async def listing_id(marketplace, minted_asset) -> int:
    """List the minted asset at PRICE."""
    return await marketplace.list_asset(minted_asset, PRICE, SELLER)
