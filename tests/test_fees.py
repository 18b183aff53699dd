"""Tests for the fee policy."""

import pytest

from market import compute_split, FEE_DENOMINATOR, MAX_FEE_BASIS_POINTS
from market.exceptions import (
    FeeTooHighError, InvalidFeeError, InvalidInputError, PolicyViolationError,
    UnauthorizedError
)
from market.fees import validate_fee

from conftest import OWNER, SELLER, BUYER, TREASURY, PRICE, FEE_BASIS_POINTS


def test_fee_constants():
    """Fee is expressed in basis points with a 10% cap."""
    assert FEE_DENOMINATOR == 10_000
    assert MAX_FEE_BASIS_POINTS == 1_000


@pytest.mark.parametrize("price,basis_points,expected", [
    (1_000_000, 250, (25_000, 975_000)),
    (10_000, 1_000, (1_000, 9_000)),
    (9_999, 1, (0, 9_999)),
    (1, 1_000, (0, 1)),
    (399, 250, (9, 390)),
    (500, 0, (0, 500)),
])
def test_compute_split_floors_fee(price, basis_points, expected):
    """Fee is floor(price * bps / 10000) and the seller gets the rest."""
    fee, seller_amount = compute_split(price, basis_points)
    assert (fee, seller_amount) == expected
    assert fee + seller_amount == price
    assert fee <= price


def test_validate_fee():
    """Fees above the cap and non-integer fees are rejected."""
    assert validate_fee(0) == 0
    assert validate_fee(MAX_FEE_BASIS_POINTS) == MAX_FEE_BASIS_POINTS

    with pytest.raises(FeeTooHighError) as exc_info:
        validate_fee(MAX_FEE_BASIS_POINTS + 1)
    assert isinstance(exc_info.value, PolicyViolationError)
    assert exc_info.value.cap == MAX_FEE_BASIS_POINTS

    for bad in (-1, 2.5, "250", True, None):
        with pytest.raises(InvalidFeeError) as exc_info:
            validate_fee(bad)
        assert isinstance(exc_info.value, InvalidInputError)


@pytest.mark.asyncio
async def test_current_fee(marketplace):
    """The configured fee is reported."""
    assert await marketplace.current_fee() == FEE_BASIS_POINTS


@pytest.mark.asyncio
async def test_set_fee_owner_only(marketplace):
    """Only the owner may change the fee; the check comes before validation."""
    with pytest.raises(UnauthorizedError):
        await marketplace.set_fee(100, SELLER)

    # Authorization is checked first, even for an over-cap fee
    with pytest.raises(UnauthorizedError):
        await marketplace.set_fee(5_000, SELLER)

    assert await marketplace.current_fee() == FEE_BASIS_POINTS


@pytest.mark.asyncio
async def test_set_fee_cap(marketplace):
    """1000 bps is accepted, 1001 is rejected and leaves the fee unchanged."""
    with pytest.raises(FeeTooHighError):
        await marketplace.set_fee(1_001, OWNER)
    assert await marketplace.current_fee() == FEE_BASIS_POINTS

    await marketplace.set_fee(1_000, OWNER)
    assert await marketplace.current_fee() == 1_000

    await marketplace.set_fee(0, OWNER)
    assert await marketplace.current_fee() == 0


@pytest.mark.asyncio
async def test_new_fee_applies_to_next_buy(marketplace, listing_id):
    """A fee raised to the cap is used by the next purchase."""
    await marketplace.set_fee(1_000, OWNER)

    settlement = await marketplace.buy(listing_id, PRICE, BUYER)

    assert settlement.fee == 100_000
    assert settlement.seller_amount == 900_000
    assert marketplace.payments.balance_of(SELLER) == 900_000
    assert marketplace.payments.balance_of(TREASURY) == 100_000
