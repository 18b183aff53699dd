"""Marketplace fee policy.

The fee is stored in basis points (1/100 of a percent) and capped at
MAX_FEE_BASIS_POINTS. Splits use integer floor division, so the fee never
exceeds the price and the seller gets the remainder.
"""

import logging
from typing import Tuple

from .authority import OwnerAuthority
from .exceptions import FeeTooHighError, InvalidFeeError, UnauthorizedError
from .store import MarketStore

logger = logging.getLogger(__name__)

FEE_DENOMINATOR = 10_000
MAX_FEE_BASIS_POINTS = 1_000  # 10%


def validate_fee(basis_points: int) -> int:
    """Check a fee against the policy cap and return it.

    Raises:
        InvalidFeeError: If the fee is not a non-negative integer
        FeeTooHighError: If the fee exceeds the cap
    """
    if isinstance(basis_points, bool) or not isinstance(basis_points, int):
        raise InvalidFeeError(f"Fee must be an integer number of basis points, got {basis_points!r}")
    if basis_points < 0:
        raise InvalidFeeError(f"Fee cannot be negative: {basis_points}")
    if basis_points > MAX_FEE_BASIS_POINTS:
        raise FeeTooHighError(basis_points, MAX_FEE_BASIS_POINTS)
    return basis_points


def compute_split(price: int, basis_points: int) -> Tuple[int, int]:
    """Split a price into (fee, seller_amount)."""
    fee = price * basis_points // FEE_DENOMINATOR
    return fee, price - fee


class FeePolicy:
    """Reads and updates the marketplace fee."""

    def __init__(self, store: MarketStore, authority: OwnerAuthority):
        self.store = store
        self.authority = authority

    async def current_fee(self) -> int:
        return await self.store.get_fee_basis_points()

    async def set_fee(self, basis_points: int, caller_address: str) -> None:
        """Replace the fee. Only the owner may do this.

        Raises:
            UnauthorizedError: If the caller is not the owner
            InvalidFeeError: If the fee is not a non-negative integer
            FeeTooHighError: If the fee exceeds the cap
        """
        if not await self.authority.is_owner(caller_address):
            raise UnauthorizedError(f"{caller_address} may not change the fee")
        validate_fee(basis_points)

        previous = await self.store.get_fee_basis_points()
        await self.store.set_fee_basis_points(basis_points)
        logger.info(f"Fee changed from {previous} to {basis_points} basis points")

    compute_split = staticmethod(compute_split)
