"""Plain records shared by the marketplace components."""

from dataclasses import dataclass, asdict
from typing import Any, Dict


@dataclass
class Listing:
    """An offer to sell one asset at a fixed price.

    ``active`` goes from True to False exactly once. Retired listings stay
    in storage as tombstones.
    """
    listing_id: int
    asset_id: int
    seller_address: str
    price: int
    active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Settlement:
    """Outcome of a completed purchase."""
    listing_id: int
    asset_id: int
    buyer_address: str
    seller_address: str
    price: int
    fee: int
    seller_amount: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
