"""Market administration and statistics endpoints."""

from typing import List, Dict, Any

from fastapi import APIRouter, Query, Security, Depends
from pydantic import BaseModel, Field

from auth import get_current_user
from market import Marketplace, MAX_FEE_BASIS_POINTS, FEE_DENOMINATOR
from market.exceptions import MarketError
from ..dependencies import get_marketplace, to_http_error

# Create router
router = APIRouter(
    prefix="/market",
    tags=["Market"]
)


class FeeResponse(BaseModel):
    """Model for the current marketplace fee."""
    fee_basis_points: int
    max_fee_basis_points: int = MAX_FEE_BASIS_POINTS
    denominator: int = FEE_DENOMINATOR


class SetFeeRequest(BaseModel):
    """Request model for replacing the fee."""
    fee_basis_points: int = Field(..., description="New fee, at most 1000 (10%)")


class DepositRequest(BaseModel):
    """Request model for sending funds to the marketplace."""
    amount: int


class MarketStats(BaseModel):
    """Model for market statistics."""
    total_minted: int
    total_listings_ever_created: int
    fee_basis_points: int
    balance: int


@router.get("/fee", response_model=FeeResponse)
async def get_fee(marketplace: Marketplace = Depends(get_marketplace)):
    """Get the current marketplace fee."""
    return {"fee_basis_points": await marketplace.current_fee()}


@router.put("/fee", response_model=FeeResponse)
async def set_fee(
    request: SetFeeRequest,
    address: str = Security(get_current_user),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Replace the marketplace fee. Owner only."""
    try:
        await marketplace.set_fee(request.fee_basis_points, address)
    except MarketError as e:
        raise to_http_error(e)
    return {"fee_basis_points": await marketplace.current_fee()}


@router.post("/withdraw")
async def withdraw(
    address: str = Security(get_current_user),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Send funds held by the marketplace to the owner. Owner only."""
    try:
        amount = await marketplace.withdraw(address)
    except MarketError as e:
        raise to_http_error(e)
    return {"success": True, "amount": amount}


@router.post("/deposit")
async def deposit(
    request: DepositRequest,
    address: str = Security(get_current_user),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Send funds to the marketplace outside a purchase."""
    try:
        balance = await marketplace.deposit(address, request.amount)
    except MarketError as e:
        raise to_http_error(e)
    return {"success": True, "balance": balance}


@router.get("/stats", response_model=MarketStats)
async def get_market_stats(marketplace: Marketplace = Depends(get_marketplace)):
    """Get market-wide counters."""
    return {
        "total_minted": await marketplace.total_minted(),
        "total_listings_ever_created": await marketplace.total_listings_ever_created(),
        "fee_basis_points": await marketplace.current_fee(),
        "balance": await marketplace.balance()
    }


@router.get("/events")
async def get_recent_events(
    limit: int = Query(50, ge=1, le=1000),
    marketplace: Marketplace = Depends(get_marketplace)
) -> List[Dict[str, Any]]:
    """Get the most recent committed marketplace events, newest last."""
    history = list(marketplace.events.history)
    return [event.to_dict() for event in history[-limit:]]


__all__ = ['router']
