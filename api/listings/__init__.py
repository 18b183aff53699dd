"""Listings API endpoints."""

from fastapi import APIRouter, status, Security, Depends
from pydantic import BaseModel, Field

from auth import get_current_user
from market import Marketplace
from market.exceptions import MarketError
from ..dependencies import get_marketplace, to_http_error

router = APIRouter(
    prefix="/listings",
    tags=["Listings"]
)


# Model definitions
class CreateListingRequest(BaseModel):
    """Request model for creating a listing."""
    asset_id: int
    price: int = Field(..., description="Asking price in the smallest currency unit")


class ListingResponse(BaseModel):
    """Response model for a listing, retired ones included."""
    listing_id: int
    asset_id: int
    seller_address: str
    price: int
    active: bool


class BuyRequest(BaseModel):
    """Request model for buying a listing."""
    payment: int = Field(..., description="Must equal the listing price exactly")


class SettlementResponse(BaseModel):
    """Response model for a completed purchase."""
    listing_id: int
    asset_id: int
    buyer_address: str
    seller_address: str
    price: int
    fee: int
    seller_amount: int


# Public endpoints
@router.get("/by-asset/{asset_id}", response_model=ListingResponse)
async def get_listing_by_asset(
    asset_id: int,
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Get the active listing of an asset."""
    try:
        listing = await marketplace.listing_by_asset(asset_id)
    except MarketError as e:
        raise to_http_error(e)
    return listing.to_dict()


@router.get("/{listing_id}", response_model=ListingResponse)
async def get_listing(
    listing_id: int,
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Get a listing by id."""
    try:
        listing = await marketplace.get_listing(listing_id)
    except MarketError as e:
        raise to_http_error(e)
    return listing.to_dict()


# Endpoints below require a bearer token
@router.post("", response_model=ListingResponse, status_code=status.HTTP_201_CREATED)
async def create_listing(
    request: CreateListingRequest,
    address: str = Security(get_current_user),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """List an asset owned by the caller."""
    try:
        listing_id = await marketplace.list_asset(request.asset_id, request.price, address)
        listing = await marketplace.get_listing(listing_id)
    except MarketError as e:
        raise to_http_error(e)
    return listing.to_dict()


@router.post("/{listing_id}/buy", response_model=SettlementResponse)
async def buy_listing(
    listing_id: int,
    request: BuyRequest,
    address: str = Security(get_current_user),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Buy a listing, paying exactly its price."""
    try:
        settlement = await marketplace.buy(listing_id, request.payment, address)
    except MarketError as e:
        raise to_http_error(e)
    return settlement.to_dict()


@router.post("/{listing_id}/cancel")
async def cancel_listing(
    listing_id: int,
    address: str = Security(get_current_user),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Cancel a listing. Only its seller may cancel."""
    try:
        await marketplace.cancel(listing_id, address)
    except MarketError as e:
        raise to_http_error(e)
    return {"success": True, "listing_id": listing_id}


__all__ = ['router']
