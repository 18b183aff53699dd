"""Asset endpoints: minting, lookup and registry approval."""

from typing import Optional

from fastapi import APIRouter, HTTPException, status, Security, Depends
from pydantic import BaseModel, Field

from auth import get_current_user
from market import Marketplace, InMemoryAssetRegistry
from market.exceptions import MarketError, InvalidAssetError
from market.store.postgres import PostgresAssetRegistry
from ..dependencies import get_marketplace, to_http_error

router = APIRouter(
    prefix="/assets",
    tags=["Assets"]
)


class MintRequest(BaseModel):
    """Request model for minting an asset."""
    uri: str = Field(..., description="Metadata URI of the new asset")
    recipient_address: Optional[str] = Field(
        None, description="Owner of the new asset, defaults to the caller"
    )


class MintResponse(BaseModel):
    """Response model for minting."""
    asset_id: int
    owner_address: str


class AssetResponse(BaseModel):
    """Response model for asset lookup."""
    asset_id: int
    owner_address: str
    uri: Optional[str] = None


class ApproveRequest(BaseModel):
    """Request model for approving an operator."""
    operator_address: Optional[str] = Field(
        None, description="Operator to approve, defaults to the marketplace"
    )


@router.post("", response_model=MintResponse, status_code=status.HTTP_201_CREATED)
async def mint_asset(
    request: MintRequest,
    address: str = Security(get_current_user),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Mint a new asset."""
    recipient = request.recipient_address or address
    try:
        asset_id = await marketplace.mint(recipient, request.uri)
    except MarketError as e:
        raise to_http_error(e)
    return {"asset_id": asset_id, "owner_address": recipient}


@router.get("/{asset_id}", response_model=AssetResponse)
async def get_asset(
    asset_id: int,
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Get the owner and metadata URI of an asset."""
    owner = await marketplace.registry.owner_of(asset_id)
    if owner is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Asset {asset_id} not found"
        )
    return {
        "asset_id": asset_id,
        "owner_address": owner,
        "uri": await marketplace.registry.token_uri(asset_id)
    }


@router.post("/{asset_id}/approve")
async def approve_asset(
    asset_id: int,
    request: Optional[ApproveRequest] = None,
    address: str = Security(get_current_user),
    marketplace: Marketplace = Depends(get_marketplace)
):
    """Approve an operator (by default the marketplace) to move an asset."""
    registry = marketplace.registry
    if not isinstance(registry, (InMemoryAssetRegistry, PostgresAssetRegistry)):
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Approvals are managed by the external asset registry"
        )

    operator = (request.operator_address if request else None) or marketplace.operator_address
    try:
        if isinstance(registry, PostgresAssetRegistry):
            await registry.approve(asset_id, operator, address)
        else:
            registry.approve(asset_id, operator, address)
    except InvalidAssetError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except MarketError as e:
        raise to_http_error(e)
    return {"success": True, "asset_id": asset_id, "operator_address": operator}


__all__ = ['router']
