"""Authentication API endpoints.

Tokens are issued without a signature challenge, so this router is only
mounted when ``allow_dev_tokens`` is enabled.
"""

from fastapi import APIRouter, HTTPException, status, Depends, Security
from pydantic import BaseModel

from auth import TokenManager, AuthError, get_current_user, get_token_manager

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)


class TokenRequest(BaseModel):
    """Request model for issuing a token."""
    address: str


class TokenResponse(BaseModel):
    """Response model for an issued token."""
    token: str
    expires_at: str


@router.post("/token", response_model=TokenResponse)
async def issue_token(
    request: TokenRequest,
    tokens: TokenManager = Depends(get_token_manager)
):
    """Issue an access token for an address."""
    try:
        return tokens.create_access_token(request.address)
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.get("/verify")
async def verify_token(address: str = Security(get_current_user)):
    """Verify the current token."""
    return {
        "valid": True,
        "address": address
    }


# Export the router
__all__ = ['router']
