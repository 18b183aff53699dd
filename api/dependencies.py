"""Shared FastAPI dependencies and error translation."""

import logging
from typing import Dict, Type

from fastapi import HTTPException, Request, status

from market import Marketplace
from market.exceptions import (
    MarketError, InvalidInputError, NotAuthorizedError, InvalidStateError,
    PaymentMismatchError, SelfDealingError, PolicyViolationError,
    ExternalCallError, NoActiveListingError, ListingNotFoundError
)

logger = logging.getLogger(__name__)

# Most specific classes first
ERROR_STATUS: Dict[Type[MarketError], int] = {
    NoActiveListingError: status.HTTP_404_NOT_FOUND,
    ListingNotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidInputError: status.HTTP_400_BAD_REQUEST,
    NotAuthorizedError: status.HTTP_403_FORBIDDEN,
    InvalidStateError: status.HTTP_409_CONFLICT,
    PaymentMismatchError: status.HTTP_402_PAYMENT_REQUIRED,
    SelfDealingError: status.HTTP_409_CONFLICT,
    PolicyViolationError: 422,
    ExternalCallError: status.HTTP_502_BAD_GATEWAY,
}


def to_http_error(error: MarketError) -> HTTPException:
    """Translate a marketplace failure into an HTTP error response."""
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            break
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    logger.warning(f"Rejected with {status_code}: {type(error).__name__}: {error}")
    return HTTPException(
        status_code=status_code,
        detail={
            "error": type(error).__name__,
            "message": str(error)
        }
    )


def get_marketplace(request: Request) -> Marketplace:
    """Marketplace attached to the running application."""
    marketplace = getattr(request.app.state, 'marketplace', None)
    if marketplace is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Marketplace is not initialized"
        )
    return marketplace
