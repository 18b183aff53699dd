"""Exception hierarchy for marketplace operations.

Every failure raised by the marketplace derives from MarketError and falls
into exactly one category:

- InvalidInputError: malformed arguments (empty URI, non-positive price)
- NotAuthorizedError: caller lacks the required role, ownership or approval
- InvalidStateError: the targeted listing/asset is not in a usable state
- PaymentMismatchError: payment differs from the listing price
- SelfDealingError: buyer and seller are the same address
- PolicyViolationError: an administrative value breaks a policy cap
- ExternalCallError: a collaborator failed while settling a purchase

A failed operation never leaves partial state behind.
"""

from typing import Optional


class MarketError(Exception):
    """Base exception for marketplace operations."""
    pass


class InvalidInputError(MarketError):
    """Raised when an argument is malformed."""
    pass


class NotAuthorizedError(MarketError):
    """Raised when the caller may not perform the operation."""
    pass


class InvalidStateError(MarketError):
    """Raised when the target of an operation is in the wrong state."""
    pass


class PaymentMismatchError(MarketError):
    """Raised when the payment does not match the asking price."""
    pass


class SelfDealingError(MarketError):
    """Raised when a seller attempts to trade with themselves."""
    pass


class PolicyViolationError(MarketError):
    """Raised when a value breaks a marketplace policy."""
    pass


class ExternalCallError(MarketError):
    """Raised when a collaborator fails during settlement."""
    pass


# Invalid input

class EmptyURIError(InvalidInputError):
    """Raised when minting with an empty metadata URI."""
    pass


class InvalidPriceError(InvalidInputError):
    """Raised when a listing price is not a positive integer."""
    pass


class InvalidFeeError(InvalidInputError):
    """Raised when a fee is not a non-negative integer."""
    pass


class InvalidAmountError(InvalidInputError):
    """Raised when a deposit amount is not a positive integer."""
    pass


# Authorization

class NotOwnerError(NotAuthorizedError):
    """Raised when the caller does not own the asset."""
    pass


class NotApprovedError(NotAuthorizedError):
    """Raised when the marketplace may not move the asset."""
    pass


class NotSellerError(NotAuthorizedError):
    """Raised when someone other than the seller cancels a listing."""
    pass


class UnauthorizedError(NotAuthorizedError):
    """Raised when the caller is not the marketplace owner."""
    pass


# State

class InvalidAssetError(InvalidStateError):
    """Raised when an asset id does not resolve in the registry."""
    pass


class ListingNotActiveError(InvalidStateError):
    """Raised when a listing is unknown or already retired."""
    pass


class ListingNotFoundError(InvalidStateError):
    """Raised when no listing record exists for an id."""
    pass


class NoActiveListingError(InvalidStateError):
    """Raised when an asset has no active listing."""
    pass


class AlreadyListedError(InvalidStateError):
    """Raised when an asset already has an active listing."""
    pass


class NoFundsError(InvalidStateError):
    """Raised when there is no balance to withdraw."""
    pass


class ReentrantCallError(InvalidStateError):
    """Raised when a mutating call re-enters during settlement."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(
            f"Cannot run {operation} while a settlement is in progress"
        )


# Payment

class IncorrectPaymentError(PaymentMismatchError):
    """Raised when the payment is not exactly the listing price."""

    def __init__(self, expected: int, received: int):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Incorrect payment: expected {expected}, received {received}"
        )


class SelfPurchaseError(SelfDealingError):
    """Raised when the seller tries to buy their own listing."""
    pass


class FeeTooHighError(PolicyViolationError):
    """Raised when a fee exceeds the marketplace cap."""

    def __init__(self, basis_points: int, cap: int):
        self.basis_points = basis_points
        self.cap = cap
        super().__init__(
            f"Fee of {basis_points} basis points exceeds the cap of {cap}"
        )


# Collaborators

class AssetTransferError(ExternalCallError):
    """Raised when the asset registry refuses a transfer."""

    def __init__(self, message: str, asset_id: Optional[int] = None):
        self.asset_id = asset_id
        super().__init__(message)


class PaymentRejectedError(ExternalCallError):
    """Raised when a payment recipient rejects funds."""

    def __init__(self, message: str, to_address: Optional[str] = None, amount: Optional[int] = None):
        self.to_address = to_address
        self.amount = amount
        super().__init__(message)
