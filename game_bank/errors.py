"""
Error Taxonomy

Every failure surfaced by the executor or the settlement scheduler is exactly
one of these kinds. Business-rule failures carry a human-readable message and
are never retried; StoreError is infrastructure-level and safe to retry.
"""


class BankingError(Exception):
    """Base exception for all game bank errors."""

    kind = "banking_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ============================================================================
# VALIDATION (rejected before any store access where possible)
# ============================================================================

class ValidationError(BankingError):
    """Input is malformed for the requested operation."""
    kind = "validation_error"


class InvalidAmount(ValidationError):
    """Raised for a non-positive amount or an otherwise unusable amount."""
    pass


class InvalidQuantity(ValidationError):
    """Raised for a non-positive cart or trade quantity."""
    pass


class EmptyCart(ValidationError):
    """Raised when checkout is called without cart lines."""
    pass


class InvalidDuration(ValidationError):
    """Raised when an insurance duration string cannot be parsed."""
    pass


# ============================================================================
# NOT FOUND
# ============================================================================

class NotFoundError(BankingError):
    """A referenced entity does not exist."""
    kind = "not_found"


class AccountNotFound(NotFoundError):
    pass


class AssetNotFound(NotFoundError):
    pass


class ItemNotFound(NotFoundError):
    pass


class OptionNotFound(NotFoundError):
    pass


class AuctionNotFound(NotFoundError):
    pass


class AuctionNotActive(NotFoundError):
    """Raised when bidding on an auction that is closed or past its end time."""
    pass


class LoanRequestNotFound(NotFoundError):
    pass


# ============================================================================
# INSUFFICIENT RESOURCES
# ============================================================================

class InsufficientFundsError(BankingError):
    """Balance or loyalty points do not cover the operation."""
    kind = "insufficient_funds"


class InsufficientStockError(BankingError):
    """A shop item does not have enough units in stock."""
    kind = "insufficient_stock"


class InsufficientHoldingsError(BankingError):
    """A sell order exceeds the quantity held."""
    kind = "insufficient_holdings"


# ============================================================================
# CONFLICTS WITH AN ENTITY'S CURRENT STATE
# ============================================================================

class ConflictError(BankingError):
    """The operation is not allowed in the entity's current lifecycle state."""
    kind = "conflict"


class BidTooLow(ConflictError):
    pass


class DepositAlreadyActive(ConflictError):
    pass


class NoActiveLoan(ConflictError):
    pass


class LoanLimitExceeded(ConflictError):
    pass


class LoanRequestAlreadyResolved(ConflictError):
    pass


class AccountBlocked(ConflictError):
    pass


class HandleTaken(ConflictError):
    pass


# ============================================================================
# STORE
# ============================================================================

class StoreError(BankingError):
    """Transient store failure; the whole unit was rolled back."""
    kind = "store_error"


class StoreConflictError(StoreError):
    """Another atomic unit held the store for longer than the lock timeout."""
    pass
