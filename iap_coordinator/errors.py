"""Error types raised or reported by the purchase flow.

Gateway errors are what application code sees in a ``Failure`` result.
``TransactionError`` is what the transaction queue attaches to a failed
transaction or a failed restore.
"""

from enum import IntEnum
from typing import Optional


class StoreErrorCode(IntEnum):
    """Error codes reported by the transaction queue."""

    UNKNOWN = 0
    CLIENT_INVALID = 1  # Client is not allowed to issue the request
    PAYMENT_CANCELLED = 2  # User cancelled the payment sheet
    PAYMENT_INVALID = 3  # Purchase identifier was invalid
    PAYMENT_NOT_ALLOWED = 4  # Device is not allowed to make the payment
    PRODUCT_NOT_AVAILABLE = 5  # Product is not available in the current storefront


class TransactionError(Exception):
    """Error reported by the transaction queue for a payment or restore."""

    def __init__(self, code: StoreErrorCode, message: Optional[str] = None):
        self.code = StoreErrorCode(code)
        self.message = message or f"Transaction failed ({self.code.name.lower()})"
        super().__init__(self.message)

    @property
    def is_cancellation(self) -> bool:
        return self.code == StoreErrorCode.PAYMENT_CANCELLED

    def __repr__(self) -> str:
        return f"TransactionError(code={self.code.name}, message={self.message!r})"


class PurchaseGatewayError(Exception):
    """Base exception for purchase gateway errors."""

    message = "In-App Purchase failed."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)


class NoProductIDsFoundError(PurchaseGatewayError):
    """Raised when the bundled product identifier list cannot be read."""

    message = "No In-App Purchase product identifiers were found."


class NoProductsFoundError(PurchaseGatewayError):
    """Raised when the store returns no product for the requested identifiers."""

    message = "No In-App Purchases were found."


class PaymentCancelledError(PurchaseGatewayError):
    """Raised when the user cancels a payment or a restore."""

    message = "In-App Purchase process was cancelled."


class ProductRequestFailedError(PurchaseGatewayError):
    """Raised when the store cannot be contacted for the product list."""

    message = (
        "Unable to fetch available In-App Purchase products from the store at the moment."
    )


class NoEntitlementError(Exception):
    """Raised when consuming an entitlement the user does not have."""

    pass
