"""Payment and transaction models.

Represents payments submitted to the transaction queue and the
transactions it reports back to observers.
"""

from enum import IntEnum
from typing import Optional

from pydantic import BaseModel, Field

from iap_coordinator.errors import StoreErrorCode, TransactionError

from .product import Product


class TransactionState(IntEnum):
    """State of a payment transaction in the queue."""

    PURCHASING = 0  # Being processed by the store
    PURCHASED = 1  # Charged, must be finished by the observer
    FAILED = 2  # Failed or cancelled, must be finished by the observer
    RESTORED = 3  # Restored from a previous purchase
    DEFERRED = 4  # Waiting on an external action (e.g. parental approval)


class Payment(BaseModel):
    """Request to buy a product."""

    product_id: str = Field(..., description="Product identifier")
    quantity: int = Field(default=1, ge=1, description="Number of items")


class PaymentTransaction(BaseModel):
    """Transaction tracked by the transaction queue."""

    transaction_id: str = Field(..., description="Unique transaction ID")
    payment: Payment = Field(..., description="Payment that started the transaction")
    state: TransactionState = Field(default=TransactionState.PURCHASING, description="Current state")
    created_millis: int = Field(..., description="Creation time (Unix millis)")
    original_transaction_id: Optional[str] = Field(
        None, description="Transaction being restored, for RESTORED transactions"
    )
    error_code: Optional[StoreErrorCode] = Field(None, description="Error code for FAILED transactions")
    error_message: Optional[str] = Field(None, description="Error message for FAILED transactions")
    finished: bool = Field(default=False, description="Whether the observer finished the transaction")

    @property
    def product_id(self) -> str:
        return self.payment.product_id

    @property
    def error(self) -> Optional[TransactionError]:
        """Error attached to a failed transaction, if any."""
        if self.error_code is None:
            return None
        return TransactionError(self.error_code, self.error_message)

    def set_state(self, new_state: TransactionState, reason: Optional[str] = None) -> None:
        """Change transaction state and log the transition.

        Args:
            new_state: New transaction state
            reason: Reason for state change
        """
        from iap_coordinator.state_logger import log_transaction_state_change

        old_state = self.state
        if old_state != new_state:
            self.state = new_state
            log_transaction_state_change(
                transaction_id=self.transaction_id,
                product_id=self.product_id,
                old_state=old_state.name,
                new_state=new_state.name,
                reason=reason,
            )

    def fail(self, error: TransactionError) -> None:
        """Mark transaction as failed with an error."""
        self.error_code = error.code
        self.error_message = error.message
        self.set_state(TransactionState.FAILED, reason=error.code.name.lower())

    class Config:
        json_schema_extra = {
            "example": {
                "transaction_id": "txn_a1b2c3d4e5f6a7b8_1700000000000",
                "payment": {"product_id": "com.example.fakegame.extra_lives", "quantity": 1},
                "state": TransactionState.PURCHASED,
                "created_millis": 1700000000000,
                "original_transaction_id": None,
                "error_code": None,
                "error_message": None,
                "finished": False,
            }
        }


class ProductsResponse(BaseModel):
    """Answer to a catalog request."""

    products: list[Product] = Field(default_factory=list, description="Products found in the catalog")
    invalid_product_identifiers: list[str] = Field(
        default_factory=list, description="Requested identifiers the store does not sell"
    )
