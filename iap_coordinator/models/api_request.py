"""API request models for store and control endpoints."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from iap_coordinator.errors import StoreErrorCode


class PurchaseRequest(BaseModel):
    """Request to buy a product, by identifier or by UI row index."""

    product_id: Optional[str] = Field(None, description="Product identifier to buy")
    item_index: Optional[int] = Field(None, ge=0, description="UI row index of the product")

    @model_validator(mode="after")
    def check_exactly_one_target(self) -> "PurchaseRequest":
        if (self.product_id is None) == (self.item_index is None):
            raise ValueError("Provide exactly one of product_id or item_index")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "product_id": "com.example.fakegame.extra_lives",
            }
        }


class PaymentOutcome(str, Enum):
    """Scripted outcome for the next payment added to the local queue."""

    PURCHASED = "purchased"
    FAILED = "failed"
    CANCELLED = "cancelled"
    DEFERRED = "deferred"


class NextPaymentOutcomeRequest(BaseModel):
    """Request to script the outcome of the next payment."""

    outcome: PaymentOutcome = Field(..., description="Outcome of the next payment")
    error_code: Optional[StoreErrorCode] = Field(
        None, description="Store error code for a failed payment (defaults to UNKNOWN)"
    )
    message: Optional[str] = Field(None, description="Error message for a failed payment")

    class Config:
        json_schema_extra = {
            "example": {
                "outcome": "failed",
                "error_code": StoreErrorCode.PAYMENT_NOT_ALLOWED,
                "message": "Payments are restricted on this device",
            }
        }


class RestoreBehaviorRequest(BaseModel):
    """Request to make the next restores fail (or succeed again)."""

    error_code: Optional[StoreErrorCode] = Field(
        None, description="Error code restores fail with, null to let them succeed"
    )
    message: Optional[str] = Field(None, description="Error message")


class ProductRequestsBehaviorRequest(BaseModel):
    """Request to make catalog requests fail."""

    fail: bool = Field(..., description="Whether catalog requests fail")


class PaymentsAvailabilityRequest(BaseModel):
    """Request to enable or disable payments for the user."""

    enabled: bool = Field(..., description="Whether the user can make payments")


class GrantOwnershipRequest(BaseModel):
    """Request to record a product as previously purchased."""

    product_id: str = Field(..., description="Non-consumable product identifier")
