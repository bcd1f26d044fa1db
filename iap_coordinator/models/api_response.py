"""API response models for store and control endpoints."""

from typing import Optional

from pydantic import BaseModel, Field

from .game_data import GameData


class ProductResponse(BaseModel):
    """Product as shown in the store UI."""

    id: str = Field(..., description="Product identifier")
    type: str = Field(..., description="consumable or non_consumable")
    title: str = Field(..., description="Localized title")
    description: str = Field(..., description="Localized description")
    price: str = Field(..., description="Decimal price")
    currency: str = Field(..., description="ISO 4217 currency code")
    formatted_price: Optional[str] = Field(None, description="Price formatted with currency")


class ProductListResponse(BaseModel):
    """Products loaded from the store."""

    products: list[ProductResponse] = Field(default_factory=list)
    count: int = Field(..., description="Number of products")


class PurchaseResponse(BaseModel):
    """Result of a purchase."""

    product_id: str = Field(..., description="Product identifier")
    status: str = Field(..., description="purchased or pending")
    game_data: GameData = Field(..., description="Game data after the purchase")
    message: str = Field(..., description="Human-readable result")

    class Config:
        json_schema_extra = {
            "example": {
                "product_id": "com.example.fakegame.extra_lives",
                "status": "purchased",
                "game_data": {"extra_lives": 3, "super_powers": 0, "did_unlock_all_maps": False},
                "message": "Purchase completed",
            }
        }


class RestoreResponse(BaseModel):
    """Result of restoring purchases."""

    restored: bool = Field(..., description="Whether any purchase was restored")
    game_data: GameData = Field(..., description="Game data after the restore")
    message: str = Field(..., description="Human-readable result")


class UiStateResponse(BaseModel):
    """What the view-model delegate has been told so far."""

    overlay_visible: bool = Field(..., description="Blocking overlay shown")
    long_process_running: bool = Field(..., description="Spinner shown")
    last_error: Optional[str] = Field(None, description="Last error shown to the user")
    last_notification: Optional[str] = Field(None, description="Last delegate notification")
    events: list[str] = Field(default_factory=list, description="Delegate notifications, oldest first")


class TransactionResponse(BaseModel):
    """Transaction known to the local queue."""

    transaction_id: str
    product_id: str
    state: str
    finished: bool
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class TransactionListResponse(BaseModel):
    """All transactions known to the local queue."""

    transactions: list[TransactionResponse] = Field(default_factory=list)
    owned_products: list[str] = Field(default_factory=list)


class StatusResponse(BaseModel):
    """Generic acknowledgement for control endpoints."""

    status: str = Field(..., description="Operation status")
    message: str = Field(..., description="Human-readable message")


class ErrorResponse(BaseModel):
    """Error body."""

    error: str = Field(..., description="Error kind")
    message: str = Field(..., description="Error details")
