"""Product, entitlement and store configuration models.

Models from store.yaml configuration and the products handed to the UI.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .game_data import GameData


class ProductType(str, Enum):
    """How the store treats a product after purchase."""

    CONSUMABLE = "consumable"
    NON_CONSUMABLE = "non_consumable"


class ProductDefinition(BaseModel):
    """Product definition in the local store catalog."""

    id: str = Field(..., description="Product identifier")
    type: ProductType = Field(default=ProductType.CONSUMABLE, description="Product type")
    title: str = Field(..., description="Localized title")
    description: str = Field(default="", description="Localized description")
    price_micros: int = Field(..., ge=0, description="Price in micros (1,000,000 = 1.00)")
    currency: str = Field(default="USD", description="ISO 4217 currency code")
    locale: str = Field(default="en_US", description="Price locale")

    class Config:
        json_schema_extra = {
            "example": {
                "id": "com.example.fakegame.extra_lives",
                "type": "consumable",
                "title": "3 Extra Lives",
                "description": "Three more chances to finish a level",
                "price_micros": 990000,
                "currency": "USD",
                "locale": "en_US",
            }
        }


class Product(BaseModel):
    """Product returned by a catalog request."""

    id: str = Field(..., description="Product identifier")
    type: ProductType = Field(..., description="Product type")
    title: str = Field(..., description="Localized title")
    description: str = Field(default="", description="Localized description")
    price_micros: int = Field(..., description="Price in micros")
    currency: str = Field(default="USD", description="ISO 4217 currency code")
    locale: str = Field(default="en_US", description="Price locale")

    model_config = {"frozen": True}

    @property
    def price(self) -> Decimal:
        """Price as a decimal amount in the product currency."""
        return Decimal(self.price_micros) / Decimal(1_000_000)

    @classmethod
    def from_definition(cls, definition: ProductDefinition) -> "Product":
        return cls(**definition.model_dump())


class EntitlementRule(BaseModel):
    """Maps product identifiers containing ``keyword`` to a game data update."""

    keyword: str = Field(..., min_length=1, description="Substring matched against the product ID")
    field: str = Field(..., description="GameData field to update")
    value: int = Field(..., description="Value assigned to the field")

    @field_validator("field")
    @classmethod
    def check_game_data_field(cls, value: str) -> str:
        if value not in GameData.model_fields:
            raise ValueError(
                f"Unknown game data field '{value}', expected one of {sorted(GameData.model_fields)}"
            )
        return value


class QueueBehaviorConfig(BaseModel):
    """Local transaction queue behaviour."""

    can_make_payments: bool = Field(default=True, description="Payments enabled for the user")
    transaction_id_prefix: str = Field(default="txn", description="Prefix for generated transaction IDs")
    owned_products: list[str] = Field(
        default_factory=list, description="Non-consumables owned before the first restore"
    )


class ApiConfig(BaseModel):
    """HTTP surface settings."""

    completion_timeout_seconds: float = Field(
        default=5.0, gt=0, description="How long a request waits for a store callback"
    )


class StoreConfig(BaseModel):
    """Complete store.yaml configuration."""

    product_ids_resource: str = Field(..., description="Bundled product identifier list")
    catalog: list[ProductDefinition] = Field(default_factory=list, description="Products the store sells")
    item_keywords: list[str] = Field(
        default_factory=list, description="Product ID keyword per UI row index"
    )
    entitlements: list[EntitlementRule] = Field(
        default_factory=lambda: [
            EntitlementRule(keyword="extra_lives", field="extra_lives", value=3),
            EntitlementRule(keyword="superpowers", field="super_powers", value=2),
        ],
        description="Entitlement rules, first match wins; unmatched products unlock all maps",
    )
    game_data_path: str = Field(default="game_data.json", description="Persisted game data file")
    queue: QueueBehaviorConfig = Field(default_factory=QueueBehaviorConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
