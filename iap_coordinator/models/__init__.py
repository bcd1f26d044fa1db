"""Pydantic models for configuration, transactions, game data and the HTTP API."""

# Product and configuration models
from .product import (
    ApiConfig,
    EntitlementRule,
    Product,
    ProductDefinition,
    ProductType,
    QueueBehaviorConfig,
    StoreConfig,
)

# Transaction models
from .transaction import (
    Payment,
    PaymentTransaction,
    ProductsResponse,
    TransactionState,
)

# Game data
from .game_data import GameData

# Completion results
from .result import Failure, Result, Success

# API request models
from .api_request import (
    GrantOwnershipRequest,
    NextPaymentOutcomeRequest,
    PaymentOutcome,
    PaymentsAvailabilityRequest,
    ProductRequestsBehaviorRequest,
    PurchaseRequest,
    RestoreBehaviorRequest,
)

# API response models
from .api_response import (
    ErrorResponse,
    ProductListResponse,
    ProductResponse,
    PurchaseResponse,
    RestoreResponse,
    StatusResponse,
    TransactionListResponse,
    TransactionResponse,
    UiStateResponse,
)

__all__ = [
    # Product and configuration
    "ApiConfig",
    "EntitlementRule",
    "Product",
    "ProductDefinition",
    "ProductType",
    "QueueBehaviorConfig",
    "StoreConfig",
    # Transactions
    "Payment",
    "PaymentTransaction",
    "ProductsResponse",
    "TransactionState",
    # Game data
    "GameData",
    # Results
    "Failure",
    "Result",
    "Success",
    # API requests
    "GrantOwnershipRequest",
    "NextPaymentOutcomeRequest",
    "PaymentOutcome",
    "PaymentsAvailabilityRequest",
    "ProductRequestsBehaviorRequest",
    "PurchaseRequest",
    "RestoreBehaviorRequest",
    # API responses
    "ErrorResponse",
    "ProductListResponse",
    "ProductResponse",
    "PurchaseResponse",
    "RestoreResponse",
    "StatusResponse",
    "TransactionListResponse",
    "TransactionResponse",
    "UiStateResponse",
]
