"""Utility functions and helpers for the purchase coordinator."""

from iap_coordinator.utils.price_format import format_price, micros_to_decimal
from iap_coordinator.utils.transaction_ids import generate_transaction_id

__all__ = [
    # Transaction IDs
    "generate_transaction_id",
    # Prices
    "format_price",
    "micros_to_decimal",
]
