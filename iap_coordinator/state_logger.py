"""State change logging for transactions and entitlements.

Tracks state transitions with before/after values for debugging and auditing.
"""

from typing import Any, Optional

from iap_coordinator.logging_config import get_logger

logger = get_logger(__name__)


def log_transaction_state_change(
    transaction_id: str,
    product_id: str,
    old_state: Any,
    new_state: Any,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log transaction state change.

    Args:
        transaction_id: Transaction ID
        product_id: Product ID
        old_state: Previous state value
        new_state: New state value
        reason: Reason for state change
        **extra_context: Additional context
    """
    logger.info(
        "transaction_state_changed",
        transaction_id=transaction_id,
        product_id=product_id,
        old_state=str(old_state),
        new_state=str(new_state),
        reason=reason,
        **extra_context,
    )


def log_entitlement_change(
    field: str,
    old_value: Any,
    new_value: Any,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log a game data entitlement change.

    Args:
        field: GameData field name
        old_value: Previous value
        new_value: New value
        reason: Reason for change (purchase, restore, consume)
        **extra_context: Additional context (product_id, etc.)
    """
    logger.info(
        "entitlement_changed",
        field=field,
        old_value=old_value,
        new_value=new_value,
        reason=reason,
        **extra_context,
    )
