"""Transaction identifier generation utilities.

Generates unique transaction IDs for the local transaction queue.
"""

import time
import uuid


def generate_transaction_id(prefix: str = "txn") -> str:
    """Generate a unique transaction ID.

    Format: {prefix}_{uuid}_{timestamp}
    Example: txn_a1b2c3d4e5f6a7b8_1700000000000

    Args:
        prefix: Transaction ID prefix

    Returns:
        Unique transaction ID string
    """
    token_id = uuid.uuid4().hex[:16]
    timestamp = int(time.time() * 1000)
    return f"{prefix}_{token_id}_{timestamp}"

