"""Control API for scripting the local transaction queue in tests.

Implements:
- POST /emulator/next-payment - Script the outcome of the next payment
- POST /emulator/restore-behavior - Make restores fail or succeed
- POST /emulator/product-requests - Make catalog requests fail or succeed
- POST /emulator/payments-availability - Enable or disable payments
- POST /emulator/ownership - Record a non-consumable as already purchased
- GET  /emulator/transactions - List transactions and owned products
- POST /emulator/transactions/{transaction_id}/approve - Approve a deferred payment
- POST /emulator/transactions/{transaction_id}/decline - Decline a deferred payment
- POST /emulator/reset - Reset queue, game data and UI state
"""

import asyncio

from fastapi import APIRouter, HTTPException

from iap_coordinator.errors import StoreErrorCode, TransactionError
from iap_coordinator.logging_config import get_logger
from iap_coordinator.models import (
    GrantOwnershipRequest,
    NextPaymentOutcomeRequest,
    PaymentOutcome,
    PaymentsAvailabilityRequest,
    PaymentTransaction,
    ProductRequestsBehaviorRequest,
    RestoreBehaviorRequest,
    StatusResponse,
    TransactionListResponse,
    TransactionResponse,
)
from iap_coordinator.repositories.product_repository import ProductNotFoundError
from iap_coordinator.services.transaction_queue import (
    InvalidTransactionStateError,
    TransactionNotFoundError,
    get_transaction_queue,
)
from iap_coordinator.services.ui_state import get_ui_state_recorder
from iap_coordinator.services.view_model import get_view_model

logger = get_logger(__name__)
router = APIRouter(tags=["Control API"], prefix="/emulator")


def _transaction_response(transaction: PaymentTransaction) -> TransactionResponse:
    return TransactionResponse(
        transaction_id=transaction.transaction_id,
        product_id=transaction.product_id,
        state=transaction.state.name.lower(),
        finished=transaction.finished,
        error_code=transaction.error_code.name.lower() if transaction.error_code is not None else None,
        error_message=transaction.error_message,
    )


@router.post("/next-payment", response_model=StatusResponse, summary="Script next payment")
async def set_next_payment(request: NextPaymentOutcomeRequest) -> StatusResponse:
    """Script the outcome of the next payment added to the queue."""
    error = None
    if request.outcome == PaymentOutcome.FAILED:
        error = TransactionError(request.error_code or StoreErrorCode.UNKNOWN, request.message)

    get_transaction_queue().set_next_payment_outcome(request.outcome, error)
    return StatusResponse(
        status="ok",
        message=f"Next payment will be {request.outcome.value}",
    )


@router.post("/restore-behavior", response_model=StatusResponse, summary="Script restores")
async def set_restore_behavior(request: RestoreBehaviorRequest) -> StatusResponse:
    """Make restores fail with an error code, or succeed again."""
    error = None
    if request.error_code is not None:
        error = TransactionError(request.error_code, request.message)

    get_transaction_queue().set_restore_error(error)
    message = f"Restores fail with {error.code.name.lower()}" if error else "Restores succeed"
    return StatusResponse(status="ok", message=message)


@router.post("/product-requests", response_model=StatusResponse, summary="Script catalog requests")
async def set_product_requests_behavior(request: ProductRequestsBehaviorRequest) -> StatusResponse:
    get_transaction_queue().set_product_requests_fail(request.fail)
    return StatusResponse(
        status="ok",
        message="Product requests fail" if request.fail else "Product requests succeed",
    )


@router.post("/payments-availability", response_model=StatusResponse, summary="Enable payments")
async def set_payments_availability(request: PaymentsAvailabilityRequest) -> StatusResponse:
    get_transaction_queue().set_can_make_payments(request.enabled)
    return StatusResponse(
        status="ok",
        message="Payments enabled" if request.enabled else "Payments disabled",
    )


@router.post("/ownership", response_model=StatusResponse, status_code=201, summary="Grant ownership")
async def grant_ownership(request: GrantOwnershipRequest) -> StatusResponse:
    """Record a non-consumable as purchased before this session.

    Raises:
        404: Product not in the catalog
        400: Product is consumable
    """
    try:
        get_transaction_queue().grant_ownership(request.product_id)
    except ProductNotFoundError:
        logger.warning("product_not_found", product_id=request.product_id)
        raise HTTPException(
            status_code=404,
            detail={
                "error": "Product not found",
                "message": f"Product '{request.product_id}' does not exist in the catalog",
            },
        )
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid request", "message": str(e)},
        )

    return StatusResponse(status="ok", message=f"{request.product_id} is owned")


@router.get("/transactions", response_model=TransactionListResponse, summary="List transactions")
async def list_transactions() -> TransactionListResponse:
    queue = get_transaction_queue()
    return TransactionListResponse(
        transactions=[_transaction_response(t) for t in queue.get_transactions()],
        owned_products=queue.get_owned_products(),
    )


async def _resolve_deferred(transaction_id: str, approved: bool) -> TransactionResponse:
    queue = get_transaction_queue()
    try:
        transaction = queue.resolve_deferred(transaction_id, approved)
    except TransactionNotFoundError as e:
        raise HTTPException(
            status_code=404,
            detail={"error": "Transaction not found", "message": str(e)},
        )
    except InvalidTransactionStateError as e:
        raise HTTPException(
            status_code=409,
            detail={"error": "Invalid transaction state", "message": str(e)},
        )

    # queue and UI waits block, keep them off the event loop
    await asyncio.to_thread(queue.wait_idle)
    await asyncio.to_thread(get_view_model(delegate=get_ui_state_recorder()).wait_ui_idle)
    logger.info("deferred_transaction_resolved", transaction_id=transaction_id, approved=approved)
    return _transaction_response(transaction)


@router.post(
    "/transactions/{transaction_id}/approve",
    response_model=TransactionResponse,
    summary="Approve deferred payment",
)
async def approve_transaction(transaction_id: str) -> TransactionResponse:
    return await _resolve_deferred(transaction_id, approved=True)


@router.post(
    "/transactions/{transaction_id}/decline",
    response_model=TransactionResponse,
    summary="Decline deferred payment",
)
async def decline_transaction(transaction_id: str) -> TransactionResponse:
    return await _resolve_deferred(transaction_id, approved=False)


@router.post("/reset", response_model=StatusResponse, summary="Reset all state")
async def reset() -> StatusResponse:
    """Forget transactions and ownership, reset game data and UI state."""
    await asyncio.to_thread(get_transaction_queue().reset)
    view_model = get_view_model(delegate=get_ui_state_recorder())
    view_model.reset_game_data()
    get_ui_state_recorder().clear()

    logger.info("emulator_reset")
    return StatusResponse(status="ok", message="All state reset")
