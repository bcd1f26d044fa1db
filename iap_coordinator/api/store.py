"""Store API - the view-model exposed to a UI client.

Implements:
- GET  /store/products - Products loaded from the store
- POST /store/products/refresh - Reload products from the store
- POST /store/purchases - Buy a product
- POST /store/restore - Restore previous purchases
- GET  /store/game-data - Current entitlements
- POST /store/game-data/consume/{entitlement} - Use an extra life or super power
- GET  /store/ui-state - What the UI delegate was told
"""

import asyncio
from concurrent.futures import Future
from enum import Enum
from typing import NoReturn, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from iap_coordinator.errors import (
    NoEntitlementError,
    NoProductIDsFoundError,
    NoProductsFoundError,
    PaymentCancelledError,
    ProductRequestFailedError,
    TransactionError,
)
from iap_coordinator.logging_config import bind_context, get_logger
from iap_coordinator.models import (
    GameData,
    Product,
    ProductListResponse,
    ProductResponse,
    PurchaseRequest,
    PurchaseResponse,
    RestoreResponse,
    Result,
    UiStateResponse,
)
from iap_coordinator.services.purchase_gateway import PurchaseGateway
from iap_coordinator.services.ui_state import get_ui_state_recorder
from iap_coordinator.services.view_model import ViewModel, get_view_model

logger = get_logger(__name__)
router = APIRouter(tags=["Store API"], prefix="/store")


class ConsumableEntitlement(str, Enum):
    """Entitlements the player can use up."""

    EXTRA_LIFE = "extra_life"
    SUPER_POWER = "super_power"


def _view_model() -> ViewModel:
    return get_view_model(delegate=get_ui_state_recorder())


def _completion_timeout() -> float:
    from iap_coordinator.config import get_config

    return get_config().api_settings.completion_timeout_seconds


async def _await_completion(future: Future) -> Optional[Result]:
    """Wait for a view-model operation; None if it is still pending after the timeout."""
    try:
        return await asyncio.wait_for(
            asyncio.shield(asyncio.wrap_future(future)), timeout=_completion_timeout()
        )
    except asyncio.TimeoutError:
        return None


def _raise_for_error(error: Exception) -> NoReturn:
    """Map a gateway failure to an HTTP error."""
    if isinstance(error, PaymentCancelledError):
        status_code, kind = 409, "payment_cancelled"
    elif isinstance(error, NoProductsFoundError):
        status_code, kind = 404, "no_products_found"
    elif isinstance(error, ProductRequestFailedError):
        status_code, kind = 503, "product_request_failed"
    elif isinstance(error, NoProductIDsFoundError):
        status_code, kind = 500, "no_product_ids_found"
    elif isinstance(error, TransactionError):
        status_code, kind = 402, f"payment_failed_{error.code.name.lower()}"
    else:
        status_code, kind = 500, "purchase_flow_error"

    logger.warning("store_request_failed", error=kind, message=str(error))
    raise HTTPException(status_code=status_code, detail={"error": kind, "message": str(error)})


def _product_response(product: Product) -> ProductResponse:
    return ProductResponse(
        id=product.id,
        type=product.type.value,
        title=product.title,
        description=product.description,
        price=str(product.price),
        currency=product.currency,
        formatted_price=PurchaseGateway.get_price_formatted(product),
    )


async def _load_products(view_model: ViewModel) -> None:
    result = await _await_completion(view_model.view_did_setup())
    if result is None:
        raise HTTPException(
            status_code=504,
            detail={"error": "store_timeout", "message": "The store did not answer in time"},
        )
    if not result.ok:
        _raise_for_error(result.error)


@router.get("/products", response_model=ProductListResponse, summary="List products")
async def list_products() -> ProductListResponse:
    """List products loaded from the store, loading them on first use."""
    view_model = _view_model()
    if not view_model.products:
        await _load_products(view_model)

    products = [_product_response(p) for p in view_model.products]
    return ProductListResponse(products=products, count=len(products))


@router.post("/products/refresh", response_model=ProductListResponse, summary="Reload products")
async def refresh_products() -> ProductListResponse:
    """Fetch the product list from the store again."""
    view_model = _view_model()
    await _load_products(view_model)

    products = [_product_response(p) for p in view_model.products]
    return ProductListResponse(products=products, count=len(products))


@router.post(
    "/purchases",
    response_model=PurchaseResponse,
    responses={202: {"model": PurchaseResponse}},
    summary="Buy a product",
)
async def purchase(request: PurchaseRequest):
    """Buy a product by identifier or by UI row index.

    Raises:
        403: Payments disabled for the user
        404: Product not loaded from the store
        402: Payment failed
        409: Payment cancelled
    """
    view_model = _view_model()
    if not view_model.products:
        await _load_products(view_model)

    if request.product_id is not None:
        product = view_model.get_product_by_id(request.product_id)
    else:
        product = view_model.get_product_for_item(request.item_index)

    if product is None:
        target = request.product_id if request.product_id is not None else f"item {request.item_index}"
        logger.warning("purchase_product_not_found", target=target)
        raise HTTPException(
            status_code=404,
            detail={"error": "product_not_found", "message": f"No store product for {target}"},
        )

    bind_context(product_id=product.id)
    logger.info("purchase_request", product_id=product.id)

    future = view_model.start_purchase(product)
    if future is None:
        raise HTTPException(
            status_code=403,
            detail={"error": "payments_disabled", "message": "This user cannot make payments"},
        )

    result = await _await_completion(future)
    if result is None:
        logger.info("purchase_pending", product_id=product.id)
        pending = PurchaseResponse(
            product_id=product.id,
            status="pending",
            game_data=view_model.game_data,
            message="Purchase is waiting for approval",
        )
        return JSONResponse(status_code=202, content=pending.model_dump(mode="json"))

    if not result.ok:
        _raise_for_error(result.error)

    return PurchaseResponse(
        product_id=product.id,
        status="purchased",
        game_data=view_model.game_data,
        message="Purchase completed",
    )


@router.post("/restore", response_model=RestoreResponse, summary="Restore purchases")
async def restore() -> RestoreResponse:
    """Restore previously purchased products."""
    view_model = _view_model()
    result = await _await_completion(view_model.restore_purchases())
    if result is None:
        raise HTTPException(
            status_code=504,
            detail={"error": "store_timeout", "message": "The store did not answer in time"},
        )
    if not result.ok:
        _raise_for_error(result.error)

    restored = bool(result.value)
    return RestoreResponse(
        restored=restored,
        game_data=view_model.game_data,
        message="Purchases restored" if restored else "No purchases to restore",
    )


@router.get("/game-data", response_model=GameData, summary="Current entitlements")
async def get_game_data() -> GameData:
    return _view_model().game_data


@router.post(
    "/game-data/consume/{entitlement}",
    response_model=GameData,
    summary="Use an entitlement",
)
async def consume(entitlement: ConsumableEntitlement) -> GameData:
    """Use one extra life or one super power.

    Raises:
        409: Nothing left to use
    """
    view_model = _view_model()
    try:
        if entitlement == ConsumableEntitlement.EXTRA_LIFE:
            view_model.did_consume_life()
        else:
            view_model.did_consume_super_power()
    except NoEntitlementError as e:
        raise HTTPException(
            status_code=409,
            detail={"error": "no_entitlement", "message": str(e)},
        )
    return view_model.game_data


@router.get("/ui-state", response_model=UiStateResponse, summary="UI delegate state")
async def ui_state() -> UiStateResponse:
    recorder = get_ui_state_recorder()
    return UiStateResponse(
        overlay_visible=recorder.overlay_visible,
        long_process_running=recorder.long_process_running,
        last_error=recorder.last_error,
        last_notification=recorder.last_notification,
        events=recorder.events,
    )
