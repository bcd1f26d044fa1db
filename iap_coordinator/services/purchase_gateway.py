"""Purchase Gateway - single point of contact with the transaction queue.

Fetches the product catalog, submits payments and restores purchases. The
queue answers asynchronously; the gateway turns those callbacks into one
completion call per operation on the handler the caller supplied.

Usage from UI code:

    gateway = get_purchase_gateway()
    gateway.start_observing()

    def on_products(result):
        if result.ok:
            show(result.value)
        else:
            show_error(result.error)

    gateway.get_products(on_products)
"""

from pathlib import Path
from threading import RLock
from typing import Callable, List, Optional, Union

from iap_coordinator.errors import (
    NoProductIDsFoundError,
    NoProductsFoundError,
    PaymentCancelledError,
    ProductRequestFailedError,
    StoreErrorCode,
    TransactionError,
)
from iap_coordinator.logging_config import get_logger
from iap_coordinator.models import (
    Failure,
    Payment,
    PaymentTransaction,
    Product,
    ProductsResponse,
    Result,
    Success,
    TransactionState,
)
from iap_coordinator.repositories.product_ids import load_product_ids
from iap_coordinator.services.transaction_queue import (
    LocalTransactionQueue,
    get_transaction_queue,
)
from iap_coordinator.utils.price_format import format_price

logger = get_logger(__name__)

ProductsHandler = Callable[[Result], None]
PurchaseHandler = Callable[[Result], None]


class PurchaseGateway:
    """Adapter between application code and the transaction queue.

    Holds at most one pending products handler and one pending
    purchase/restore handler. Starting an operation replaces the pending
    handler of its kind; a handler is called at most once.
    """

    def __init__(
        self,
        queue: Optional[LocalTransactionQueue] = None,
        product_ids_path: Optional[Union[str, Path]] = None,
    ):
        """Initialize the gateway.

        Args:
            queue: Transaction queue (uses global if not provided)
            product_ids_path: Bundled product ID resource (uses config if not provided)
        """
        if product_ids_path is None:
            from iap_coordinator.config import get_config

            product_ids_path = get_config().product_ids_path

        self._queue = queue if queue is not None else get_transaction_queue()
        self._product_ids_path = Path(product_ids_path)
        self._lock = RLock()
        self._on_receive_products_handler: Optional[ProductsHandler] = None
        self._on_buy_product_handler: Optional[PurchaseHandler] = None
        self._total_restored_purchases = 0
        self._observing = False

    # Observation

    def start_observing(self) -> None:
        """Register with the transaction queue. Call once at app start."""
        with self._lock:
            if self._observing:
                return
            self._observing = True
        self._queue.add_observer(self)
        logger.info("gateway_observing_started")

    def stop_observing(self) -> None:
        """Unregister from the transaction queue. Call at app shutdown."""
        with self._lock:
            if not self._observing:
                return
            self._observing = False
        self._queue.remove_observer(self)
        logger.info("gateway_observing_stopped")

    @property
    def is_observing(self) -> bool:
        return self._observing

    @property
    def total_restored_purchases(self) -> int:
        return self._total_restored_purchases

    def can_make_payments(self) -> bool:
        """Check in-app purchases are enabled for the current user."""
        return self._queue.can_make_payments()

    # Product list

    def get_product_ids(self) -> Optional[List[str]]:
        """Read the bundled product identifier list."""
        return load_product_ids(self._product_ids_path)

    def get_products(self, handler: ProductsHandler) -> None:
        """Fetch the products listed in the bundled resource.

        The handler receives Success(list[Product]) or a Failure carrying
        NoProductIDsFoundError, NoProductsFoundError or
        ProductRequestFailedError.
        """
        with self._lock:
            self._on_receive_products_handler = handler

        product_ids = self.get_product_ids()
        if product_ids is None:
            logger.warning("get_products_no_product_ids", path=str(self._product_ids_path))
            self._resolve_products(Failure(NoProductIDsFoundError()))
            return

        self._queue.start_products_request(set(product_ids), self)

    def on_products_response(self, request_id: str, response: ProductsResponse) -> None:
        """Handle the catalog answer."""
        if response.invalid_product_identifiers:
            logger.warning(
                "invalid_product_identifiers",
                request_id=request_id,
                product_ids=response.invalid_product_identifiers,
            )

        if response.products:
            logger.info("products_received", request_id=request_id, count=len(response.products))
            self._resolve_products(Success(list(response.products)))
        else:
            logger.warning("no_products_found", request_id=request_id)
            self._resolve_products(Failure(NoProductsFoundError()))

    def on_products_request_failed(self, request_id: str, error: Exception) -> None:
        """Handle a catalog request that could not reach the store."""
        logger.error(
            "products_request_failed",
            request_id=request_id,
            error=str(error),
            error_type=type(error).__name__,
        )
        self._resolve_products(Failure(ProductRequestFailedError()))

    def _resolve_products(self, result: Result) -> None:
        with self._lock:
            handler = self._on_receive_products_handler
            self._on_receive_products_handler = None
        if handler is None:
            logger.warning("products_result_without_handler", ok=result.ok)
            return
        handler(result)

    # Purchase

    def buy(self, product: Product, handler: PurchaseHandler) -> None:
        """Submit a payment for product.

        The handler receives Success(True) once the payment is purchased, or
        a Failure with PaymentCancelledError or the store's TransactionError.
        """
        with self._lock:
            self._on_buy_product_handler = handler
        transaction = self._queue.add_payment(Payment(product_id=product.id))
        logger.info(
            "purchase_submitted",
            product_id=product.id,
            transaction_id=transaction.transaction_id,
        )

    def restore_purchases(self, handler: PurchaseHandler) -> None:
        """Restore previously purchased products.

        The handler receives Success(True) when at least one purchase was
        restored, Success(False) when there was nothing to restore.
        """
        with self._lock:
            self._on_buy_product_handler = handler
            self._total_restored_purchases = 0
        self._queue.restore_completed_transactions()

    def _resolve_purchase(self, result: Result) -> None:
        with self._lock:
            handler = self._on_buy_product_handler
            self._on_buy_product_handler = None
        if handler is None:
            logger.warning("purchase_result_without_handler", ok=result.ok)
            return
        handler(result)

    # Transaction observer

    def on_transactions_updated(
        self, queue: LocalTransactionQueue, transactions: List[PaymentTransaction]
    ) -> None:
        """Dispatch each transaction on its state."""
        for transaction in transactions:
            state = transaction.state

            if state == TransactionState.PURCHASED:
                self._resolve_purchase(Success(True))
                queue.finish_transaction(transaction)

            elif state == TransactionState.RESTORED:
                with self._lock:
                    self._total_restored_purchases += 1
                queue.finish_transaction(transaction)

            elif state == TransactionState.FAILED:
                error = transaction.error or TransactionError(StoreErrorCode.UNKNOWN)
                logger.error(
                    "iap_transaction_failed",
                    transaction_id=transaction.transaction_id,
                    product_id=transaction.product_id,
                    error_code=error.code.name,
                    error=error.message,
                )
                if error.is_cancellation:
                    self._resolve_purchase(Failure(PaymentCancelledError()))
                else:
                    self._resolve_purchase(Failure(error))
                queue.finish_transaction(transaction)

            else:
                # PURCHASING and DEFERRED need no action
                logger.debug(
                    "transaction_in_progress",
                    transaction_id=transaction.transaction_id,
                    state=state.name,
                )

    def on_restore_completed(self, queue: LocalTransactionQueue) -> None:
        with self._lock:
            restored = self._total_restored_purchases
        if restored:
            logger.info("restore_completed", restored=restored)
            self._resolve_purchase(Success(True))
        else:
            logger.info("restore_completed_nothing_to_restore")
            self._resolve_purchase(Success(False))

    def on_restore_failed(self, queue: LocalTransactionQueue, error: TransactionError) -> None:
        if error.is_cancellation:
            self._resolve_purchase(Failure(PaymentCancelledError()))
            return
        logger.error("iap_restore_failed", error_code=error.code.name, error=error.message)
        self._resolve_purchase(Failure(error))

    # Helpers

    @staticmethod
    def get_price_formatted(product: Product) -> Optional[str]:
        """Format the product price with its currency and locale."""
        return format_price(product.price_micros, product.currency, product.locale)

    def describe_product(self, product: Product) -> None:
        """Log a product's fields at debug level."""
        logger.debug(
            "product_details",
            product_id=product.id,
            type=product.type.value,
            title=product.title,
            description=product.description,
            price=str(product.price),
            formatted_price=self.get_price_formatted(product),
            locale=product.locale,
        )


_purchase_gateway: Optional[PurchaseGateway] = None
_gateway_lock = RLock()


def get_purchase_gateway() -> PurchaseGateway:
    """Get or create the singleton PurchaseGateway instance."""
    global _purchase_gateway
    if _purchase_gateway is None:
        with _gateway_lock:
            if _purchase_gateway is None:
                _purchase_gateway = PurchaseGateway()
    return _purchase_gateway


def reset_purchase_gateway() -> None:
    """Stop observing and drop the singleton gateway (for testing)."""
    global _purchase_gateway
    with _gateway_lock:
        if _purchase_gateway is not None:
            _purchase_gateway.stop_observing()
            _purchase_gateway = None
