"""Local transaction queue - stand-in for the platform purchase service.

Responsibilities:
- Answer catalog requests from the configured product catalog
- Process payments and report transaction updates to observers
- Restore previously purchased non-consumables
- Let tests and the control API script the next outcomes

Every callback is delivered on a single worker thread, in the order the
work was submitted, never on the caller's thread.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from threading import RLock
from typing import Callable, Dict, List, Optional, Protocol

from iap_coordinator.errors import StoreErrorCode, TransactionError
from iap_coordinator.logging_config import get_logger
from iap_coordinator.models import (
    Payment,
    PaymentOutcome,
    PaymentTransaction,
    ProductsResponse,
    QueueBehaviorConfig,
    TransactionState,
)
from iap_coordinator.repositories.product_repository import (
    ProductRepository,
    get_product_repository,
)
from iap_coordinator.utils.transaction_ids import generate_transaction_id

logger = get_logger(__name__)


class TransactionObserver(Protocol):
    """Receives transaction updates from the queue."""

    def on_transactions_updated(
        self, queue: "LocalTransactionQueue", transactions: List[PaymentTransaction]
    ) -> None: ...

    def on_restore_completed(self, queue: "LocalTransactionQueue") -> None: ...

    def on_restore_failed(self, queue: "LocalTransactionQueue", error: TransactionError) -> None: ...


class ProductsRequestDelegate(Protocol):
    """Receives the answer to a catalog request."""

    def on_products_response(self, request_id: str, response: ProductsResponse) -> None: ...

    def on_products_request_failed(self, request_id: str, error: Exception) -> None: ...


class TransactionQueueError(Exception):
    """Base exception for transaction queue errors."""

    pass


class InvalidTransactionStateError(TransactionQueueError):
    """Raised when a transaction is in invalid state for the requested operation."""

    pass


class TransactionNotFoundError(TransactionQueueError):
    """Raised when a transaction ID is unknown."""

    pass


# States a transaction can be finished in
FINISHABLE_STATES = (TransactionState.PURCHASED, TransactionState.FAILED, TransactionState.RESTORED)


class LocalTransactionQueue:
    """In-process payment queue with scriptable outcomes.

    Thread-safe. Observers must not assume callbacks arrive on the thread
    that started the operation.
    """

    def __init__(
        self,
        product_repository: Optional[ProductRepository] = None,
        settings: Optional[QueueBehaviorConfig] = None,
    ):
        """Initialize the queue.

        Args:
            product_repository: Catalog (uses global if not provided)
            settings: Queue behaviour (uses global config if not provided)
        """
        if settings is None:
            from iap_coordinator.config import get_config

            settings = get_config().queue_settings

        self._product_repository = (
            product_repository if product_repository is not None else get_product_repository()
        )
        self._settings = settings
        self._lock = RLock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="transaction-queue")
        self._observers: List[TransactionObserver] = []
        self._transactions: Dict[str, PaymentTransaction] = {}
        self._owned: Dict[str, str] = {}
        self._can_make_payments = settings.can_make_payments
        self._next_outcome: Optional[tuple[PaymentOutcome, Optional[TransactionError]]] = None
        self._restore_error: Optional[TransactionError] = None
        self._fail_product_requests = False
        self._request_counter = 0

        for product_id in settings.owned_products:
            self.grant_ownership(product_id)

    # Delivery

    def _dispatch(self, fn: Callable[..., None], *args) -> None:
        """Run fn on the queue's worker thread."""
        self._executor.submit(self._run_callback, fn, *args)

    @staticmethod
    def _run_callback(fn: Callable[..., None], *args) -> None:
        try:
            fn(*args)
        except Exception as e:
            logger.error(
                "transaction_queue_callback_failed",
                callback=getattr(fn, "__qualname__", repr(fn)),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    def _notify_updated(self, transactions: List[PaymentTransaction]) -> None:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            self._run_callback(observer.on_transactions_updated, self, transactions)

    def wait_idle(self, timeout: Optional[float] = 5.0) -> bool:
        """Block until every callback submitted so far has been delivered.

        Returns:
            True if the queue drained within the timeout
        """
        marker = self._executor.submit(lambda: None)
        try:
            marker.result(timeout=timeout)
        except FutureTimeoutError:
            return False
        return True

    # Observers

    def add_observer(self, observer: TransactionObserver) -> None:
        """Register a transaction observer.

        Transactions that completed but were never finished are redelivered
        to the new observer.
        """
        with self._lock:
            if observer in self._observers:
                return
            self._observers.append(observer)
            unfinished = [
                t for t in self._transactions.values()
                if not t.finished and t.state in FINISHABLE_STATES
            ]

        logger.info("transaction_observer_added", observers=len(self._observers))
        if unfinished:
            logger.info("redelivering_unfinished_transactions", count=len(unfinished))
            self._dispatch(observer.on_transactions_updated, self, unfinished)

    def remove_observer(self, observer: TransactionObserver) -> None:
        """Unregister a transaction observer (no-op if not registered)."""
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)
                logger.info("transaction_observer_removed", observers=len(self._observers))

    # Catalog

    def start_products_request(self, product_ids: set[str], delegate: ProductsRequestDelegate) -> str:
        """Start an asynchronous catalog request.

        Args:
            product_ids: Identifiers to look up
            delegate: Receives the response or the failure

        Returns:
            Request ID
        """
        with self._lock:
            self._request_counter += 1
            request_id = f"products-{self._request_counter}"
            should_fail = self._fail_product_requests

        logger.info("products_request_started", request_id=request_id, requested=len(product_ids))

        if should_fail:
            error = TransactionError(StoreErrorCode.CLIENT_INVALID, "Cannot connect to the store")
            self._dispatch(delegate.on_products_request_failed, request_id, error)
            return request_id

        products, invalid = self._product_repository.lookup(product_ids)
        response = ProductsResponse(products=products, invalid_product_identifiers=invalid)
        self._dispatch(delegate.on_products_response, request_id, response)
        return request_id

    # Payments

    def can_make_payments(self) -> bool:
        with self._lock:
            return self._can_make_payments

    def add_payment(self, payment: Payment) -> PaymentTransaction:
        """Add a payment to the queue.

        The transaction is reported as PURCHASING, then with its outcome.

        Returns:
            The new transaction
        """
        transaction = PaymentTransaction(
            transaction_id=generate_transaction_id(self._settings.transaction_id_prefix),
            payment=payment,
            created_millis=int(time.time() * 1000),
        )

        with self._lock:
            self._transactions[transaction.transaction_id] = transaction
            outcome, error = self._take_next_outcome(payment)

        logger.info(
            "payment_added",
            transaction_id=transaction.transaction_id,
            product_id=payment.product_id,
            outcome=outcome.value,
        )

        self._dispatch(self._notify_updated, [transaction])
        self._dispatch(self._apply_outcome, transaction, outcome, error)
        return transaction

    def _take_next_outcome(
        self, payment: Payment
    ) -> tuple[PaymentOutcome, Optional[TransactionError]]:
        """Pick the outcome for a payment. Caller holds the lock."""
        if not self._can_make_payments:
            return PaymentOutcome.FAILED, TransactionError(
                StoreErrorCode.PAYMENT_NOT_ALLOWED, "This device is not allowed to make payments"
            )

        if not self._product_repository.exists(payment.product_id):
            return PaymentOutcome.FAILED, TransactionError(
                StoreErrorCode.PRODUCT_NOT_AVAILABLE,
                f"Product {payment.product_id} is not available",
            )

        if self._next_outcome is None:
            return PaymentOutcome.PURCHASED, None

        outcome, error = self._next_outcome
        self._next_outcome = None
        return outcome, error

    def _apply_outcome(
        self,
        transaction: PaymentTransaction,
        outcome: PaymentOutcome,
        error: Optional[TransactionError],
    ) -> None:
        if outcome == PaymentOutcome.PURCHASED:
            self._complete_purchase(transaction)
        elif outcome == PaymentOutcome.DEFERRED:
            transaction.set_state(TransactionState.DEFERRED, reason="awaiting_approval")
        elif outcome == PaymentOutcome.CANCELLED:
            transaction.fail(TransactionError(StoreErrorCode.PAYMENT_CANCELLED, "Payment cancelled"))
        else:
            transaction.fail(error or TransactionError(StoreErrorCode.UNKNOWN))

        self._notify_updated([transaction])

    def _complete_purchase(self, transaction: PaymentTransaction) -> None:
        transaction.set_state(TransactionState.PURCHASED)
        if not self._product_repository.is_consumable(transaction.product_id):
            with self._lock:
                self._owned[transaction.product_id] = transaction.transaction_id

    def resolve_deferred(self, transaction_id: str, approved: bool) -> PaymentTransaction:
        """Approve or decline a deferred transaction.

        Raises:
            TransactionNotFoundError: If transaction ID not found
            InvalidTransactionStateError: If the transaction is not deferred
        """
        transaction = self.get_transaction(transaction_id)
        if transaction.state != TransactionState.DEFERRED:
            raise InvalidTransactionStateError(
                f"Transaction {transaction_id} is {transaction.state.name}, not DEFERRED"
            )

        if approved:
            self._dispatch(self._apply_outcome, transaction, PaymentOutcome.PURCHASED, None)
        else:
            error = TransactionError(StoreErrorCode.PAYMENT_NOT_ALLOWED, "Purchase was declined")
            self._dispatch(self._apply_outcome, transaction, PaymentOutcome.FAILED, error)
        return transaction

    def finish_transaction(self, transaction: PaymentTransaction) -> None:
        """Mark a completed transaction as finished.

        Raises:
            InvalidTransactionStateError: If the transaction is still in progress
        """
        if transaction.state not in FINISHABLE_STATES:
            raise InvalidTransactionStateError(
                f"Cannot finish transaction {transaction.transaction_id} in state "
                f"{transaction.state.name}"
            )

        with self._lock:
            transaction.finished = True
        logger.debug(
            "transaction_finished",
            transaction_id=transaction.transaction_id,
            state=transaction.state.name,
        )

    # Restore

    def restore_completed_transactions(self) -> None:
        """Restore non-consumables the user owns.

        Observers receive one RESTORED transaction per owned product, then
        on_restore_completed; or on_restore_failed when scripted to fail.
        """
        logger.info("restore_started")
        self._dispatch(self._run_restore)

    def _run_restore(self) -> None:
        with self._lock:
            error = self._restore_error
            owned = dict(self._owned)
            observers = list(self._observers)

        if error is not None:
            for observer in observers:
                self._run_callback(observer.on_restore_failed, self, error)
            return

        restored = []
        for product_id, original_id in owned.items():
            transaction = PaymentTransaction(
                transaction_id=generate_transaction_id(self._settings.transaction_id_prefix),
                payment=Payment(product_id=product_id),
                state=TransactionState.RESTORED,
                created_millis=int(time.time() * 1000),
                original_transaction_id=original_id,
            )
            restored.append(transaction)

        with self._lock:
            for transaction in restored:
                self._transactions[transaction.transaction_id] = transaction

        logger.info("restore_transactions_ready", restored=len(restored))
        if restored:
            self._notify_updated(restored)
        for observer in observers:
            self._run_callback(observer.on_restore_completed, self)

    # Scripting

    def set_next_payment_outcome(
        self, outcome: PaymentOutcome, error: Optional[TransactionError] = None
    ) -> None:
        """Script the outcome of the next payment (one-shot)."""
        with self._lock:
            self._next_outcome = (outcome, error)
        logger.info("next_payment_outcome_set", outcome=outcome.value)

    def set_restore_error(self, error: Optional[TransactionError]) -> None:
        """Make restores fail with error, or succeed again with None."""
        with self._lock:
            self._restore_error = error
        logger.info("restore_error_set", error_code=error.code.name if error else None)

    def set_product_requests_fail(self, fail: bool) -> None:
        with self._lock:
            self._fail_product_requests = fail
        logger.info("product_requests_fail_set", fail=fail)

    def set_can_make_payments(self, enabled: bool) -> None:
        with self._lock:
            self._can_make_payments = enabled
        logger.info("can_make_payments_set", enabled=enabled)

    def grant_ownership(self, product_id: str) -> None:
        """Record a non-consumable as purchased outside the app session.

        Raises:
            ProductNotFoundError: If product ID not found
            ValueError: If the product is consumable
        """
        if self._product_repository.is_consumable(product_id):
            raise ValueError(f"Product {product_id} is consumable and cannot be owned")
        with self._lock:
            self._owned.setdefault(
                product_id, generate_transaction_id(self._settings.transaction_id_prefix)
            )
        logger.info("ownership_granted", product_id=product_id)

    # Inspection

    def get_transaction(self, transaction_id: str) -> PaymentTransaction:
        """Get transaction by ID.

        Raises:
            TransactionNotFoundError: If transaction ID not found
        """
        with self._lock:
            transaction = self._transactions.get(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(f"Transaction not found: {transaction_id}")
        return transaction

    def get_transactions(self) -> List[PaymentTransaction]:
        """Get all transactions, oldest first."""
        with self._lock:
            return sorted(self._transactions.values(), key=lambda t: t.created_millis)

    def get_pending_transactions(self) -> List[PaymentTransaction]:
        """Get transactions that were not finished yet."""
        return [t for t in self.get_transactions() if not t.finished]

    def get_owned_products(self) -> List[str]:
        with self._lock:
            return sorted(self._owned)

    def reset(self) -> None:
        """Forget transactions, ownership and scripted behaviour."""
        self.wait_idle()
        with self._lock:
            self._transactions.clear()
            self._owned.clear()
            self._next_outcome = None
            self._restore_error = None
            self._fail_product_requests = False
            self._can_make_payments = self._settings.can_make_payments
        logger.info("transaction_queue_reset")

    def shutdown(self) -> None:
        """Stop the worker thread after delivering pending callbacks."""
        self._executor.shutdown(wait=True)
        logger.info("transaction_queue_shutdown")

    def __repr__(self) -> str:
        return (
            f"LocalTransactionQueue(transactions={len(self._transactions)}, "
            f"observers={len(self._observers)})"
        )


_transaction_queue: Optional[LocalTransactionQueue] = None
_queue_lock = RLock()


def get_transaction_queue() -> LocalTransactionQueue:
    """Get or create the singleton LocalTransactionQueue instance."""
    global _transaction_queue
    if _transaction_queue is None:
        with _queue_lock:
            if _transaction_queue is None:
                _transaction_queue = LocalTransactionQueue()
    return _transaction_queue


def reset_transaction_queue() -> None:
    """Shut down and drop the singleton queue (for testing)."""
    global _transaction_queue
    with _queue_lock:
        if _transaction_queue is not None:
            _transaction_queue.shutdown()
            _transaction_queue = None
