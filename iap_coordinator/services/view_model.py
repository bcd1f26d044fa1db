"""Application view-model - user-facing purchase state.

Owns the player's entitlements, maps purchased products to entitlement
updates and tells the UI delegate what to show. Gateway completions are
handled on a single UI dispatch thread so delegate calls and game data
updates never interleave.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from threading import RLock
from typing import Any, Callable, List, Optional, Protocol

from iap_coordinator.errors import NoEntitlementError
from iap_coordinator.logging_config import get_logger
from iap_coordinator.models import EntitlementRule, Failure, Product, Result
from iap_coordinator.repositories.game_data_store import GameDataStore
from iap_coordinator.services.purchase_gateway import PurchaseGateway, get_purchase_gateway
from iap_coordinator.state_logger import log_entitlement_change

logger = get_logger(__name__)


class ViewModelDelegate(Protocol):
    """UI callbacks driven by the view-model."""

    def toggle_overlay(self, should_show: bool) -> None: ...

    def will_start_long_process(self) -> None: ...

    def did_finish_long_process(self) -> None: ...

    def show_iap_related_error(self, error: Exception) -> None: ...

    def should_update_ui(self) -> None: ...

    def did_finish_restoring_purchases_with_zero_products(self) -> None: ...

    def did_finish_restoring_purchased_products(self) -> None: ...


class ViewModel:
    """Coordinates the store screen.

    Operations that reach the store return a Future resolved with the
    gateway's Result after the UI side of the completion has run.
    """

    def __init__(
        self,
        gateway: Optional[PurchaseGateway] = None,
        game_data_store: Optional[GameDataStore] = None,
        entitlements: Optional[List[EntitlementRule]] = None,
        item_keywords: Optional[List[str]] = None,
        delegate: Optional[ViewModelDelegate] = None,
    ):
        """Initialize the view-model.

        Args:
            gateway: Purchase gateway (uses global if not provided)
            game_data_store: Game data persistence (uses config path if not provided)
            entitlements: Entitlement rules (uses config if not provided)
            item_keywords: Product ID keyword per UI row (uses config if not provided)
            delegate: UI delegate
        """
        if game_data_store is None or entitlements is None or item_keywords is None:
            from iap_coordinator.config import get_config

            config = get_config()
            if game_data_store is None:
                game_data_store = GameDataStore(config.game_data_path)
            if entitlements is None:
                entitlements = list(config.store.entitlements)
            if item_keywords is None:
                item_keywords = list(config.store.item_keywords)

        self.delegate = delegate
        self._gateway = gateway if gateway is not None else get_purchase_gateway()
        self._store = game_data_store
        self._entitlements = entitlements
        self._item_keywords = item_keywords
        self._products: List[Product] = []
        self._lock = RLock()
        self._ui = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ui")

    # Properties

    @property
    def available_extra_lives(self) -> int:
        return self._store.game_data.extra_lives

    @property
    def available_super_powers(self) -> int:
        return self._store.game_data.super_powers

    @property
    def did_unlock_all_maps(self) -> bool:
        return self._store.game_data.did_unlock_all_maps

    @property
    def products(self) -> List[Product]:
        with self._lock:
            return list(self._products)

    @property
    def game_data(self):
        """Snapshot of the current game data."""
        with self._lock:
            return self._store.game_data.model_copy()

    # Delegate plumbing

    def _notify(self, method: str, *args: Any) -> None:
        if self.delegate is not None:
            getattr(self.delegate, method)(*args)

    def _on_ui(self, done: Future, handler: Callable[[Result], None]) -> Callable[[Result], None]:
        """Wrap a UI handler so it runs on the UI thread and resolves done."""

        def run(result: Result) -> None:
            try:
                handler(result)
            except Exception as e:
                logger.error(
                    "ui_handler_failed",
                    handler=handler.__name__,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                if not done.done():
                    done.set_exception(e)
                return
            if not done.done():
                done.set_result(result)

        def dispatch(result: Result) -> None:
            self._ui.submit(run, result)

        return dispatch

    # Entitlements

    def _apply_entitlement(self, field: str, value: Any, reason: str, **context: Any) -> None:
        old_value = getattr(self._store.game_data, field)
        setattr(self._store.game_data, field, value)
        log_entitlement_change(field, old_value, value, reason=reason, **context)

    def _find_rule(self, product_id: str) -> Optional[EntitlementRule]:
        for rule in self._entitlements:
            if rule.keyword in product_id:
                return rule
        return None

    def _update_game_data_with_purchased_product(self, product: Product) -> None:
        with self._lock:
            rule = self._find_rule(product.id)
            if rule is not None:
                self._apply_entitlement(rule.field, rule.value, "purchase", product_id=product.id)
            else:
                self._apply_entitlement("did_unlock_all_maps", True, "purchase", product_id=product.id)
            self._store.update()
        self._notify("should_update_ui")

    def _restore_unlocked_maps(self) -> None:
        with self._lock:
            self._apply_entitlement("did_unlock_all_maps", True, "restore")
            self._store.update()
        self._notify("should_update_ui")

    def did_consume_life(self) -> None:
        """Use one extra life.

        Raises:
            NoEntitlementError: If no extra life is left
        """
        self._consume("extra_lives")

    def did_consume_super_power(self) -> None:
        """Use one super power.

        Raises:
            NoEntitlementError: If no super power is left
        """
        self._consume("super_powers")

    def _consume(self, field: str) -> None:
        with self._lock:
            current = getattr(self._store.game_data, field)
            if current <= 0:
                raise NoEntitlementError(f"No {field.replace('_', ' ')} left")
            self._apply_entitlement(field, current - 1, "consume")
            self._store.update()

    # Products

    def get_product(self, containing: str) -> Optional[Product]:
        """Find a loaded product whose identifier contains the keyword."""
        if not containing:
            return None
        with self._lock:
            for product in self._products:
                if containing in product.id:
                    return product
        return None

    def get_product_by_id(self, product_id: str) -> Optional[Product]:
        with self._lock:
            for product in self._products:
                if product.id == product_id:
                    return product
        return None

    def get_product_for_item(self, index: int) -> Optional[Product]:
        """Get the loaded product shown at a UI row index."""
        keyword = self._item_keywords[index] if 0 <= index < len(self._item_keywords) else ""
        logger.debug("get_product_for_item", index=index, keyword=keyword)
        return self.get_product(containing=keyword)

    # Store operations

    def view_did_setup(self) -> Future:
        """Load the product list from the store."""
        done: Future = Future()
        self._notify("will_start_long_process")

        def handle(result: Result) -> None:
            self._notify("did_finish_long_process")
            if result.ok:
                for product in result.value:
                    self._gateway.describe_product(product)
                with self._lock:
                    self._products = list(result.value)
                logger.info("products_loaded", count=len(result.value))
            else:
                logger.warning("products_load_failed", error=str(result.error))
                self._notify("show_iap_related_error", result.error)

        self._gateway.get_products(self._on_ui(done, handle))
        return done

    def start_purchase(self, product: Product) -> Optional[Future]:
        """Buy a product.

        Returns:
            None if the user cannot make payments, otherwise a Future
            resolved once the purchase completes
        """
        if not self._gateway.can_make_payments():
            logger.info("purchase_not_allowed", product_id=product.id)
            return None

        done: Future = Future()
        self._notify("will_start_long_process")

        def handle(result: Result) -> None:
            self._notify("did_finish_long_process")
            if result.ok:
                self._update_game_data_with_purchased_product(product)
            else:
                self._notify("show_iap_related_error", result.error)

        self._gateway.buy(product, self._on_ui(done, handle))
        return done

    def purchase(self, product: Product) -> bool:
        """Buy a product; False if the user cannot make payments."""
        return self.start_purchase(product) is not None

    def restore_purchases(self) -> Future:
        """Restore previously purchased products."""
        done: Future = Future()
        self._notify("will_start_long_process")

        def handle(result: Result) -> None:
            self._notify("did_finish_long_process")
            if isinstance(result, Failure):
                self._notify("show_iap_related_error", result.error)
            elif result.value:
                self._restore_unlocked_maps()
                self._notify("did_finish_restoring_purchased_products")
            else:
                self._notify("did_finish_restoring_purchases_with_zero_products")

        self._gateway.restore_purchases(self._on_ui(done, handle))
        return done

    def reset_game_data(self) -> None:
        """Reset entitlements to defaults and persist."""
        with self._lock:
            self._store.reset()
        logger.info("game_data_reset")

    def wait_ui_idle(self, timeout: Optional[float] = 5.0) -> None:
        """Block until queued UI work has run."""
        self._ui.submit(lambda: None).result(timeout=timeout)

    def shutdown(self) -> None:
        self._ui.shutdown(wait=True)


_view_model: Optional[ViewModel] = None
_view_model_lock = RLock()


def get_view_model(delegate: Optional[ViewModelDelegate] = None) -> ViewModel:
    """Get or create the singleton ViewModel.

    The gateway it uses is registered as a transaction observer on creation.

    Args:
        delegate: UI delegate (only used on first call)
    """
    global _view_model
    if _view_model is None:
        with _view_model_lock:
            if _view_model is None:
                gateway = get_purchase_gateway()
                gateway.start_observing()
                _view_model = ViewModel(gateway=gateway, delegate=delegate)
    return _view_model


def reset_view_model() -> None:
    """Drop the singleton ViewModel (for testing)."""
    global _view_model
    with _view_model_lock:
        if _view_model is not None:
            _view_model.shutdown()
            _view_model = None
