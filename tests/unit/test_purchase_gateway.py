"""Tests for the purchase gateway."""

from decimal import Decimal

import pytest

from iap_coordinator.errors import (
    NoProductIDsFoundError,
    NoProductsFoundError,
    PaymentCancelledError,
    ProductRequestFailedError,
    StoreErrorCode,
    TransactionError,
)
from iap_coordinator.models import (
    Failure,
    PaymentOutcome,
    Product,
    ProductType,
    Success,
    TransactionState,
)
from iap_coordinator.services.purchase_gateway import PurchaseGateway


def _product(product_id: str, product_type: ProductType = ProductType.CONSUMABLE) -> Product:
    return Product(id=product_id, type=product_type, title="Test", price_micros=990000)


class TestObserving:
    """Test registration with the queue."""

    def test_start_observing_idempotent(self, queue, config):
        gateway = PurchaseGateway(queue=queue, product_ids_path=config.product_ids_path)
        gateway.start_observing()
        gateway.start_observing()

        assert gateway.is_observing
        assert repr(queue).endswith("observers=1)")

    def test_stop_observing(self, gateway, queue):
        gateway.stop_observing()
        gateway.stop_observing()

        assert not gateway.is_observing
        assert repr(queue).endswith("observers=0)")

    def test_can_make_payments_follows_queue(self, gateway, queue):
        assert gateway.can_make_payments() is True
        queue.set_can_make_payments(False)
        assert gateway.can_make_payments() is False


class TestGetProducts:
    """Test fetching the product list."""

    def test_products_success(self, gateway, queue, collector, product_ids):
        handler = collector()
        gateway.get_products(handler)
        queue.wait_idle()

        result = handler.result
        assert isinstance(result, Success)
        assert sorted(p.id for p in result.value) == sorted(product_ids.values())

    def test_missing_product_ids_resource(self, queue, tmp_path, collector):
        gateway = PurchaseGateway(queue=queue, product_ids_path=tmp_path / "missing.plist")
        handler = collector()
        gateway.get_products(handler)

        # resolved synchronously, the queue is never asked
        assert isinstance(handler.result, Failure)
        assert isinstance(handler.result.error, NoProductIDsFoundError)

    def test_no_products_found(self, queue, tmp_path, collector):
        resource = tmp_path / "ids.json"
        resource.write_text('["com.example.unknown"]')
        gateway = PurchaseGateway(queue=queue, product_ids_path=resource)
        handler = collector()
        gateway.get_products(handler)
        queue.wait_idle()

        assert isinstance(handler.result.error, NoProductsFoundError)

    def test_invalid_identifiers_not_surfaced(self, queue, tmp_path, collector, product_ids):
        resource = tmp_path / "ids.json"
        resource.write_text(f'["{product_ids["unlock_maps"]}", "com.example.unknown"]')
        gateway = PurchaseGateway(queue=queue, product_ids_path=resource)
        handler = collector()
        gateway.get_products(handler)
        queue.wait_idle()

        result = handler.result
        assert isinstance(result, Success)
        assert [p.id for p in result.value] == [product_ids["unlock_maps"]]

    def test_malformed_product_ids_resource(self, queue, tmp_path, collector):
        resource = tmp_path / "ids.plist"
        resource.write_text("<?xml version='1.0'?><plist><array><string>a</array>")
        gateway = PurchaseGateway(queue=queue, product_ids_path=resource)
        handler = collector()
        gateway.get_products(handler)

        assert isinstance(handler.result.error, NoProductIDsFoundError)

    def test_empty_product_ids_list(self, queue, tmp_path, collector):
        resource = tmp_path / "ids.json"
        resource.write_text("[]")
        gateway = PurchaseGateway(queue=queue, product_ids_path=resource)
        handler = collector()
        gateway.get_products(handler)
        queue.wait_idle()

        assert isinstance(handler.result.error, NoProductsFoundError)

    def test_request_failed(self, gateway, queue, collector):
        queue.set_product_requests_fail(True)
        handler = collector()
        gateway.get_products(handler)
        queue.wait_idle()

        assert isinstance(handler.result.error, ProductRequestFailedError)

    def test_new_request_replaces_pending_handler(self, gateway, queue, collector):
        first = collector()
        second = collector()
        gateway.get_products(first)
        gateway.get_products(second)
        queue.wait_idle()

        # second answer arrives with no handler left and is dropped
        assert first.results == []
        assert len(second.results) == 1

    def test_get_product_ids(self, gateway, product_ids):
        assert gateway.get_product_ids() == [
            product_ids["extra_lives"],
            product_ids["superpowers"],
            product_ids["unlock_maps"],
        ]


class TestBuy:
    """Test purchases."""

    def test_purchase_success(self, gateway, queue, collector, product_ids):
        handler = collector()
        gateway.buy(_product(product_ids["extra_lives"]), handler)
        queue.wait_idle()

        assert handler.result == Success(True)
        assert queue.get_pending_transactions() == []

    def test_purchase_cancelled(self, gateway, queue, collector, product_ids):
        queue.set_next_payment_outcome(PaymentOutcome.CANCELLED)
        handler = collector()
        gateway.buy(_product(product_ids["extra_lives"]), handler)
        queue.wait_idle()

        assert isinstance(handler.result.error, PaymentCancelledError)
        assert str(handler.result.error) == "In-App Purchase process was cancelled."

    def test_purchase_failed_passes_store_error(self, gateway, queue, collector, product_ids):
        queue.set_next_payment_outcome(
            PaymentOutcome.FAILED, TransactionError(StoreErrorCode.PAYMENT_INVALID, "invalid")
        )
        handler = collector()
        gateway.buy(_product(product_ids["extra_lives"]), handler)
        queue.wait_idle()

        error = handler.result.error
        assert isinstance(error, TransactionError)
        assert error.code == StoreErrorCode.PAYMENT_INVALID
        assert queue.get_transactions()[0].finished is True

    def test_deferred_purchase_waits(self, gateway, queue, collector, product_ids):
        queue.set_next_payment_outcome(PaymentOutcome.DEFERRED)
        handler = collector()
        gateway.buy(_product(product_ids["extra_lives"]), handler)
        queue.wait_idle()

        assert handler.results == []

        transaction = queue.get_transactions()[0]
        queue.resolve_deferred(transaction.transaction_id, approved=True)
        queue.wait_idle()

        assert handler.result == Success(True)

    def test_handler_called_once(self, gateway, queue, collector, product_ids):
        handler = collector()
        gateway.buy(_product(product_ids["extra_lives"]), handler)
        queue.wait_idle()
        queue.restore_completed_transactions()
        queue.wait_idle()

        assert len(handler.results) == 1

    def test_in_progress_states_do_not_resolve(self, gateway, queue, collector, product_ids):
        queue.set_next_payment_outcome(PaymentOutcome.DEFERRED)
        handler = collector()
        gateway.buy(_product(product_ids["unlock_maps"]), handler)
        queue.wait_idle()

        transaction = queue.get_transactions()[0]
        assert transaction.state == TransactionState.DEFERRED
        assert transaction.finished is False
        assert handler.results == []


class TestRestore:
    """Test restoring purchases."""

    def test_restore_nothing(self, gateway, queue, collector):
        handler = collector()
        gateway.restore_purchases(handler)
        queue.wait_idle()

        assert handler.result == Success(False)
        assert gateway.total_restored_purchases == 0

    def test_restore_owned(self, gateway, queue, collector, product_ids):
        queue.grant_ownership(product_ids["unlock_maps"])
        handler = collector()
        gateway.restore_purchases(handler)
        queue.wait_idle()

        assert handler.result == Success(True)
        assert gateway.total_restored_purchases == 1
        restored = queue.get_transactions()[-1]
        assert restored.state == TransactionState.RESTORED
        assert restored.finished is True

    def test_restore_counter_reset_each_time(self, gateway, queue, collector, product_ids):
        queue.grant_ownership(product_ids["unlock_maps"])
        for _ in range(2):
            handler = collector()
            gateway.restore_purchases(handler)
            queue.wait_idle()

        assert gateway.total_restored_purchases == 1

    def test_restore_failed(self, gateway, queue, collector):
        queue.set_restore_error(TransactionError(StoreErrorCode.CLIENT_INVALID, "offline"))
        handler = collector()
        gateway.restore_purchases(handler)
        queue.wait_idle()

        assert handler.result.error.code == StoreErrorCode.CLIENT_INVALID

    def test_restore_cancelled(self, gateway, queue, collector):
        queue.set_restore_error(TransactionError(StoreErrorCode.PAYMENT_CANCELLED))
        handler = collector()
        gateway.restore_purchases(handler)
        queue.wait_idle()

        assert isinstance(handler.result.error, PaymentCancelledError)


class TestPriceFormatting:
    """Test price helpers."""

    def test_usd_price(self):
        product = _product("p")
        assert PurchaseGateway.get_price_formatted(product) == "$0.99"
        assert product.price == Decimal("0.99")

    def test_invalid_currency(self):
        product = Product(id="p", type=ProductType.CONSUMABLE, title="T", price_micros=1, currency="??")
        assert PurchaseGateway.get_price_formatted(product) is None

    @pytest.mark.parametrize("locale", ["en_US", "de_DE"])
    def test_describe_product_does_not_raise(self, gateway, locale):
        gateway.describe_product(
            Product(id="p", type=ProductType.NON_CONSUMABLE, title="T", price_micros=4990000, locale=locale)
        )
