"""Integration tests for the store and control APIs.

Runs the whole stack in process: HTTP surface, view-model, gateway and
the local transaction queue.
"""

import threading
import time

import pytest
from fastapi.testclient import TestClient

from iap_coordinator.main import create_app
from iap_coordinator.models import Payment
from iap_coordinator.services.transaction_queue import get_transaction_queue
from iap_coordinator.services.view_model import get_view_model


@pytest.fixture
def client(config_dir):
    """Test client with a short completion timeout, lifespan included."""
    store_yaml = config_dir / "store.yaml"
    store_yaml.write_text(
        store_yaml.read_text().replace(
            "completion_timeout_seconds: 5.0", "completion_timeout_seconds: 0.5"
        )
    )
    with TestClient(create_app()) as test_client:
        # let the startup product load settle
        get_transaction_queue().wait_idle()
        get_view_model().wait_ui_idle()
        yield test_client


def _purchase(client, **body):
    return client.post("/store/purchases", json=body)


class TestHealth:
    """Test service endpoints."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "iap-coordinator"

    def test_health(self, client):
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["observer"] == "registered"
        assert data["payments"] == "enabled"
        assert data["catalog"] == "loaded (3 products)"

    def test_request_id_header(self, client):
        assert client.get("/").headers["X-Request-ID"]


class TestProducts:
    """Test product listing."""

    def test_list_products(self, client, product_ids):
        response = client.get("/store/products")

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 3
        by_id = {p["id"]: p for p in data["products"]}
        assert by_id[product_ids["extra_lives"]]["formatted_price"] == "$0.99"
        assert by_id[product_ids["unlock_maps"]]["type"] == "non_consumable"
        assert by_id[product_ids["superpowers"]]["price"] == "1.99"

    def test_refresh_failure(self, client):
        client.post("/emulator/product-requests", json={"fail": True})
        response = client.post("/store/products/refresh")

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "product_request_failed"


class TestPurchases:
    """Test buying products."""

    def test_purchase_by_id(self, client, product_ids):
        response = _purchase(client, product_id=product_ids["extra_lives"])

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "purchased"
        assert data["game_data"]["extra_lives"] == 3

    def test_purchase_by_index(self, client):
        response = _purchase(client, item_index=1)

        assert response.status_code == 200
        assert response.json()["game_data"]["super_powers"] == 2

    def test_purchase_unlocks_maps(self, client):
        response = _purchase(client, item_index=2)
        assert response.json()["game_data"]["did_unlock_all_maps"] is True

        owned = client.get("/emulator/transactions").json()["owned_products"]
        assert len(owned) == 1

    def test_purchase_needs_exactly_one_target(self, client, product_ids):
        assert _purchase(client).status_code == 422
        assert _purchase(client, product_id=product_ids["extra_lives"], item_index=0).status_code == 422

    def test_unknown_product(self, client):
        response = _purchase(client, product_id="com.example.unknown")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "product_not_found"

    def test_unknown_item_index(self, client):
        assert _purchase(client, item_index=7).status_code == 404

    def test_cancelled(self, client, product_ids):
        client.post("/emulator/next-payment", json={"outcome": "cancelled"})
        response = _purchase(client, product_id=product_ids["extra_lives"])

        assert response.status_code == 409
        assert response.json()["detail"] == {
            "error": "payment_cancelled",
            "message": "In-App Purchase process was cancelled.",
        }
        assert client.get("/store/game-data").json()["extra_lives"] == 0

    def test_failed(self, client, product_ids):
        client.post(
            "/emulator/next-payment",
            json={"outcome": "failed", "error_code": 3, "message": "Invalid purchase"},
        )
        response = _purchase(client, product_id=product_ids["extra_lives"])

        assert response.status_code == 402
        assert response.json()["detail"]["error"] == "payment_failed_payment_invalid"

    def test_payments_disabled(self, client, product_ids):
        client.post("/emulator/payments-availability", json={"enabled": False})
        response = _purchase(client, product_id=product_ids["extra_lives"])

        assert response.status_code == 403
        assert client.get("/health").json()["payments"] == "disabled"

    def test_deferred_then_approved(self, client, product_ids):
        client.post("/emulator/next-payment", json={"outcome": "deferred"})
        response = _purchase(client, product_id=product_ids["superpowers"])

        assert response.status_code == 202
        assert response.json()["status"] == "pending"

        transactions = client.get("/emulator/transactions").json()["transactions"]
        assert transactions[0]["state"] == "deferred"

        approved = client.post(f"/emulator/transactions/{transactions[0]['transaction_id']}/approve")
        assert approved.status_code == 200
        assert approved.json()["state"] == "purchased"
        assert client.get("/store/game-data").json()["super_powers"] == 2

    def test_deferred_then_declined(self, client, product_ids):
        client.post("/emulator/next-payment", json={"outcome": "deferred"})
        _purchase(client, product_id=product_ids["extra_lives"])
        transaction_id = client.get("/emulator/transactions").json()["transactions"][0]["transaction_id"]

        declined = client.post(f"/emulator/transactions/{transaction_id}/decline")

        assert declined.json()["state"] == "failed"
        assert declined.json()["error_code"] == "payment_not_allowed"
        assert client.get("/store/game-data").json()["extra_lives"] == 0
        assert client.get("/store/ui-state").json()["last_error"] == "Purchase was declined"

    def test_resolve_unknown_transaction(self, client):
        assert client.post("/emulator/transactions/txn_missing/approve").status_code == 404

    def test_resolve_completed_transaction(self, client, product_ids):
        _purchase(client, product_id=product_ids["extra_lives"])
        transaction_id = client.get("/emulator/transactions").json()["transactions"][0]["transaction_id"]

        assert client.post(f"/emulator/transactions/{transaction_id}/approve").status_code == 409


class TestRestore:
    """Test restoring purchases."""

    def test_restore_nothing(self, client):
        data = client.post("/store/restore").json()

        assert data["restored"] is False
        assert data["game_data"]["did_unlock_all_maps"] is False
        events = client.get("/store/ui-state").json()["events"]
        assert events[-1] == "did_finish_restoring_purchases_with_zero_products"

    def test_restore_owned(self, client, product_ids):
        granted = client.post("/emulator/ownership", json={"product_id": product_ids["unlock_maps"]})
        assert granted.status_code == 201

        data = client.post("/store/restore").json()

        assert data["restored"] is True
        assert data["game_data"]["did_unlock_all_maps"] is True

    def test_restore_failure(self, client):
        client.post("/emulator/restore-behavior", json={"error_code": 1, "message": "offline"})
        response = client.post("/store/restore")

        assert response.status_code == 402
        assert response.json()["detail"]["message"] == "offline"

    def test_grant_consumable_rejected(self, client, product_ids):
        response = client.post("/emulator/ownership", json={"product_id": product_ids["extra_lives"]})
        assert response.status_code == 400

    def test_grant_unknown_product(self, client):
        response = client.post("/emulator/ownership", json={"product_id": "com.example.unknown"})
        assert response.status_code == 404


class TestGameData:
    """Test entitlements and consumption."""

    def test_consume_extra_life(self, client):
        _purchase(client, item_index=0)
        response = client.post("/store/game-data/consume/extra_life")

        assert response.status_code == 200
        assert response.json()["extra_lives"] == 2

    def test_consume_nothing_left(self, client):
        response = client.post("/store/game-data/consume/super_power")

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "no_entitlement"

    def test_unknown_entitlement(self, client):
        assert client.post("/store/game-data/consume/coins").status_code == 422

    def test_game_data_persisted(self, client, config_dir):
        _purchase(client, item_index=0)
        assert '"extra_lives": 3' in (config_dir / "game_data.json").read_text()


class TestUiStateAndReset:
    """Test UI state reporting and the reset endpoint."""

    def test_ui_state_after_purchase(self, client):
        _purchase(client, item_index=0)
        data = client.get("/store/ui-state").json()

        assert data["overlay_visible"] is False
        assert data["long_process_running"] is False
        assert "should_update_ui" in data["events"]

    def test_reset(self, client, product_ids):
        _purchase(client, item_index=2)
        client.post("/emulator/payments-availability", json={"enabled": False})

        response = client.post("/emulator/reset")

        assert response.status_code == 200
        assert client.get("/store/game-data").json()["did_unlock_all_maps"] is False
        assert client.get("/emulator/transactions").json() == {"transactions": [], "owned_products": []}
        assert client.get("/store/ui-state").json()["events"] == []
        assert client.get("/health").json()["payments"] == "enabled"

    def test_reset_does_not_block_other_requests(self, client, product_ids):
        release = threading.Event()

        class SlowObserver:
            def on_transactions_updated(self, queue, transactions):
                release.wait(5)

            def on_restore_completed(self, queue):
                pass

            def on_restore_failed(self, queue, error):
                pass

        queue = get_transaction_queue()
        queue.add_observer(SlowObserver())
        queue.add_payment(Payment(product_id=product_ids["extra_lives"]))

        statuses = []
        worker = threading.Thread(target=lambda: statuses.append(client.post("/emulator/reset").status_code))
        worker.start()
        try:
            time.sleep(0.2)
            assert client.get("/health").status_code == 200
            assert worker.is_alive()
        finally:
            release.set()
            worker.join(5)

        assert statuses == [200]


class TestUnhandledErrors:
    """Test the global exception handler."""

    def test_unexpected_error_returns_json_500(self, config_dir, monkeypatch):
        def broken_recorder():
            raise RuntimeError("recorder unavailable")

        with TestClient(create_app(), raise_server_exceptions=False) as client:
            monkeypatch.setattr("iap_coordinator.api.store.get_ui_state_recorder", broken_recorder)
            response = client.get("/store/ui-state")

        assert response.status_code == 500
        assert response.json() == {
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
        }
