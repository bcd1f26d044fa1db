"""Shared fixtures.

Every test runs against a private copy of config/ so game data written by
purchases never touches the repository, and every process-wide singleton
is dropped before and after the test.
"""

import shutil
import threading
from pathlib import Path

import pytest

from iap_coordinator.config import Config, reset_config
from iap_coordinator.repositories.game_data_store import GameDataStore
from iap_coordinator.repositories.product_repository import (
    ProductRepository,
    reset_product_repository,
)
from iap_coordinator.services.purchase_gateway import PurchaseGateway, reset_purchase_gateway
from iap_coordinator.services.transaction_queue import (
    LocalTransactionQueue,
    reset_transaction_queue,
)
from iap_coordinator.services.ui_state import UiStateRecorder, reset_ui_state_recorder
from iap_coordinator.services.view_model import ViewModel, reset_view_model

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

EXTRA_LIVES_ID = "com.example.fakegame.extra_lives.4b9612cf0fd942ad9bdd4c290f33fe76"
SUPERPOWERS_ID = "com.example.fakegame.superpowers.4b9612cf0fd942ad9bdd4c290f33fe77"
UNLOCK_MAPS_ID = "com.example.fakegame.unlock_maps.4b9612cf0fd942ad9bdd4c290f33fe78"


def _reset_singletons() -> None:
    reset_view_model()
    reset_purchase_gateway()
    reset_transaction_queue()
    reset_product_repository()
    reset_ui_state_recorder()
    reset_config()


@pytest.fixture
def config_dir(tmp_path_factory):
    """Private copy of the default config directory."""
    target = tmp_path_factory.mktemp("isolated") / "config"
    shutil.copytree(CONFIG_DIR, target, ignore=shutil.ignore_patterns("game_data.json"))
    return target


@pytest.fixture(autouse=True)
def isolated_environment(config_dir, monkeypatch):
    """Point the global config at the private copy and reset singletons."""
    monkeypatch.setenv("CONFIG_PATH", str(config_dir / "store.yaml"))
    monkeypatch.delenv("GAME_DATA_PATH", raising=False)
    _reset_singletons()
    yield
    _reset_singletons()


@pytest.fixture
def product_ids():
    """Identifiers listed in the bundled resource."""
    return {
        "extra_lives": EXTRA_LIVES_ID,
        "superpowers": SUPERPOWERS_ID,
        "unlock_maps": UNLOCK_MAPS_ID,
    }


@pytest.fixture
def config(config_dir):
    """Configuration loaded from the private copy."""
    return Config(str(config_dir / "store.yaml"))


@pytest.fixture
def product_repository(config):
    return ProductRepository(config)


@pytest.fixture
def queue(config, product_repository):
    """Fresh transaction queue, shut down after the test."""
    transaction_queue = LocalTransactionQueue(
        product_repository=product_repository,
        settings=config.queue_settings,
    )
    yield transaction_queue
    transaction_queue.shutdown()


@pytest.fixture
def gateway(queue, config):
    """Gateway observing the fresh queue."""
    purchase_gateway = PurchaseGateway(queue=queue, product_ids_path=config.product_ids_path)
    purchase_gateway.start_observing()
    yield purchase_gateway
    purchase_gateway.stop_observing()


@pytest.fixture
def game_data_store(tmp_path):
    return GameDataStore(tmp_path / "game_data.json")


@pytest.fixture
def recorder():
    return UiStateRecorder()


@pytest.fixture
def view_model(gateway, game_data_store, config, recorder):
    """View-model wired to the fresh gateway and a recording delegate."""
    model = ViewModel(
        gateway=gateway,
        game_data_store=game_data_store,
        entitlements=list(config.store.entitlements),
        item_keywords=list(config.store.item_keywords),
        delegate=recorder,
    )
    yield model
    model.shutdown()


class ResultCollector:
    """Completion handler that records every result it receives."""

    def __init__(self):
        self.results = []
        self._event = threading.Event()

    def __call__(self, result):
        self.results.append(result)
        self._event.set()

    def wait(self, timeout: float = 5.0) -> bool:
        return self._event.wait(timeout)

    @property
    def result(self):
        assert len(self.results) == 1, f"expected one result, got {self.results}"
        return self.results[0]


@pytest.fixture
def collector():
    """Factory for completion handlers."""
    return ResultCollector
