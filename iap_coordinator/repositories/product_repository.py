"""Product repository - the catalog sold by the local transaction queue.

Loads from config/store.yaml and provides lookup methods.
"""

from typing import Dict, Iterable, List, Optional

from iap_coordinator.config import Config, get_config
from iap_coordinator.models import Product, ProductDefinition, ProductType


class ProductNotFoundError(Exception):
    """Raised when a product is not found in the repository."""

    pass


class ProductRepository:
    """Repository for catalog product definitions.

    Loads product definitions from configuration and provides fast lookup.
    Thread-safe for read operations.
    """

    def __init__(self, config: Optional[Config] = None):
        """Initialize product repository.

        Args:
            config: Configuration instance. If not provided, uses global config.
        """
        self._config = config or get_config()
        self._products_by_id: Dict[str, ProductDefinition] = {}
        self._load_products()

    def _load_products(self) -> None:
        """Index catalog product definitions by ID."""
        self._products_by_id = {product.id: product for product in self._config.store.catalog}

    def get_by_id(self, product_id: str) -> ProductDefinition:
        """Get product definition by ID.

        Args:
            product_id: Product identifier

        Returns:
            ProductDefinition

        Raises:
            ProductNotFoundError: If product ID not found
        """
        product = self._products_by_id.get(product_id)
        if product is None:
            raise ProductNotFoundError(
                f"Product not found: {product_id}. "
                f"Available products: {list(self._products_by_id.keys())}"
            )
        return product

    def lookup(self, product_ids: Iterable[str]) -> tuple[List[Product], List[str]]:
        """Resolve identifiers against the catalog.

        Args:
            product_ids: Identifiers requested by the app

        Returns:
            Tuple of (products found, identifiers not in the catalog), both
            sorted by identifier
        """
        products: List[Product] = []
        invalid: List[str] = []
        for product_id in sorted(set(product_ids)):
            definition = self._products_by_id.get(product_id)
            if definition is None:
                invalid.append(product_id)
            else:
                products.append(Product.from_definition(definition))
        return products, invalid

    def is_consumable(self, product_id: str) -> bool:
        """Check whether a product is consumed on purchase.

        Raises:
            ProductNotFoundError: If product ID not found
        """
        return self.get_by_id(product_id).type == ProductType.CONSUMABLE

    def exists(self, product_id: str) -> bool:
        """Check if product ID exists."""
        return product_id in self._products_by_id

    def reload(self) -> None:
        """Reload product definitions from configuration."""
        self._config.reload()
        self._load_products()

    def __len__(self) -> int:
        return len(self._products_by_id)

    def __contains__(self, product_id: str) -> bool:
        return product_id in self._products_by_id

    def __repr__(self) -> str:
        return f"ProductRepository(products={len(self._products_by_id)})"


# Global repository instance
_repository_instance: Optional[ProductRepository] = None


def get_product_repository(config: Optional[Config] = None) -> ProductRepository:
    """Get global product repository instance (singleton).

    Args:
        config: Optional configuration instance (only used on first call)

    Returns:
        ProductRepository instance
    """
    global _repository_instance
    if _repository_instance is None:
        _repository_instance = ProductRepository(config)
    return _repository_instance


def reset_product_repository() -> None:
    """Drop the global product repository (useful for testing)."""
    global _repository_instance
    _repository_instance = None
