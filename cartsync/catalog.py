"""Product lookup used to render optimistic cart lines before the server answers."""
from typing import Dict, Iterable, Optional

from cartsync.cart.models import ProductSnapshot
from cartsync.client import CartApiClient
from cartsync.errors import CartSyncError
from cartsync.logging import get_logger, sanitize_id_for_logging

logger = get_logger(__name__)


class ProductCatalog:
    """
    In-memory product snapshots, filled from the feed or prefetched.

    Lookups are synchronous so the engine can use them inside the optimistic
    phase; a miss returns None and the add proceeds without a local line.
    """

    def __init__(self, client: Optional[CartApiClient] = None, products: Iterable[ProductSnapshot] = ()):
        self.client = client
        self._products: Dict[str, ProductSnapshot] = {p.id: p for p in products}

    def __call__(self, product_id: str) -> Optional[ProductSnapshot]:
        return self.get(product_id)

    def __contains__(self, product_id: str) -> bool:
        return product_id in self._products

    def get(self, product_id: str) -> Optional[ProductSnapshot]:
        return self._products.get(product_id)

    def remember(self, product: ProductSnapshot) -> None:
        self._products[product.id] = product

    async def prefetch(self, product_id: str) -> Optional[ProductSnapshot]:
        """Load a product from GET /products/{id}; failures leave the catalog unchanged."""
        if product_id in self._products:
            return self._products[product_id]
        if self.client is None:
            return None
        try:
            product = await self.client.fetch_product(product_id)
        except CartSyncError as e:
            logger.warning("Product prefetch failed for %s: %s", sanitize_id_for_logging(product_id), e)
            return None
        self.remember(product)
        return product
