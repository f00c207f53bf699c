"""
Pydantic Models - Cart service wire schemas

The cart service speaks camelCase JSON:
- GET  /cart            -> CartPayload
- POST /cart            <- AddToCartRequest, -> CartItemPayload
- GET  /products/{id}   -> ProductPayload
"""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from cartsync.cart.models import CartLine, CartView, ConfirmedLineId, ProductSnapshot


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True, extra="ignore")


# ==================== PRODUCT ====================

class ArtisanUserPayload(_WireModel):
    name: Optional[str] = None


class ArtisanPayload(_WireModel):
    user: Optional[ArtisanUserPayload] = None


class ProductPayload(_WireModel):
    id: str
    title: str
    price: Decimal
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    artisan: Optional[ArtisanPayload] = None

    @property
    def artisan_name(self) -> str:
        if self.artisan and self.artisan.user and self.artisan.user.name:
            return self.artisan.user.name
        return ""

    def to_snapshot(self) -> ProductSnapshot:
        return ProductSnapshot(
            id=self.id,
            title=self.title,
            price=self.price,
            image_url=self.image_url or "",
            artisan_name=self.artisan_name,
        )


# ==================== CART ====================

class CartItemPayload(_WireModel):
    id: str
    quantity: int
    product: ProductPayload

    def to_line(self) -> Optional[CartLine]:
        """Lines at quantity <= 0 are treated as deleted."""
        if self.quantity < 1:
            return None
        return CartLine(
            id=ConfirmedLineId(self.id),
            quantity=self.quantity,
            product=self.product.to_snapshot(),
        )


class CartPayload(_WireModel):
    items: List[CartItemPayload] = Field(default_factory=list)
    total: Decimal = Decimal("0")

    def to_view(self) -> CartView:
        lines = []
        seen = set()
        for item in self.items:
            line = item.to_line()
            # Guard the one-line-per-product invariant against a misbehaving server
            if line is None or line.product_id in seen:
                continue
            seen.add(line.product_id)
            lines.append(line)
        return CartView(tuple(lines))


class AddToCartRequest(_WireModel):
    product_id: str = Field(alias="productId")
    quantity: int

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)
