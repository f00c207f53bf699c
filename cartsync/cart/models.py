"""Cart models with Decimal-based pricing."""
import uuid
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Optional, Tuple, Union

from cartsync.money import to_decimal, round_money, multiply, sum_money

PROVISIONAL_PREFIX = "tmp_"


@dataclass(frozen=True)
class ProvisionalLineId:
    """Id of a line created locally whose add has not been confirmed yet."""
    local_id: str
    product_id: str

    @classmethod
    def new(cls, product_id: str) -> "ProvisionalLineId":
        return cls(local_id=uuid.uuid4().hex, product_id=product_id)

    def __str__(self) -> str:
        return f"{PROVISIONAL_PREFIX}{self.local_id}"


@dataclass(frozen=True)
class ConfirmedLineId:
    """Server-assigned line id."""
    server_id: str

    def __str__(self) -> str:
        return self.server_id


LineId = Union[ProvisionalLineId, ConfirmedLineId]


@dataclass(frozen=True)
class ProductSnapshot:
    """Denormalized product data captured when the line was created or refreshed."""
    id: str
    title: str
    price: Decimal
    image_url: str = ""
    artisan_name: str = ""

    def __post_init__(self):
        object.__setattr__(self, "price", to_decimal(self.price))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "price": str(self.price),
            "image_url": self.image_url,
            "artisan_name": self.artisan_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProductSnapshot":
        return cls(
            id=data["id"],
            title=data["title"],
            price=to_decimal(data["price"]),
            image_url=data.get("image_url", ""),
            artisan_name=data.get("artisan_name", ""),
        )


@dataclass(frozen=True)
class CartLine:
    """One product in the cart."""
    id: LineId
    quantity: int
    product: ProductSnapshot

    def __post_init__(self):
        if not isinstance(self.quantity, int) or self.quantity < 1:
            raise ValueError("quantity must be a positive integer")

    @property
    def product_id(self) -> str:
        return self.product.id

    @property
    def is_provisional(self) -> bool:
        return isinstance(self.id, ProvisionalLineId)

    @property
    def line_total(self) -> Decimal:
        return round_money(multiply(self.product.price, self.quantity))

    def with_quantity(self, quantity: int) -> "CartLine":
        return replace(self, quantity=quantity)

    def to_dict(self) -> dict:
        """Convert to dictionary. Provisional lines are never persisted."""
        if not isinstance(self.id, ConfirmedLineId):
            raise ValueError("provisional lines cannot be serialized")
        return {
            "id": self.id.server_id,
            "quantity": self.quantity,
            "product": self.product.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        return cls(
            id=ConfirmedLineId(str(data["id"])),
            quantity=int(data["quantity"]),
            product=ProductSnapshot.from_dict(data["product"]),
        )


@dataclass(frozen=True)
class CartView:
    """
    Immutable cart snapshot presented to the UI.

    The total is always derived from the lines; there is no stored total
    that could drift out of sync.
    """
    lines: Tuple[CartLine, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "lines", tuple(self.lines))

    @property
    def total(self) -> Decimal:
        return sum_money(line.line_total for line in self.lines)

    @property
    def count(self) -> int:
        """Number of distinct lines (what the navbar badge shows)."""
        return len(self.lines)

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.lines)

    def find_product(self, product_id: str) -> Optional[CartLine]:
        return next((line for line in self.lines if line.product_id == product_id), None)

    def find_line(self, line_id: Union[LineId, str]) -> Optional[CartLine]:
        key = str(line_id)
        return next((line for line in self.lines if str(line.id) == key), None)

    def upsert(self, line: CartLine) -> "CartView":
        """Replace the line for line.product_id in place, or append it."""
        lines = list(self.lines)
        for index, existing in enumerate(lines):
            if existing.product_id == line.product_id:
                lines[index] = line
                return CartView(lines)
        lines.append(line)
        return CartView(lines)

    def without_product(self, product_id: str) -> "CartView":
        return CartView(line for line in self.lines if line.product_id != product_id)

    def without_line(self, line_id: Union[LineId, str]) -> "CartView":
        key = str(line_id)
        return CartView(line for line in self.lines if str(line.id) != key)

    def adjust(self, product_id: str, delta: int) -> "CartView":
        """Apply a relative quantity change; a result <= 0 drops the line."""
        line = self.find_product(product_id)
        if line is None:
            return self
        quantity = line.quantity + delta
        if quantity <= 0:
            return self.without_product(product_id)
        return self.upsert(line.with_quantity(quantity))

    def to_dict(self) -> dict:
        """Convert to dictionary for cache storage."""
        return {
            "items": [line.to_dict() for line in self.lines if not line.is_provisional],
            "total": str(self.total),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartView":
        return cls(tuple(CartLine.from_dict(item) for item in data.get("items", [])))


EMPTY_CART = CartView()
