"""Session-scoped cart state, created at sign-in and torn down at sign-out."""
from dataclasses import dataclass, field
from typing import Optional

from cartsync.cart.models import CartView


@dataclass
class CartState:
    """Mutable state owned by one session. Only CartSync writes to it."""
    view: Optional[CartView] = None
    optimistic_count: Optional[int] = None
    error: Optional[Exception] = None
    is_loading: bool = False
    adds_in_flight: int = 0


@dataclass
class CartSession:
    """
    Opaque authentication signal plus the state that belongs to it.

    `user_id` is None for anonymous visitors; the engine never talks to the
    cart service for them.
    """
    user_id: Optional[str] = None
    headers: dict = field(default_factory=dict)
    state: CartState = field(default_factory=CartState)
    closed: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None and not self.closed

    def close(self) -> None:
        """Sign-out: drop the state so nothing leaks into the next session."""
        self.closed = True
        self.state = CartState()
