"""Per-mutation lifecycle: PENDING -> CONFIRMED | ROLLED_BACK."""
import asyncio
from enum import Enum
from typing import Optional

from .models import CartLine, LineId


class MutationKind(str, Enum):
    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"


class MutationState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


class Mutation:
    """
    Handle returned by every engine operation.

    `state` flips as soon as the server answers; `wait()` returns once the
    follow-up reconciliation (re-fetch or rollback) has also finished.
    For UPDATE, `quantity` is the net delta accumulated over the debounce window.
    """

    def __init__(
        self,
        kind: MutationKind,
        product_id: Optional[str],
        quantity: int = 0,
        line_id: Optional[LineId] = None,
    ):
        self.kind = kind
        self.product_id = product_id
        self.quantity = quantity
        self.line_id = line_id
        self.state = MutationState.PENDING
        self.error: Optional[Exception] = None
        self.result: Optional[CartLine] = None
        self.task: Optional[asyncio.Task] = None
        self._settled = asyncio.Event()

    def __repr__(self) -> str:
        return f"<Mutation {self.kind.value} {self.product_id} qty={self.quantity} {self.state.value}>"

    @property
    def is_pending(self) -> bool:
        return self.state is MutationState.PENDING

    @property
    def settled(self) -> bool:
        return self._settled.is_set()

    def confirm(self, result: Optional[CartLine] = None) -> None:
        if not self.is_pending:
            raise RuntimeError(f"cannot confirm {self!r}")
        self.state = MutationState.CONFIRMED
        self.result = result

    def roll_back(self, error: Exception) -> None:
        if not self.is_pending:
            raise RuntimeError(f"cannot roll back {self!r}")
        self.state = MutationState.ROLLED_BACK
        self.error = error

    def settle(self) -> None:
        self._settled.set()

    async def wait(self) -> MutationState:
        await self._settled.wait()
        return self.state
