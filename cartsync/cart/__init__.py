"""Cart package: models, durable cache, and mutation lifecycle."""
from .models import (
    CartLine,
    CartView,
    ConfirmedLineId,
    LineId,
    ProductSnapshot,
    ProvisionalLineId,
)
from .cache import CartCache
from .mutations import Mutation, MutationKind, MutationState

__all__ = [
    "CartLine",
    "CartView",
    "ConfirmedLineId",
    "LineId",
    "ProductSnapshot",
    "ProvisionalLineId",
    "CartCache",
    "Mutation",
    "MutationKind",
    "MutationState",
]
