"""
Artisan cart sync

Client-side cart synchronization for the ArtisanMarket feed:
- cart: line/view models, durable cache, mutation lifecycle
- cart.service: optimistic mutation engine (CartSync)
- client / transport: remote cart API with retry and backoff
- debounce: trailing-call debouncer for quantity changes
"""

from cartsync.cart import CartCache, CartLine, CartView, Mutation, MutationState, ProductSnapshot
from cartsync.cart.service import CartSync, open_cart_sync
from cartsync.catalog import ProductCatalog
from cartsync.client import CartApiClient
from cartsync.notifications import Notifier
from cartsync.session import CartSession

__all__ = [
    "CartApiClient",
    "CartCache",
    "CartLine",
    "CartSession",
    "CartSync",
    "CartView",
    "Mutation",
    "MutationState",
    "Notifier",
    "ProductCatalog",
    "ProductSnapshot",
    "open_cart_sync",
]
