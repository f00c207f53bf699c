"""
Cart Sync Errors

Centralized error messages and the exception hierarchy raised by the
transport and client layers. The engine catches all of these at the
operation boundary.
"""

from typing import Optional

# User-facing notifications
MSG_ADDED = "Added to cart!"
MSG_UPDATED = "Cart updated"
MSG_REMOVED = "Item removed from cart"
ERROR_ADD_FAILED = "Failed to add to cart"
ERROR_UPDATE_FAILED = "Failed to update cart"
ERROR_REMOVE_FAILED = "Failed to remove item from cart"

# Generic errors
ERROR_INVALID_PAYLOAD = "Invalid response from cart service"
ERROR_SERVICE_UNAVAILABLE = "Cart service unavailable"


class CartSyncError(Exception):
    """Base class for cart synchronization failures."""


class CartUnavailableError(CartSyncError):
    """Network failure or 5xx that survived every retry attempt."""

    def __init__(self, message: str = ERROR_SERVICE_UNAVAILABLE, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CartRejectedError(CartSyncError):
    """Definitive 4xx rejection. Never retried."""

    def __init__(self, status_code: int, detail: str = ""):
        super().__init__(f"Cart service rejected request ({status_code}): {detail}".rstrip(": "))
        self.status_code = status_code
        self.detail = detail


class CartPayloadError(CartSyncError):
    """Server answered 2xx with a body we cannot parse."""
