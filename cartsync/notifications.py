"""
Notifier - toast-equivalent sink for cart feedback.

The engine never raises into the UI; it reports outcomes here. The default
implementation only logs. UIs subclass it to show toasts and navigate.
"""

from cartsync.logging import get_logger

logger = get_logger(__name__)


class Notifier:
    """Transient user feedback plus navigation."""

    def success(self, message: str) -> None:
        logger.info("cart: %s", message)

    def error(self, message: str) -> None:
        logger.warning("cart: %s", message)

    def redirect(self, path: str) -> None:
        logger.info("cart: redirect to %s", path)
