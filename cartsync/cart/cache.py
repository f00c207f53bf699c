"""Durable cart snapshot with TTL, used for instant paint and offline fallback."""
import json
import time
from typing import Callable, Optional

from cartsync.logging import get_logger, sanitize_id_for_logging
from cartsync.storage import KeyValueStore, RedisKeys, TTL
from .models import CartView

logger = get_logger(__name__)


class CartCache:
    """
    Per-user cart snapshot stored outside process memory.

    The expiry timestamp travels inside the payload, so a store without
    native TTL support still honours it. Reads never raise: corrupted,
    expired or unreachable entries are all a cache miss.
    """

    def __init__(
        self,
        store: KeyValueStore,
        user_id: str,
        ttl: int = TTL.CART,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.user_id = user_id
        self.ttl = ttl
        self._clock = clock

    @property
    def key(self) -> str:
        return RedisKeys.cart_key(self.user_id)

    def read(self) -> Optional[CartView]:
        """Return the cached view, or None on miss/expiry/corruption."""
        try:
            raw = self.store.get(self.key)
        except Exception as e:
            logger.warning("Cart cache read failed for %s: %s", sanitize_id_for_logging(self.user_id), e)
            return None

        if not raw:
            return None

        try:
            payload = json.loads(raw)
            expires_at = float(payload["expires_at"])
            view = CartView.from_dict(payload["cart"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Corrupted cart cache for %s: %s", sanitize_id_for_logging(self.user_id), e)
            self.clear()
            return None

        if self._clock() >= expires_at:
            logger.debug("Cart cache expired for %s", sanitize_id_for_logging(self.user_id))
            self.clear()
            return None

        return view

    def write(self, view: CartView) -> bool:
        """Persist the view for `ttl` seconds from now. Provisional lines are skipped."""
        payload = {
            "expires_at": self._clock() + self.ttl,
            "cart": view.to_dict(),
        }
        try:
            self.store.set(self.key, json.dumps(payload), ex=self.ttl)
            return True
        except Exception as e:
            logger.warning("Cart cache write failed for %s: %s", sanitize_id_for_logging(self.user_id), e)
            return False

    def clear(self) -> None:
        """Remove the snapshot immediately (e.g. after checkout)."""
        try:
            self.store.delete(self.key)
        except Exception as e:
            logger.warning("Cart cache clear failed for %s: %s", sanitize_id_for_logging(self.user_id), e)
