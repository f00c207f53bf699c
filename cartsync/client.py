"""Remote cart service client (httpx + retry transport)."""
from typing import Optional

import httpx
from pydantic import ValidationError

from cartsync import config
from cartsync.cart.models import CartLine, CartView, ProductSnapshot
from cartsync.errors import CartPayloadError, CartRejectedError, ERROR_INVALID_PAYLOAD
from cartsync.logging import get_logger, sanitize_id_for_logging
from cartsync.models import AddToCartRequest, CartItemPayload, CartPayload, ProductPayload
from cartsync.transport import RetryingTransport

logger = get_logger(__name__)


def _rejection_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return str(data)[:200]


class CartApiClient:
    """
    Thin client for the cart endpoints.

    Every call goes through RetryingTransport. A 4xx becomes
    CartRejectedError, exhausted retries become CartUnavailableError.
    """

    def __init__(
        self,
        base_url: str = config.CART_API_BASE_URL,
        headers: Optional[dict] = None,
        cookies: Optional[dict] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        attempts: int = config.CART_RETRY_ATTEMPTS,
        initial_delay: float = config.CART_RETRY_INITIAL_DELAY,
        sleep=None,
    ):
        self.base_url = base_url.rstrip("/")
        self._http_client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            cookies=cookies,
            timeout=httpx.Timeout(config.HTTP_TIMEOUT, connect=config.HTTP_CONNECT_TIMEOUT),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )
        self.transport = RetryingTransport(
            self._http_client, attempts=attempts, initial_delay=initial_delay, sleep=sleep
        )

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        request = self._http_client.build_request(method, f"{self.base_url}{path}", **kwargs)
        response = await self.transport.send(request)
        if response.is_client_error:
            detail = _rejection_detail(response)
            logger.warning("Cart service rejected %s %s: %s %s", method, path, response.status_code, detail)
            raise CartRejectedError(response.status_code, detail)
        return response

    async def fetch_cart(self) -> CartView:
        """GET /cart -> authoritative view."""
        response = await self._send("GET", "/cart")
        try:
            payload = CartPayload.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error("Unparsable cart payload: %s", e)
            raise CartPayloadError(ERROR_INVALID_PAYLOAD) from e

        view = payload.to_view()
        if payload.items and view.total != payload.total:
            logger.warning("Server cart total %s differs from recomputed %s", payload.total, view.total)
        return view

    async def add_item(self, product_id: str, quantity: int) -> Optional[CartLine]:
        """
        POST /cart {productId, quantity}.

        Quantity is a relative delta; negative values decrement. Returns the
        affected line, or None when the body is missing or describes a
        deleted line (the next re-fetch reconciles either way).
        """
        body = AddToCartRequest(product_id=product_id, quantity=quantity).to_json()
        response = await self._send("POST", "/cart", json=body)
        try:
            item = CartItemPayload.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.debug("POST /cart for %s returned no usable line: %s", sanitize_id_for_logging(product_id), e)
            return None
        return item.to_line()

    async def remove_item(self, item_id: str) -> None:
        """DELETE /cart?itemId={id}."""
        await self._send("DELETE", "/cart", params={"itemId": item_id})

    async def fetch_product(self, product_id: str) -> ProductSnapshot:
        """GET /products/{id} -> product snapshot."""
        response = await self._send("GET", f"/products/{product_id}")
        try:
            return ProductPayload.model_validate(response.json()).to_snapshot()
        except (ValueError, ValidationError) as e:
            raise CartPayloadError(ERROR_INVALID_PAYLOAD) from e

    async def aclose(self) -> None:
        """Close the shared HTTP client."""
        await self._http_client.aclose()
