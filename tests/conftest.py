"""Pytest configuration and fixtures"""
import asyncio
import json
from typing import Dict, List, Optional

import httpx
import pytest

from cartsync.cart.cache import CartCache
from cartsync.cart.models import CartLine, CartView, ConfirmedLineId, ProductSnapshot
from cartsync.cart.service import CartSync
from cartsync.client import CartApiClient
from cartsync.notifications import Notifier
from cartsync.session import CartSession

BASE_URL = "http://test/api"


class MemoryStore:
    """Stands in for the local file / Upstash store."""

    def __init__(self):
        self.data: Dict[str, str] = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = value
        return True

    def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)
        return len(keys)


class RecordingNotifier(Notifier):
    def __init__(self):
        self.successes: List[str] = []
        self.errors: List[str] = []
        self.redirects: List[str] = []

    def success(self, message):
        self.successes.append(message)

    def error(self, message):
        self.errors.append(message)

    def redirect(self, path):
        self.redirects.append(path)


class FakeCartServer:
    """
    In-memory cart service behind httpx.MockTransport.

    POST applies quantity as a relative delta and deletes the line at <= 0.
    `fail` maps HTTP method -> status code to answer with instead.
    """

    def __init__(self, products: Dict[str, dict]):
        self.products = products
        self.lines: Dict[str, dict] = {}  # product_id -> {"id", "quantity"}
        self.requests: List[httpx.Request] = []
        self.fail: Dict[str, int] = {}
        self.offline = False
        self.hang = False
        self._next_id = 1

    def seed(self, product_id: str, quantity: int) -> str:
        line_id = f"line-{self._next_id}"
        self._next_id += 1
        self.lines[product_id] = {"id": line_id, "quantity": quantity}
        return line_id

    def requests_for(self, method: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method]

    def _item(self, product_id: str) -> dict:
        line = self.lines[product_id]
        return {"id": line["id"], "quantity": line["quantity"], "product": self.products[product_id]}

    def cart_json(self) -> dict:
        items = [self._item(pid) for pid in self.lines]
        total = sum(item["quantity"] * item["product"]["price"] for item in items)
        return {"items": items, "total": total}

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.hang:
            await asyncio.Event().wait()
        if self.offline:
            raise httpx.ConnectError("network unreachable", request=request)
        if request.method in self.fail:
            return httpx.Response(self.fail[request.method], json={"error": "failure"})

        path = request.url.path
        if path.endswith("/cart"):
            if request.method == "GET":
                return httpx.Response(200, json=self.cart_json())
            if request.method == "POST":
                body = json.loads(request.content)
                product_id, delta = body["productId"], body["quantity"]
                if product_id not in self.products:
                    return httpx.Response(404, json={"error": "Product not found"})
                if product_id not in self.lines:
                    if delta <= 0:
                        return httpx.Response(200, json={})
                    self.seed(product_id, 0)
                line = self.lines[product_id]
                line["quantity"] += delta
                item = self._item(product_id)
                if line["quantity"] <= 0:
                    del self.lines[product_id]
                return httpx.Response(200, json=item)
            if request.method == "DELETE":
                item_id = request.url.params["itemId"]
                for pid, line in list(self.lines.items()):
                    if line["id"] == item_id:
                        del self.lines[pid]
                        return httpx.Response(200, json={"success": True})
                return httpx.Response(404, json={"error": "Item not found"})

        if "/products/" in path:
            product_id = path.rsplit("/", 1)[-1]
            if product_id in self.products:
                return httpx.Response(200, json=self.products[product_id])
            return httpx.Response(404, json={"error": "Product not found"})

        return httpx.Response(404)


@pytest.fixture
def products() -> Dict[str, dict]:
    """Product JSON as the product API returns it"""
    return {
        "p1": {
            "id": "p1",
            "title": "Hand-thrown Mug",
            "price": 24.5,
            "imageUrl": "https://cdn.test/mug.jpg",
            "artisan": {"user": {"name": "Asha"}},
        },
        "p2": {
            "id": "p2",
            "title": "Woven Basket",
            "price": 40.0,
            "imageUrl": "https://cdn.test/basket.jpg",
            "artisan": {"user": {"name": "Ravi"}},
        },
    }


@pytest.fixture
def snapshots(products) -> Dict[str, ProductSnapshot]:
    return {
        pid: ProductSnapshot(
            id=pid,
            title=p["title"],
            price=p["price"],
            image_url=p["imageUrl"],
            artisan_name=p["artisan"]["user"]["name"],
        )
        for pid, p in products.items()
    }


@pytest.fixture
def sample_view(snapshots) -> CartView:
    return CartView((
        CartLine(ConfirmedLineId("line-1"), 2, snapshots["p1"]),
        CartLine(ConfirmedLineId("line-2"), 1, snapshots["p2"]),
    ))


@pytest.fixture
def server(products) -> FakeCartServer:
    return FakeCartServer(products)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def delays() -> List[float]:
    return []


@pytest.fixture
def recording_sleep(delays):
    async def _sleep(delay: float) -> None:
        delays.append(delay)

    return _sleep


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_client(server, recording_sleep):
    def _make(attempts: int = 3, initial_delay: float = 1.0, target: Optional[FakeCartServer] = None) -> CartApiClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport((target or server).handler))
        return CartApiClient(
            base_url=BASE_URL,
            http_client=http,
            attempts=attempts,
            initial_delay=initial_delay,
            sleep=recording_sleep,
        )

    return _make


@pytest.fixture
def make_engine(make_client, store, notifier):
    def _make(user_id: Optional[str] = "user-1", product_lookup=None, debounce_delay: float = 0.01) -> CartSync:
        session = CartSession(user_id=user_id)
        cache = CartCache(store, user_id) if user_id is not None else None
        return CartSync(
            session,
            make_client(),
            cache=cache,
            product_lookup=product_lookup,
            notifier=notifier,
            debounce_delay=debounce_delay,
        )

    return _make
