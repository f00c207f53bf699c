"""
Optimistic cart synchronization engine.

Every operation runs in three phases:
  (a) apply the change to the in-memory view (and the durable cache)
      synchronously, before returning to the caller;
  (b) send the remote call, immediately for add/remove and debounced for
      quantity changes;
  (c) on success reconcile and re-fetch; on terminal failure restore
      the authoritative state (server, then local fallbacks) and notify.

Must be driven from a running asyncio event loop.
"""
import asyncio
from typing import Callable, Coroutine, Dict, List, Optional, Set, Union

from cartsync import config
from cartsync.client import CartApiClient
from cartsync.debounce import Debounced, debounce
from cartsync.errors import (
    CartSyncError,
    MSG_ADDED,
    MSG_UPDATED,
    MSG_REMOVED,
    ERROR_ADD_FAILED,
    ERROR_UPDATE_FAILED,
    ERROR_REMOVE_FAILED,
)
from cartsync.logging import get_logger, sanitize_id_for_logging
from cartsync.notifications import Notifier
from cartsync.session import CartSession
from cartsync.storage import get_cache_store
from .cache import CartCache
from .models import (
    CartLine,
    CartView,
    ConfirmedLineId,
    EMPTY_CART,
    LineId,
    PROVISIONAL_PREFIX,
    ProductSnapshot,
    ProvisionalLineId,
)
from .mutations import Mutation, MutationKind

logger = get_logger(__name__)

ProductLookup = Callable[[str], Optional[ProductSnapshot]]
Fallback = Callable[[], Optional[CartView]]
Listener = Callable[["CartSync"], None]


class CartSync:
    """
    Keeps the session's cart view consistent with the remote cart service.

    Public state mirrors what the UI binds to: `cart`, `cart_count`,
    `is_loading`, `is_adding_to_cart`, `error`.
    """

    def __init__(
        self,
        session: CartSession,
        client: CartApiClient,
        cache: Optional[CartCache] = None,
        product_lookup: Optional[ProductLookup] = None,
        notifier: Optional[Notifier] = None,
        debounce_delay: float = config.CART_DEBOUNCE_DELAY,
    ):
        self.session = session
        self.client = client
        self.cache = cache
        self.product_lookup = product_lookup
        self.notifier = notifier or Notifier()
        self.debounce_delay = debounce_delay

        self._listeners: List[Listener] = []
        self._debouncers: Dict[str, Debounced] = {}
        self._pending_updates: Dict[str, Mutation] = {}
        self._inflight_adds: Dict[str, List[Mutation]] = {}
        self._mutations: Set[Mutation] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._fetch_seq = 0
        self._applied_seq = 0

        state = session.state
        if session.is_authenticated and state.view is None and cache is not None:
            state.view = cache.read()
        state.is_loading = session.is_authenticated and state.view is None

    # ==================== PUBLIC STATE ====================

    @property
    def cart(self) -> Optional[CartView]:
        return self.session.state.view

    @property
    def cart_count(self) -> int:
        state = self.session.state
        if state.optimistic_count is not None:
            return state.optimistic_count
        return state.view.count if state.view is not None else 0

    @property
    def is_loading(self) -> bool:
        return self.session.state.is_loading

    @property
    def is_adding_to_cart(self) -> bool:
        return self.session.state.adds_in_flight > 0

    @property
    def error(self) -> Optional[Exception]:
        return self.session.state.error

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a change callback; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ==================== LOADING ====================

    async def load(self) -> Optional[CartView]:
        """
        Fetch the authoritative cart. On failure keep whatever the cache
        primed, record the error, and return the current view.
        """
        if not self.session.is_authenticated:
            return None
        try:
            return await self.refresh()
        except CartSyncError as e:
            logger.warning("Cart load failed for %s: %s", sanitize_id_for_logging(self.session.user_id), e)
            state = self.session.state
            state.error = e
            if state.view is None:
                state.view = self._cached_view()
            state.is_loading = False
            self._emit()
            return state.view

    async def refresh(self) -> CartView:
        """
        GET /cart and replace the view wholesale.

        A response that lands after a newer one is discarded. Quantity
        deltas and removals the server has not seen yet are re-applied
        on top so the user's latest intent stays visible.
        """
        self._fetch_seq += 1
        seq = self._fetch_seq
        view = await self.client.fetch_cart()

        state = self.session.state
        if seq < self._applied_seq:
            logger.debug("Discarding stale cart fetch #%s (have #%s)", seq, self._applied_seq)
            return state.view or view
        self._applied_seq = seq

        view = self._overlay_pending(view)
        state.error = None
        state.is_loading = False
        self._set_view(view)
        return view

    def clear_cart_cache(self) -> None:
        """Drop the cached snapshot. Called once by checkout after payment is confirmed."""
        if self.cache is not None:
            self.cache.clear()
            logger.info("Cart cache cleared for %s", sanitize_id_for_logging(self.session.user_id))

    # ==================== ADD ====================

    def add_to_cart(self, product_id: str, quantity: int = 1) -> Optional[Mutation]:
        """
        Add `quantity` of a product. Anonymous users are redirected to sign-in.

        An existing line is incremented; a new product gets a provisional
        line when its details are known locally, otherwise the view is left
        alone and only the count moves.
        """
        if not self.session.is_authenticated:
            self.notifier.redirect(config.SIGN_IN_PATH)
            return None
        if not product_id or not isinstance(product_id, str):
            raise ValueError("product_id must be a non-empty string")
        if not isinstance(quantity, int) or quantity < 1:
            raise ValueError("quantity must be a positive integer")

        state = self.session.state
        snapshot = state.view
        view = snapshot or EMPTY_CART
        count = self.cart_count
        mutation = Mutation(MutationKind.ADD, product_id, quantity)

        existing = view.find_product(product_id)
        if existing is not None:
            mutation.line_id = existing.id
            self._set_view(view.upsert(existing.with_quantity(existing.quantity + quantity)))
        else:
            # A degraded add already counted this product
            if not any(m.line_id is None for m in self._inflight_adds.get(product_id, [])):
                state.optimistic_count = count + 1
            product = self._lookup_product(product_id)
            if product is not None:
                line = CartLine(ProvisionalLineId.new(product_id), quantity, product)
                mutation.line_id = line.id
                self._set_view(view.upsert(line))
            else:
                self._emit()

        self._track(mutation)
        self._inflight_adds.setdefault(product_id, []).append(mutation)
        state.adds_in_flight += 1

        self.notifier.success(MSG_ADDED)
        mutation.task = self._spawn(self._run_add(mutation, snapshot))
        return mutation

    async def _run_add(self, mutation: Mutation, snapshot: Optional[CartView]) -> None:
        state = self.session.state
        try:
            try:
                line = await self.client.add_item(mutation.product_id, mutation.quantity)
            except CartSyncError as e:
                self._finish_add(mutation)
                mutation.roll_back(e)
                state.error = e
                logger.warning("Add to cart failed for %s: %s", sanitize_id_for_logging(mutation.product_id), e)
                await self._recover(lambda: snapshot, self._cached_view)
                self.notifier.error(ERROR_ADD_FAILED)
                return

            self._finish_add(mutation)
            self._reconcile_add(mutation, line)
            mutation.confirm(line)
            await self._refresh_quietly()
        finally:
            self._settle(mutation)

    def _finish_add(self, mutation: Mutation) -> None:
        adds = self._inflight_adds.get(mutation.product_id, [])
        if mutation in adds:
            adds.remove(mutation)
        if not adds:
            self._inflight_adds.pop(mutation.product_id, None)
        state = self.session.state
        state.adds_in_flight = max(0, state.adds_in_flight - 1)

    def _reconcile_add(self, mutation: Mutation, line: Optional[CartLine]) -> None:
        """
        Swap the optimistic line for the server's. The local quantity is the
        confirmed quantity plus adds and deltas the server has not answered yet.
        """
        if line is None:
            return
        view = self.session.state.view or EMPTY_CART
        local = view.find_product(mutation.product_id)
        if local is None and mutation.line_id is not None:
            # The optimistic line was removed meanwhile; leave it to the re-fetch
            return

        unconfirmed = sum(m.quantity for m in self._inflight_adds.get(mutation.product_id, []))
        pending = self._pending_updates.get(mutation.product_id)
        if pending is not None:
            unconfirmed += pending.quantity

        quantity = line.quantity + unconfirmed
        if quantity <= 0:
            self._set_view(view.without_product(mutation.product_id))
        else:
            self._set_view(view.upsert(CartLine(line.id, quantity, line.product)))

    # ==================== UPDATE QUANTITY ====================

    def update_quantity(self, product_id: str, delta: int) -> Optional[Mutation]:
        """
        Change a line's quantity by `delta`. The line is dropped at <= 0.

        The network call is debounced per product; all deltas in one quiet
        window are summed and sent as a single relative POST. A zero delta
        is a no-op and returns None.
        """
        if not self.session.is_authenticated:
            return None
        if not isinstance(delta, int):
            raise ValueError("delta must be an integer")
        if delta == 0:
            return None

        state = self.session.state
        view = state.view
        line = view.find_product(product_id) if view is not None else None
        if line is not None:
            if line.quantity + delta <= 0:
                state.optimistic_count = max(0, self.cart_count - 1)
            self._set_view(view.adjust(product_id, delta))

        mutation = self._pending_updates.get(product_id)
        if mutation is None:
            mutation = Mutation(MutationKind.UPDATE, product_id, 0, line.id if line else None)
            self._pending_updates[product_id] = mutation
            self._track(mutation)
        mutation.quantity += delta

        self.notifier.success(MSG_UPDATED)
        self._debouncer_for(product_id)(product_id)
        return mutation

    def _debouncer_for(self, product_id: str) -> Debounced:
        debounced = self._debouncers.get(product_id)
        if debounced is None:
            debounced = debounce(self._send_quantity_change, self.debounce_delay)
            self._debouncers[product_id] = debounced
        return debounced

    async def _send_quantity_change(self, product_id: str) -> None:
        if product_id not in self._pending_updates:
            return
        # The add that creates the server line must land first
        await self._wait_for_adds(product_id)
        mutation = self._pending_updates.pop(product_id, None)
        if mutation is None:
            # Claimed by an earlier flush while we waited
            return
        mutation.task = asyncio.current_task()

        state = self.session.state
        try:
            if mutation.quantity == 0:
                mutation.confirm()
                return

            try:
                await self.client.add_item(product_id, mutation.quantity)
            except CartSyncError as e:
                mutation.roll_back(e)
                state.error = e
                logger.warning("Quantity update failed for %s: %s", sanitize_id_for_logging(product_id), e)
                await self._recover(self._cached_view)
                self.notifier.error(ERROR_UPDATE_FAILED)
                return

            mutation.confirm()
            await self._refresh_quietly()
        finally:
            self._settle(mutation)

    # ==================== REMOVE ====================

    def remove_item(self, line_id: Union[LineId, str]) -> Optional[Mutation]:
        """Remove a line by id. A provisional line is deleted once its add confirms."""
        if not self.session.is_authenticated:
            return None

        state = self.session.state
        snapshot = state.view
        line = snapshot.find_line(line_id) if snapshot is not None else None

        if line is not None:
            target = line.id
        elif isinstance(line_id, (ProvisionalLineId, ConfirmedLineId)):
            target = line_id
        elif str(line_id).startswith(PROVISIONAL_PREFIX):
            logger.warning("Ignoring removal of unknown provisional line %s", sanitize_id_for_logging(line_id))
            return None
        else:
            target = ConfirmedLineId(str(line_id))

        mutation = Mutation(
            MutationKind.REMOVE,
            line.product_id if line is not None else getattr(target, "product_id", None),
            line.quantity if line is not None else 0,
            target,
        )
        if line is not None:
            state.optimistic_count = max(0, self.cart_count - 1)
            self._set_view(snapshot.without_line(line.id))

        self._track(mutation)
        self.notifier.success(MSG_REMOVED)
        adds = []
        if isinstance(target, ProvisionalLineId):
            adds = list(self._inflight_adds.get(target.product_id, []))
        mutation.task = self._spawn(self._run_remove(mutation, snapshot, adds))
        return mutation

    async def _run_remove(self, mutation: Mutation, snapshot: Optional[CartView], adds: List[Mutation]) -> None:
        state = self.session.state
        try:
            try:
                server_id = await self._resolve_server_id(mutation, adds)
                if server_id is None:
                    # The add behind the provisional line never landed; nothing to delete
                    mutation.confirm()
                    await self._refresh_quietly()
                    return
                await self.client.remove_item(server_id)
            except CartSyncError as e:
                mutation.roll_back(e)
                state.error = e
                logger.warning("Remove from cart failed for %s: %s", sanitize_id_for_logging(str(mutation.line_id)), e)
                # The cache already holds the optimistic removal, so the
                # pre-mutation snapshot is the better last-known-good
                await self._recover(lambda: snapshot, self._cached_view)
                self.notifier.error(ERROR_REMOVE_FAILED)
                return

            mutation.confirm()
            await self._refresh_quietly()
        finally:
            self._settle(mutation)

    async def _resolve_server_id(self, mutation: Mutation, adds: List[Mutation]) -> Optional[str]:
        line_id = mutation.line_id
        if isinstance(line_id, ConfirmedLineId):
            return line_id.server_id

        for add in adds:
            await add.wait()
        for add in reversed(adds):
            if add.result is not None and isinstance(add.result.id, ConfirmedLineId):
                return add.result.id.server_id
        return None

    # ==================== LIFECYCLE ====================

    async def drain(self) -> None:
        """Fire scheduled quantity changes now and wait for every in-flight mutation."""
        for debounced in list(self._debouncers.values()):
            await debounced.flush()
        while True:
            running = [t for t in self._tasks if not t.done()]
            for debounced in self._debouncers.values():
                running += debounced.running
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)

    def close(self) -> None:
        """Sign-out teardown: cancel timers and in-flight work, drop session state."""
        for debounced in self._debouncers.values():
            debounced.cancel()
            for task in debounced.running:
                task.cancel()
        for task in list(self._tasks):
            task.cancel()
        self._debouncers.clear()
        self._pending_updates.clear()
        self._inflight_adds.clear()
        self._listeners.clear()
        self.session.close()

    async def aclose(self) -> None:
        """close() plus shutting down the HTTP client."""
        tasks = list(self._tasks)
        self.close()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.client.aclose()

    # ==================== INTERNALS ====================

    def _set_view(self, view: CartView) -> None:
        """Replace the view, then write the cache. Provisional lines are not serialized."""
        self.session.state.view = view
        if self.cache is not None:
            self.cache.write(view)
        self._emit()

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Cart listener %r failed", listener)

    def _cached_view(self) -> Optional[CartView]:
        return self.cache.read() if self.cache is not None else None

    def _lookup_product(self, product_id: str) -> Optional[ProductSnapshot]:
        if self.product_lookup is None:
            return None
        try:
            return self.product_lookup(product_id)
        except Exception as e:
            logger.warning("Product lookup failed for %s, adding without preview: %s",
                           sanitize_id_for_logging(product_id), e)
            return None

    def _overlay_pending(self, view: CartView) -> CartView:
        for mutation in self._mutations:
            if mutation.kind is MutationKind.REMOVE and mutation.is_pending:
                if mutation.product_id is not None:
                    view = view.without_product(mutation.product_id)
                elif mutation.line_id is not None:
                    view = view.without_line(mutation.line_id)
        for product_id, mutation in self._pending_updates.items():
            if mutation.quantity:
                view = view.adjust(product_id, mutation.quantity)
        return view

    async def _wait_for_adds(self, product_id: Optional[str]) -> None:
        if product_id is None:
            return
        for add in list(self._inflight_adds.get(product_id, [])):
            await add.wait()

    async def _refresh_quietly(self) -> None:
        try:
            await self.refresh()
        except CartSyncError as e:
            logger.warning("Background cart re-fetch failed: %s", e)

    async def _recover(self, *fallbacks: Fallback) -> None:
        """Re-establish a consistent view: server first, then each fallback in order."""
        try:
            await self.refresh()
            return
        except CartSyncError as e:
            logger.warning("Cart re-fetch during rollback failed: %s", e)

        for fallback in fallbacks:
            view = fallback()
            if view is not None:
                self._set_view(view)
                return
        self._emit()

    def _track(self, mutation: Mutation) -> None:
        self._mutations.add(mutation)

    def _settle(self, mutation: Mutation) -> None:
        self._mutations.discard(mutation)
        if not self._mutations:
            self.session.state.optimistic_count = None
        mutation.settle()
        self._emit()

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Cart mutation task crashed", exc_info=task.exception())


def open_cart_sync(
    user_id: Optional[str],
    headers: Optional[dict] = None,
    base_url: str = config.CART_API_BASE_URL,
    product_lookup: Optional[ProductLookup] = None,
    notifier: Optional[Notifier] = None,
) -> CartSync:
    """
    Build a session-scoped engine with the configured cache backend.

    Call at sign-in; call `aclose()` on the result at sign-out.
    """
    session = CartSession(user_id=user_id, headers=dict(headers or {}))
    client = CartApiClient(base_url=base_url, headers=session.headers)
    cache = CartCache(get_cache_store(), user_id) if user_id is not None else None
    return CartSync(session, client, cache=cache, product_lookup=product_lookup, notifier=notifier)
