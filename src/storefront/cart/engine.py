"""Cart pricing engine — the authoritative cart of one shopping session.

The engine owns a single in-memory ``Cart`` and decides where it lives:

    Guest   → no principal; the cart is mirrored to the local cache.
    Merging → transient, once per sign-in; guest lines are folded into the
              principal's remote cart (remote prices win, quantities add up).
    Owned   → principal present; the cart is mirrored to ``carts/{uid}`` in
              the document store, with the local cache as a fallback.

Mutations change the in-memory cart and return immediately. Persistence
runs on a single background worker so writes land in the order they were
made; every write carries a sequence number and a write that has already
been superseded by a newer write to the same slot (the owner's remote cart,
or the local guest slot) is skipped. Persistence failures never
propagate into the mutating call: they show up as ``sync_status`` and
``warning`` and are published to status listeners.

Engines are not shared between sessions and must be used inside an active
storefront domain context.
"""

import json
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum

from protean.exceptions import ObjectNotFoundError, ValidationError

from storefront import config
from storefront.cart.cart import Cart
from storefront.exceptions import EmptyCartError, PersistenceError
from storefront.order.order import OrderRecord
from storefront.persistence.port import CARTS, ORDERS
from storefront.pricing.policy import PricingPolicy, compute_pricing
from storefront.utils.logging import add_context, clear_context, get_logger

logger = get_logger(__name__)


class CartState(Enum):
    GUEST = "Guest"
    MERGING = "Merging"
    OWNED = "Owned"


class SyncStatus(Enum):
    SYNCED = "synced"
    PENDING = "pending"
    PENDING_REMOTE_SYNC = "pending_remote_sync"  # Saved locally, remote copy is stale
    UNSAVED = "unsaved"  # Only in memory; lost when the session ends


@dataclass(frozen=True)
class _PersistJob:
    sequence: int
    owner_key: str
    document: dict
    remote: bool
    remote_unknown: bool
    clear_guest_copy: bool

    @property
    def target(self):
        """The store slot this job overwrites."""
        return (CARTS, self.owner_key) if self.remote else ("local-cache", None)


class CartPricingEngine:
    def __init__(
        self,
        document_store,
        local_cache,
        policy: PricingPolicy | None = None,
        identity=None,
        executor=None,
        cache_key: str = config.CART_CACHE_KEY,
    ):
        self.document_store = document_store
        self.local_cache = local_cache
        self.policy = policy or PricingPolicy.from_settings()
        self.cache_key = cache_key

        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="cart-persist")
        self._lock = threading.RLock()
        self._identity = None
        self._unsubscribe = None

        self._cart = None
        self._principal = None
        self._state = None
        # Remote cart could not be read at sign-in; keep working on the guest copy
        self._remote_unknown = False
        self._clear_guest_copy = False

        self._sequence = 0
        # Latest scheduled sequence per store slot; older jobs for a slot are skipped
        self._latest_by_target = {}
        self._last_future = None
        self._status_listeners = []
        self._close_callbacks = []
        self.sync_status = SyncStatus.SYNCED
        self.warning = None

        if identity is not None:
            self.attach(identity)

    # -------------------------------------------------------------------
    # Session wiring
    # -------------------------------------------------------------------
    @property
    def cart(self):
        return self._require_cart()

    @property
    def state(self):
        return self._state

    @property
    def principal(self):
        return self._principal

    def attach(self, identity):
        """Follow ``identity``: sign-in loads (and merges) the principal's cart, sign-out discards the cart."""
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._identity = identity
        self._unsubscribe = identity.on_change(self._on_identity_change)

    def _on_identity_change(self, principal):
        if principal is None:
            self.discard()
        else:
            self.load(principal)

    def discard(self):
        """Forget the in-memory cart. The next access performs a fresh guest load."""
        with self._lock:
            self._cart = None
            self._principal = None
            self._state = None
            self._remote_unknown = False
            self._clear_guest_copy = False
        logger.info("cart_discarded")
        clear_context("owner_key", "cart_state")

    def on_status_change(self, callback):
        """Subscribe to ``(sync_status, warning)`` updates. Returns an unsubscribe callable.

        Callbacks may run on the persistence worker thread.
        """
        self._status_listeners.append(callback)

        def unsubscribe():
            if callback in self._status_listeners:
                self._status_listeners.remove(callback)

        return unsubscribe

    def flush(self, timeout=None):
        """Block until every scheduled write has finished. Returns the resulting ``sync_status``."""
        future = self._last_future
        if future is not None:
            future.result(timeout=timeout)
        return self.sync_status

    def on_close(self, callback):
        """Run ``callback`` once the engine has closed and every write has finished."""
        self._close_callbacks.append(callback)

    def close(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._executor.shutdown(wait=True)
        while self._close_callbacks:
            self._close_callbacks.pop()()

    def _write_in_flight(self):
        return self._last_future is not None and not self._last_future.done()

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------
    def load(self, principal=None):
        """Load the cart for ``principal``, or the guest cart when it is None."""
        if principal is None:
            return self._load_guest()
        return self._load_owned(principal)

    def _pending_key(self, owner_key):
        return f"{self.cache_key}:pending:{owner_key}"

    def _read_cached_cart(self, key, owner_key=None, is_guest=None):
        raw = self.local_cache.get(key)
        if not raw:
            return None
        try:
            return Cart.from_document(json.loads(raw), owner_key=owner_key, is_guest=is_guest)
        except (ValueError, KeyError, TypeError, ValidationError) as exc:
            logger.warning("cached_cart_unreadable", key=key, error=str(exc))
            return None

    def _load_guest(self):
        cart = self._read_cached_cart(self.cache_key, is_guest=True) or Cart.create()

        with self._lock:
            self._cart = cart
            self._principal = None
            self._state = CartState.GUEST
            self._remote_unknown = False
            self._clear_guest_copy = False

        add_context(owner_key=str(cart.owner_key), cart_state=CartState.GUEST.value)
        self._mark_loaded()
        logger.info("cart_loaded", guest=True, lines=len(cart.lines))
        return cart

    def _load_owned(self, principal):
        uid = str(principal.uid)
        log = logger.bind(owner_key=uid)

        if self._state is CartState.GUEST and self._cart is not None:
            guest_cart = self._cart
        else:
            guest_cart = self._read_cached_cart(self.cache_key, is_guest=True)

        with self._lock:
            self._state = CartState.MERGING

        needs_write = False
        pending = self._read_cached_cart(self._pending_key(uid), owner_key=uid, is_guest=False)
        if pending is not None:
            # A fallback snapshot is newer than whatever the remote store holds
            cart = pending
            needs_write = True
            log.info("pending_cart_restored", lines=len(cart.lines))
        else:
            try:
                document = self.document_store.get(CARTS, uid)
                cart = Cart.from_document(document, owner_key=uid, is_guest=False)
            except ObjectNotFoundError:
                cart = Cart.create(owner_key=uid, is_guest=False)
                needs_write = True
            except PersistenceError as exc:
                log.warning("remote_cart_unavailable", error=str(exc))
                return self._load_degraded(principal, guest_cart, exc)
            except (ValueError, KeyError, TypeError, ValidationError) as exc:
                # The stored document cannot be rebuilt; start over and overwrite it
                log.warning("remote_cart_unreadable", error=str(exc))
                cart = Cart.create(owner_key=uid, is_guest=False)
                needs_write = True

        merged = 0
        if guest_cart is not None and not guest_cart.is_empty():
            merged = cart.merge_guest_lines(guest_cart.lines)
            needs_write = True
            log.info("guest_cart_merged", guest_key=str(guest_cart.owner_key), items_merged=merged)

        with self._lock:
            self._cart = cart
            self._principal = principal
            self._state = CartState.OWNED
            self._remote_unknown = False
            self._clear_guest_copy = guest_cart is not None

        add_context(owner_key=uid, cart_state=CartState.OWNED.value)
        log.info("cart_loaded", guest=False, lines=len(cart.lines))

        if needs_write:
            self._schedule_persist()
        else:
            self._mark_loaded()
        return cart

    def _load_degraded(self, principal, guest_cart, error):
        """Keep shopping on the guest lines when the remote cart cannot be read.

        Nothing is merged and nothing is written remotely: the remote copy is
        unknown, so overwriting it would lose data. Writes go to the guest
        slot of the local cache and the next sign-in merges them.
        """
        cart = Cart.create(owner_key=str(principal.uid), is_guest=False)
        if guest_cart is not None:
            cart.merge_guest_lines(guest_cart.lines)

        with self._lock:
            self._cart = cart
            self._principal = principal
            self._state = CartState.OWNED
            self._remote_unknown = True
            self._clear_guest_copy = False

        add_context(owner_key=str(principal.uid), cart_state=CartState.OWNED.value)
        self._set_status(SyncStatus.PENDING_REMOTE_SYNC, error)
        return cart

    def _mark_loaded(self):
        # A write of the previous cart still in flight reports the status when it lands
        if not self._write_in_flight():
            self._set_status(SyncStatus.SYNCED, None)

    def _require_cart(self):
        if self._cart is None:
            principal = self._identity.current_principal() if self._identity is not None else None
            self.load(principal)
        return self._cart

    # -------------------------------------------------------------------
    # Line mutations
    # -------------------------------------------------------------------
    def add_line(self, product_id, unit_price, quantity=1):
        cart = self._require_cart()
        cart.add_line(product_id, unit_price, quantity)
        self._schedule_persist()
        return cart

    def remove_line(self, product_id):
        cart = self._require_cart()
        cart.remove_line(product_id)
        self._schedule_persist()
        return cart

    def set_quantity(self, product_id, quantity):
        cart = self._require_cart()
        cart.set_quantity(product_id, quantity)
        self._schedule_persist()
        return cart

    def clear(self):
        cart = self._require_cart()
        cart.clear_lines()
        self._schedule_persist()
        return cart

    def item_count(self):
        return self._require_cart().item_count()

    # -------------------------------------------------------------------
    # Pricing and checkout
    # -------------------------------------------------------------------
    def compute_pricing(self, policy: PricingPolicy | None = None):
        return compute_pricing(self._require_cart().lines, policy or self.policy)

    def to_order_record(self, shipping_info, payment_method, policy: PricingPolicy | None = None, contact=None):
        """Snapshot the cart into a pending ``OrderRecord``. The cart is left untouched."""
        cart = self._require_cart()
        if cart.is_empty():
            raise EmptyCartError()

        principal = self._principal
        if contact is None and principal is not None:
            contact = {
                "name": principal.display_name,
                "email": principal.email,
                "phone": principal.phone,
            }

        return OrderRecord.snapshot(
            lines=cart.lines,
            pricing=self.compute_pricing(policy),
            shipping_address=shipping_info,
            payment_method=payment_method,
            principal_id=str(principal.uid) if principal is not None else None,
            contact=contact,
        )

    def place_order(self, shipping_info, payment_method, policy: PricingPolicy | None = None, contact=None):
        """Write the order to ``orders`` and clear the cart once the write is confirmed.

        Returns:
            The new order's id.

        Raises:
            EmptyCartError: the cart has no lines.
            PersistenceError: the order could not be stored; the cart is kept.
        """
        order = self.to_order_record(shipping_info, payment_method, policy=policy, contact=contact)

        try:
            order_id = self.document_store.add(ORDERS, order.to_document())
        except PersistenceError as exc:
            logger.error("order_write_failed", owner_key=str(self._cart.owner_key), error=str(exc))
            raise

        logger.info(
            "order_placed",
            order_id=order_id,
            owner_key=str(self._cart.owner_key),
            total=order.pricing.total,
            payment_method=order.payment_method,
        )
        self.clear()
        return order_id

    # -------------------------------------------------------------------
    # Persistence side-channel
    # -------------------------------------------------------------------
    def _schedule_persist(self):
        with self._lock:
            self._sequence += 1
            job = _PersistJob(
                sequence=self._sequence,
                owner_key=str(self._cart.owner_key),
                document=self._cart.to_document(),
                remote=self._state is CartState.OWNED and not self._remote_unknown,
                remote_unknown=self._remote_unknown,
                clear_guest_copy=self._clear_guest_copy,
            )
            self._latest_by_target[job.target] = job.sequence
        self._set_status(SyncStatus.PENDING, self.warning)
        self._last_future = self._executor.submit(self._run_persist, job)
        return self._last_future

    def _run_persist(self, job):
        log = logger.bind(owner_key=job.owner_key, sequence=job.sequence)

        with self._lock:
            superseded = job.sequence < self._latest_by_target[job.target]
        if superseded:
            log.debug("cart_persist_superseded")
            return

        if job.remote:
            status, warning = self._persist_remote(job, log)
        else:
            status, warning = self._persist_local(job, log)

        with self._lock:
            if job.sequence != self._sequence:
                return
            if job.remote and status is not SyncStatus.UNSAVED and job.clear_guest_copy:
                self._clear_guest_copy = False

        self._set_status(status, warning)

    def _persist_local(self, job, log):
        try:
            self.local_cache.set(self.cache_key, json.dumps(job.document))
        except PersistenceError as exc:
            log.warning("cart_persist_failed", store="local-cache", error=str(exc))
            return SyncStatus.UNSAVED, exc

        if job.remote_unknown:
            with self._lock:
                return SyncStatus.PENDING_REMOTE_SYNC, self.warning
        return SyncStatus.SYNCED, None

    def _persist_remote(self, job, log):
        pending_key = self._pending_key(job.owner_key)

        try:
            self.document_store.set(CARTS, job.owner_key, job.document, merge=True)
        except PersistenceError as exc:
            log.warning("cart_persist_failed", store="document-store", error=str(exc))
            try:
                self.local_cache.set(pending_key, json.dumps(job.document))
            except PersistenceError as local_exc:
                log.error("cart_persist_fallback_failed", error=str(local_exc))
                return SyncStatus.UNSAVED, exc

            log.info("cart_persist_fallback_local", key=pending_key)
            if job.clear_guest_copy:
                self._remove_cached(self.cache_key, log)
            return SyncStatus.PENDING_REMOTE_SYNC, exc

        self._remove_cached(pending_key, log)
        if job.clear_guest_copy:
            self._remove_cached(self.cache_key, log)
        return SyncStatus.SYNCED, None

    def _remove_cached(self, key, log):
        try:
            self.local_cache.remove(key)
        except PersistenceError as exc:
            log.warning("cached_cart_remove_failed", key=key, error=str(exc))

    def _set_status(self, status, warning):
        with self._lock:
            self.sync_status = status
            self.warning = warning
        for callback in list(self._status_listeners):
            callback(status, warning)
