import json

import pytest

from storefront.cart.engine import CartPricingEngine
from storefront.identity import SessionIdentity

CACHE_KEY = "storefront.cart"


@pytest.fixture()
def identity():
    return SessionIdentity()


@pytest.fixture()
def engine(document_store, local_cache, policy, identity):
    engine = CartPricingEngine(
        document_store=document_store,
        local_cache=local_cache,
        policy=policy,
        identity=identity,
        cache_key=CACHE_KEY,
    )
    yield engine
    engine.close()


@pytest.fixture()
def cached_guest_cart(local_cache):
    """Put a guest cart with the given lines into the local cache."""

    def _cache(*lines, owner_key="guest-abc"):
        local_cache.set(
            CACHE_KEY,
            json.dumps(
                {
                    "owner_key": owner_key,
                    "is_guest": True,
                    "lines": [
                        {"product_id": product_id, "unit_price": price, "quantity": quantity}
                        for product_id, price, quantity in lines
                    ],
                }
            ),
        )

    return _cache


@pytest.fixture()
def remote_cart(document_store):
    """Store a cart document for a principal in the document store."""

    def _store(uid, *lines):
        document_store.set(
            "carts",
            uid,
            {
                "owner_key": uid,
                "is_guest": False,
                "lines": [
                    {"product_id": product_id, "unit_price": price, "quantity": quantity}
                    for product_id, price, quantity in lines
                ],
            },
        )
        document_store.writes.clear()

    return _store
