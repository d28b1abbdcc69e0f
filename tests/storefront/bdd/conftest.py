"""Shared BDD fixtures and step definitions for the storefront cart."""

import pytest
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then, when

from storefront.cart.engine import CartPricingEngine, SyncStatus
from storefront.exceptions import PersistenceError
from storefront.identity import Principal, SessionIdentity
from storefront.pricing.policy import PricingPolicy


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def identity():
    return SessionIdentity()


@pytest.fixture()
def error():
    """Container for captured errors."""
    return {"exc": None}


@pytest.fixture()
def placed():
    return {"order_id": None}


@pytest.fixture()
def open_engine(document_store, local_cache, identity):
    engines = []

    def _open(policy):
        engine = CartPricingEngine(document_store, local_cache, policy=policy, identity=identity)
        engines.append(engine)
        return engine

    yield _open

    for engine in engines:
        engine.close()


def _rows(datatable):
    header, *rows = datatable
    return [dict(zip(header, row, strict=True)) for row in rows]


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse(
        "the pricing policy is threshold {threshold:g}, shipping fee {fee:g} and tax rate {rate:g}"
    ),
    target_fixture="policy",
)
def _(threshold, fee, rate):
    return PricingPolicy(free_shipping_threshold=threshold, flat_shipping_fee=fee, tax_rate=rate)


@given("a guest cart", target_fixture="engine")
def _(open_engine, policy):
    engine = open_engine(policy)
    engine.load(None)
    return engine


@given(parsers.cfparse('the saved cart of "{uid}" holds:'))
def _(document_store, uid, datatable):
    document_store.set(
        "carts",
        uid,
        {
            "owner_key": uid,
            "is_guest": False,
            "lines": [
                {"product_id": row["product"], "unit_price": float(row["price"]), "quantity": int(row["quantity"])}
                for row in _rows(datatable)
            ],
        },
    )


@given(parsers.cfparse('"{uid}" signs in'))
def _(identity, uid):
    identity.sign_in(Principal(uid=uid))


@given("the document store is unreachable")
def _(document_store):
    document_store.configure(should_succeed=False, failure_reason="unavailable")


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the shopper adds {quantity:d} of "{product}" at {price:f}'))
def _(engine, quantity, product, price, error):
    try:
        engine.add_line(product, price, quantity)
    except ValidationError as exc:
        error["exc"] = exc


@when(parsers.cfparse('"{uid}" signs in'))
def _(identity, uid):
    identity.sign_in(Principal(uid=uid))


@when("the shopper signs out")
def _(identity):
    identity.sign_out()


@when("the document store is unreachable")
def _(engine, document_store):
    engine.flush()
    document_store.configure(should_succeed=False, failure_reason="unavailable")


@when(parsers.cfparse('the shopper places a "{payment_method}" order'))
def _(engine, payment_method, shipping_info, error, placed):
    try:
        placed["order_id"] = engine.place_order(shipping_info, payment_method)
    except (ValidationError, PersistenceError) as exc:
        error["exc"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the subtotal is {amount:f}"))
def _(engine, amount):
    assert engine.compute_pricing().subtotal == pytest.approx(amount)


@then(parsers.cfparse("the shipping fee is {amount:f}"))
def _(engine, amount):
    assert engine.compute_pricing().shipping_fee == pytest.approx(amount)


@then(parsers.cfparse("the tax is {amount:f}"))
def _(engine, amount):
    assert engine.compute_pricing().tax == pytest.approx(amount)


@then(parsers.cfparse("the total is {amount:f}"))
def _(engine, amount):
    assert engine.compute_pricing().total == pytest.approx(amount)


@then(parsers.cfparse("the cart has {count:d} line"))
def _(engine, count):
    assert len(engine.cart.lines) == count


@then(parsers.cfparse("the cart has {count:d} lines"))
def _(engine, count):
    assert len(engine.cart.lines) == count


@then(parsers.cfparse("the cart holds {count:d} items"))
def _(engine, count):
    assert engine.item_count() == count


@then("the cart holds these lines:")
def _(engine, datatable):
    expected = [(row["product"], int(row["quantity"])) for row in _rows(datatable)]
    assert [(str(line.product_id), line.quantity) for line in engine.cart.lines] == expected


@then(parsers.cfparse('the price of "{product}" is {price:f}'))
def _(engine, product, price):
    assert engine.cart.find_line(product).unit_price == pytest.approx(price)


@then(parsers.cfparse('the saved cart of "{uid}" matches the cart'))
def _(engine, document_store, uid):
    engine.flush()
    stored = document_store.get("carts", uid)
    assert stored["lines"] == [line.to_document() for line in engine.cart.lines]


@then("the cart shows a sync warning")
def _(engine):
    assert engine.sync_status is SyncStatus.PENDING_REMOTE_SYNC
    assert engine.warning is not None


@then("the request is rejected")
def _(error):
    assert isinstance(error["exc"], ValidationError)


@then(parsers.cfparse("a pending order totalling {total:f} is stored"))
def _(engine, document_store, placed, total):
    engine.flush()
    order = document_store.get("orders", placed["order_id"])
    assert order["status"] == "pending"
    assert order["pricing"]["total"] == pytest.approx(total)


@then("no order is stored")
def _(document_store):
    assert "orders" not in document_store.collections


@then("the order could not be stored")
def _(error):
    assert isinstance(error["exc"], PersistenceError)
