"""Application tests for the order management commands."""

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from storefront.cart.cart import Cart
from storefront.order.management import AdvanceOrderStatus, RecordOrderPayment, RecordOrderPaymentFailure
from storefront.order.order import OrderRecord, OrderStatus, PaymentStatus
from storefront.pricing.policy import compute_pricing


def _store_order(policy, shipping_info, payment_method="cod"):
    cart = Cart.create()
    cart.add_line("milk", 40.0, 2)
    order = OrderRecord.snapshot(
        lines=cart.lines,
        pricing=compute_pricing(cart.lines, policy),
        shipping_address=shipping_info,
        payment_method=payment_method,
    )
    current_domain.repository_for(OrderRecord).add(order)
    return str(order.id)


def _get(order_id):
    return current_domain.repository_for(OrderRecord).get(order_id)


class TestAdvanceOrderStatus:
    def test_advance_persists(self, policy, shipping_info):
        order_id = _store_order(policy, shipping_info)
        current_domain.process(AdvanceOrderStatus(order_id=order_id, status="processing"), asynchronous=False)
        assert _get(order_id).status == OrderStatus.PROCESSING.value

    def test_full_path(self, policy, shipping_info):
        order_id = _store_order(policy, shipping_info)
        for status in ["processing", "shipped", "delivered"]:
            current_domain.process(AdvanceOrderStatus(order_id=order_id, status=status), asynchronous=False)
        assert _get(order_id).status == OrderStatus.DELIVERED.value

    def test_invalid_transition_rejected(self, policy, shipping_info):
        order_id = _store_order(policy, shipping_info)
        with pytest.raises(ValidationError):
            current_domain.process(AdvanceOrderStatus(order_id=order_id, status="delivered"), asynchronous=False)
        assert _get(order_id).status == OrderStatus.PENDING.value

    def test_pricing_survives_status_changes(self, policy, shipping_info):
        order_id = _store_order(policy, shipping_info)
        total = _get(order_id).pricing.total
        current_domain.process(AdvanceOrderStatus(order_id=order_id, status="processing"), asynchronous=False)
        assert _get(order_id).pricing.total == total


class TestPaymentCommands:
    def test_record_payment(self, policy, shipping_info):
        order_id = _store_order(policy, shipping_info, payment_method="online")
        current_domain.process(
            RecordOrderPayment(order_id=order_id, transaction_id="PHONEPAYAB12CD34"),
            asynchronous=False,
        )
        order = _get(order_id)
        assert order.payment_status == PaymentStatus.COMPLETED.value
        assert order.transaction_id == "PHONEPAYAB12CD34"

    def test_record_payment_failure(self, policy, shipping_info):
        order_id = _store_order(policy, shipping_info, payment_method="online")
        current_domain.process(RecordOrderPaymentFailure(order_id=order_id), asynchronous=False)
        assert _get(order_id).payment_status == PaymentStatus.FAILED.value
