"""Domain events for the OrderRecord aggregate."""

from protean.fields import DateTime, Identifier, String

from storefront.domain import storefront


@storefront.event(part_of="OrderRecord")
class OrderStatusChanged:
    """An order moved along the fulfilment workflow."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)


@storefront.event(part_of="OrderRecord")
class OrderPaymentCompleted:
    """An online payment for the order succeeded."""

    __version__ = 1

    order_id = Identifier(required=True)
    transaction_id = String(required=True)
    paid_at = DateTime(required=True)


@storefront.event(part_of="OrderRecord")
class OrderPaymentFailed:
    """An online payment for the order failed."""

    __version__ = 1

    order_id = Identifier(required=True)
    failed_at = DateTime(required=True)
