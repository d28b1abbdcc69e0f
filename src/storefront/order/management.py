"""Order management — commands and handler for the admin order workflow."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import OrderRecord, OrderStatus


@storefront.command(part_of="OrderRecord")
class AdvanceOrderStatus:
    """Move an order to the next status (processing, shipped, delivered or cancelled)."""

    order_id = Identifier(required=True)
    status = String(required=True, choices=OrderStatus)


@storefront.command(part_of="OrderRecord")
class RecordOrderPayment:
    """Record a successful online payment against an order."""

    order_id = Identifier(required=True)
    transaction_id = String(required=True, max_length=100)


@storefront.command(part_of="OrderRecord")
class RecordOrderPaymentFailure:
    order_id = Identifier(required=True)


@storefront.command_handler(part_of=OrderRecord)
class ManageOrderHandler:
    @handle(AdvanceOrderStatus)
    def advance_order_status(self, command):
        repo = current_domain.repository_for(OrderRecord)
        order = repo.get(command.order_id)
        order.advance_to(command.status)
        repo.add(order)

    @handle(RecordOrderPayment)
    def record_order_payment(self, command):
        repo = current_domain.repository_for(OrderRecord)
        order = repo.get(command.order_id)
        order.record_payment_success(command.transaction_id)
        repo.add(order)

    @handle(RecordOrderPaymentFailure)
    def record_order_payment_failure(self, command):
        repo = current_domain.repository_for(OrderRecord)
        order = repo.get(command.order_id)
        order.record_payment_failure()
        repo.add(order)
