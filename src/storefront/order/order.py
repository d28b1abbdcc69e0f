"""OrderRecord aggregate (CQRS) — the immutable result of a checkout.

An order record is a snapshot: the cart lines, the pricing computed at
checkout, where to ship, and how the customer pays. Pricing is never
recalculated or edited after creation. Only the workflow fields move:

State Machine:
    PENDING → PROCESSING → SHIPPED → DELIVERED
    PENDING → CANCELLED

Payment (online orders only):
    PENDING → COMPLETED | FAILED
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from storefront.domain import storefront
from storefront.order.events import OrderPaymentCompleted, OrderPaymentFailed, OrderStatusChanged
from storefront.pricing.policy import PricingSnapshot


class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(Enum):
    CASH_ON_DELIVERY = "cod"
    ONLINE = "online"


class PaymentStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@storefront.value_object(part_of="OrderRecord")
class ShippingAddress:
    """Where the order ships, captured at checkout and never updated."""

    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    pincode = String(required=True, max_length=20)
    country = String(max_length=100, default="India")


@storefront.value_object(part_of="OrderRecord")
class CustomerContact:
    name = String(max_length=255)
    email = String(max_length=254)
    phone = String(max_length=20)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="OrderRecord")
class OrderLine:
    product_id = Identifier(required=True)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@storefront.aggregate
class OrderRecord:
    principal_id = Identifier()  # Nullable for guest checkout
    contact = ValueObject(CustomerContact)
    shipping_address = ValueObject(ShippingAddress, required=True)
    payment_method = String(choices=PaymentMethod, required=True)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    transaction_id = String(max_length=100)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    lines = HasMany(OrderLine)
    pricing = ValueObject(PricingSnapshot, required=True)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def snapshot(cls, lines, pricing, shipping_address, payment_method, principal_id=None, contact=None):
        """Freeze cart lines and their pricing into a new pending order.

        Args:
            lines: Objects exposing product_id, unit_price and quantity.
            pricing: The ``PricingSnapshot`` computed for those lines.
            shipping_address: ``ShippingAddress`` or a dict of its fields.
            payment_method: A ``PaymentMethod`` or its value.
            principal_id: The signed-in customer, if any.
            contact: ``CustomerContact`` or a dict of its fields.
        """
        if isinstance(shipping_address, dict):
            shipping_address = ShippingAddress(**shipping_address)
        if isinstance(contact, dict):
            contact = CustomerContact(**contact)
        if isinstance(payment_method, PaymentMethod):
            payment_method = payment_method.value

        now = datetime.now(UTC)
        order = cls(
            principal_id=principal_id,
            contact=contact,
            shipping_address=shipping_address,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING.value,
            status=OrderStatus.PENDING.value,
            pricing=pricing,
            created_at=now,
            updated_at=now,
        )
        for line in lines:
            order.add_lines(
                OrderLine(
                    product_id=str(line.product_id),
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                )
            )
        return order

    @classmethod
    def from_document(cls, document, order_id=None):
        identity = {}
        if order_id or document.get("id"):
            identity["id"] = order_id or document["id"]

        order = cls(
            **identity,
            principal_id=document.get("principal_id"),
            contact=CustomerContact(**document["contact"]) if document.get("contact") else None,
            shipping_address=ShippingAddress(**document["shipping_address"]),
            payment_method=document["payment_method"],
            payment_status=document.get("payment_status", PaymentStatus.PENDING.value),
            transaction_id=document.get("transaction_id"),
            status=document.get("status", OrderStatus.PENDING.value),
            pricing=PricingSnapshot(**document["pricing"]),
            created_at=_parse_datetime(document.get("created_at")),
            updated_at=_parse_datetime(document.get("updated_at")),
        )
        for line in document.get("lines", []):
            order.add_lines(OrderLine(**line))
        return order

    def to_document(self):
        return {
            "id": str(self.id),
            "principal_id": str(self.principal_id) if self.principal_id else None,
            "contact": _value_object_fields(self.contact, ("name", "email", "phone")),
            "shipping_address": _value_object_fields(
                self.shipping_address, ("street", "city", "state", "pincode", "country")
            ),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "transaction_id": self.transaction_id,
            "status": self.status,
            "lines": [
                {
                    "product_id": str(line.product_id),
                    "unit_price": line.unit_price,
                    "quantity": line.quantity,
                }
                for line in self.lines
            ],
            "pricing": _value_object_fields(
                self.pricing, ("subtotal", "shipping_fee", "tax", "total", "currency")
            ),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    # -------------------------------------------------------------------
    # State transition helper
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    # -------------------------------------------------------------------
    # Order workflow
    # -------------------------------------------------------------------
    def advance_to(self, target_status):
        """Move the order to ``target_status`` (an ``OrderStatus`` or its value)."""
        target_status = OrderStatus(target_status)
        self._assert_can_transition(target_status)

        previous_status = self.status
        self.status = target_status.value
        now = datetime.now(UTC)
        self.updated_at = now

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=previous_status,
                new_status=target_status.value,
                changed_at=now,
            )
        )

    def cancel(self):
        self.advance_to(OrderStatus.CANCELLED)

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def _assert_payment_pending(self):
        if PaymentMethod(self.payment_method) != PaymentMethod.ONLINE:
            raise ValidationError({"payment_method": ["Only online orders record a payment outcome"]})
        if PaymentStatus(self.payment_status) != PaymentStatus.PENDING:
            raise ValidationError({"payment_status": [f"Payment is already {self.payment_status}"]})

    def record_payment_success(self, transaction_id):
        self._assert_payment_pending()
        if not transaction_id:
            raise ValidationError({"transaction_id": ["Transaction id is required"]})

        self.payment_status = PaymentStatus.COMPLETED.value
        self.transaction_id = transaction_id
        now = datetime.now(UTC)
        self.updated_at = now

        self.raise_(
            OrderPaymentCompleted(
                order_id=str(self.id),
                transaction_id=transaction_id,
                paid_at=now,
            )
        )

    def record_payment_failure(self):
        self._assert_payment_pending()

        self.payment_status = PaymentStatus.FAILED.value
        now = datetime.now(UTC)
        self.updated_at = now

        self.raise_(
            OrderPaymentFailed(
                order_id=str(self.id),
                failed_at=now,
            )
        )


def _value_object_fields(value_object, names):
    if value_object is None:
        return None
    return {name: getattr(value_object, name) for name in names}


def _parse_datetime(value):
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)
