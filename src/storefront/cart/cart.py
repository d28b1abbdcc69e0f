"""Cart aggregate (CQRS) — the in-memory cart of one shopping session.

A cart is owned either by a guest token (random, local-only) or by the
identity provider's principal id. It holds at most one line per product;
adding a product that is already present increases its quantity. Prices
are snapshots taken when the line was added and are never re-fetched here.
"""

from datetime import UTC, datetime
from uuid import uuid4

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer

from storefront.domain import storefront


@storefront.entity(part_of="Cart")
class CartLine:
    product_id = Identifier(required=True)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)

    def to_document(self):
        return {
            "product_id": str(self.product_id),
            "unit_price": self.unit_price,
            "quantity": self.quantity,
        }


def _quantity_errors(quantity):
    if quantity is None or int(quantity) != quantity or quantity < 1:
        return ["Quantity must be a whole number of at least 1"]
    return []


def _validate_line_input(unit_price, quantity):
    errors = {}
    if _quantity_errors(quantity):
        errors["quantity"] = _quantity_errors(quantity)
    if unit_price is None or unit_price < 0:
        errors["unit_price"] = ["Unit price cannot be negative"]
    if errors:
        raise ValidationError(errors)


@storefront.aggregate
class Cart:
    owner_key = Identifier(identifier=True, required=True)
    is_guest = Boolean(default=True)
    lines = HasMany(CartLine)
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, owner_key=None, is_guest=True):
        """Create an empty cart. Guests get a fresh random token."""
        return cls(
            owner_key=owner_key or uuid4().hex,
            is_guest=is_guest,
            updated_at=datetime.now(UTC),
        )

    @classmethod
    def from_document(cls, document, owner_key=None, is_guest=None):
        """Rebuild a cart from its stored document.

        ``owner_key`` and ``is_guest`` override what the document says, so a
        document read from ``carts/{principal_id}`` is always owned by that
        principal.
        """
        cart = cls(
            owner_key=owner_key or document.get("owner_key") or uuid4().hex,
            is_guest=document.get("is_guest", True) if is_guest is None else is_guest,
            updated_at=datetime.now(UTC),
        )
        for line in document.get("lines", []):
            cart.add_line(line["product_id"], line["unit_price"], line["quantity"])
        return cart

    def to_document(self):
        return {
            "owner_key": str(self.owner_key),
            "is_guest": self.is_guest,
            "lines": [line.to_document() for line in self.lines],
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def find_line(self, product_id):
        return next((line for line in self.lines if str(line.product_id) == str(product_id)), None)

    def item_count(self):
        """Total quantity across all lines."""
        return sum(line.quantity for line in self.lines)

    def is_empty(self):
        return not self.lines

    # -------------------------------------------------------------------
    # Line management
    # -------------------------------------------------------------------
    def add_line(self, product_id, unit_price, quantity=1):
        """Add a product, or increase its quantity if it is already in the cart."""
        _validate_line_input(unit_price, quantity)

        existing = self.find_line(product_id)
        if existing:
            existing.quantity += quantity
        else:
            self.add_lines(
                CartLine(
                    product_id=product_id,
                    unit_price=unit_price,
                    quantity=quantity,
                )
            )

        self.updated_at = datetime.now(UTC)

    def remove_line(self, product_id):
        """Remove the line for ``product_id``. Returns False if there was none."""
        existing = self.find_line(product_id)
        if existing is None:
            return False

        self.remove_lines(existing)
        self.updated_at = datetime.now(UTC)
        return True

    def set_quantity(self, product_id, quantity):
        """Set the quantity of an existing line.

        A quantity of zero or less removes the line. Unknown products are
        ignored. Returns True when the cart changed.
        """
        if quantity is None or quantity <= 0:
            return self.remove_line(product_id)

        if _quantity_errors(quantity):
            raise ValidationError({"quantity": _quantity_errors(quantity)})

        existing = self.find_line(product_id)
        if existing is None:
            return False

        existing.quantity = quantity
        self.updated_at = datetime.now(UTC)
        return True

    def clear_lines(self):
        for line in list(self.lines):
            self.remove_lines(line)
        self.updated_at = datetime.now(UTC)

    def replace_lines(self, lines):
        """Swap the cart's contents for ``lines`` (line documents)."""
        self.clear_lines()
        for line in lines:
            self.add_line(line["product_id"], line["unit_price"], line["quantity"])

    # -------------------------------------------------------------------
    # Cart merging (guest → authenticated)
    # -------------------------------------------------------------------
    def merge_guest_lines(self, guest_lines):
        """Merge lines from a guest cart into this cart.

        Quantities of products present on both sides are summed and this
        cart's unit price is kept. Guest-only lines are appended in their
        original order.

        Args:
            guest_lines: ``CartLine`` objects or line documents.

        Returns:
            The number of guest lines merged.
        """
        merged = 0
        for guest_line in guest_lines:
            if isinstance(guest_line, dict):
                product_id = guest_line["product_id"]
                unit_price = guest_line["unit_price"]
                quantity = guest_line["quantity"]
            else:
                product_id = guest_line.product_id
                unit_price = guest_line.unit_price
                quantity = guest_line.quantity

            existing = self.find_line(product_id)
            if existing:
                existing.quantity += quantity
            else:
                self.add_lines(
                    CartLine(
                        product_id=product_id,
                        unit_price=unit_price,
                        quantity=quantity,
                    )
                )
            merged += 1

        self.updated_at = datetime.now(UTC)
        return merged
