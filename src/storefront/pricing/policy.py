"""Pricing policy and the derived pricing snapshot of a cart.

Totals are a pure function of the cart lines and a ``PricingPolicy``:

    subtotal     = sum(unit_price * quantity)
    shipping_fee = 0 if subtotal is zero or subtotal >= free_shipping_threshold
                   else flat_shipping_fee
    tax          = subtotal * tax_rate
    total        = subtotal + shipping_fee + tax

Arithmetic runs on ``Decimal`` and every amount is rounded half-up to two
places before it is stored on the snapshot.
"""

from decimal import ROUND_HALF_UP, Decimal

from protean.fields import Float, String

from storefront import config
from storefront.domain import storefront

_CENTS = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Convert a float/int/str amount to ``Decimal`` without binary float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_money(value) -> Decimal:
    return to_decimal(value).quantize(_CENTS, rounding=ROUND_HALF_UP)


@storefront.value_object
class PricingPolicy:
    """The configuration tuple controlling derived totals.

    Threshold, flat fee and tax rate are always injected; nothing in the
    pricing path hard-codes them.
    """

    free_shipping_threshold = Float(required=True, min_value=0.0)
    flat_shipping_fee = Float(required=True, min_value=0.0)
    tax_rate = Float(required=True, min_value=0.0, max_value=1.0)
    currency = String(max_length=3, default="INR")

    @classmethod
    def from_settings(cls):
        return cls(
            free_shipping_threshold=float(config.FREE_SHIPPING_THRESHOLD),
            flat_shipping_fee=float(config.FLAT_SHIPPING_FEE),
            tax_rate=float(config.TAX_RATE),
            currency=config.CURRENCY,
        )


@storefront.value_object
class PricingSnapshot:
    """Derived amounts for a set of cart lines. Never stored on the cart."""

    subtotal = Float(default=0.0)
    shipping_fee = Float(default=0.0)
    tax = Float(default=0.0)
    total = Float(default=0.0)
    currency = String(max_length=3, default="INR")


def compute_pricing(lines, policy: PricingPolicy) -> PricingSnapshot:
    """Compute the pricing snapshot for ``lines`` under ``policy``.

    ``lines`` is any iterable of objects exposing ``unit_price`` and
    ``quantity``. No I/O, no side effects.
    """
    lines = list(lines)

    subtotal = to_money(sum((to_decimal(line.unit_price) * line.quantity for line in lines), Decimal("0")))

    if subtotal == 0 or subtotal >= to_decimal(policy.free_shipping_threshold):
        shipping_fee = Decimal("0.00")
    else:
        shipping_fee = to_money(policy.flat_shipping_fee)

    tax = to_money(subtotal * to_decimal(policy.tax_rate))
    total = to_money(subtotal + shipping_fee + tax)

    return PricingSnapshot(
        subtotal=float(subtotal),
        shipping_fee=float(shipping_fee),
        tax=float(tax),
        total=float(total),
        currency=policy.currency,
    )
