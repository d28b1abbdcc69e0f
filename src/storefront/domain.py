"""Storefront bounded context — shopping cart, checkout pricing and orders.

The cart is a standard CQRS aggregate that lives in memory for one browser
session and is mirrored to a document store (signed-in shoppers) or a local
cache (guests). Checkout turns the cart into an immutable order record.
"""

from protean.domain import Domain

from storefront.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging()

logger = get_logger(__name__)

# Domain Composition Root
storefront = Domain(name="storefront")
