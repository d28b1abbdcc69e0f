"""Storefront error taxonomy.

Input problems are protean ``ValidationError``s, like everywhere else in the
domain. Store problems are ``PersistenceError``s: the cart stays usable in
memory and the failure is surfaced as a warning.
"""

from protean.exceptions import ValidationError


class EmptyCartError(ValidationError):
    """Checkout was attempted on a cart without lines."""

    def __init__(self, messages=None):
        super().__init__(messages or {"cart": ["Cannot check out an empty cart"]})


class PersistenceError(Exception):
    """A store was unreachable, denied the request, or ran out of space."""

    def __init__(self, store, cause=None, message=None):
        self.store = store
        self.cause = cause
        super().__init__(message or f"{store} write failed: {cause}")
