"""Principal value object and an in-process identity provider.

The hosted auth service is outside this package; ``SessionIdentity`` is the
contract the cart engine needs from it: who is signed in right now, and a
subscription to sign-in/sign-out changes.
"""

import structlog
from protean.fields import Identifier, String

from storefront.domain import storefront

logger = structlog.get_logger(__name__)


@storefront.value_object
class Principal:
    """An authenticated identity with a stable unique identifier."""

    uid = Identifier(required=True)
    email = String(max_length=254)
    display_name = String(max_length=255)
    phone = String(max_length=20)


class SessionIdentity:
    def __init__(self, principal=None):
        self._principal = principal
        self._listeners = []

    def current_principal(self):
        return self._principal

    def on_change(self, callback):
        """Subscribe to sign-in/sign-out. Returns a callable that unsubscribes."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def sign_in(self, principal):
        self._principal = principal
        logger.info("principal_signed_in", uid=str(principal.uid))
        self._notify()

    def sign_out(self):
        if self._principal is None:
            return
        logger.info("principal_signed_out", uid=str(self._principal.uid))
        self._principal = None
        self._notify()

    def _notify(self):
        for callback in list(self._listeners):
            callback(self._principal)
