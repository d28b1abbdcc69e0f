"""Document store backed by the storefront domain's repositories.

``carts/{owner_key}`` maps onto the ``Cart`` aggregate and ``orders/{id}``
onto the ``OrderRecord`` aggregate, so whatever provider the domain is
configured with (in-memory by default) is where documents end up. Every
call pushes its own domain context, which lets the engine's persistence
worker use the store from a background thread.
"""

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError

from storefront.cart.cart import Cart
from storefront.exceptions import PersistenceError
from storefront.order.order import OrderRecord
from storefront.persistence.port import CARTS, ORDERS, DocumentStorePort

logger = structlog.get_logger(__name__)


class DomainDocumentStore(DocumentStorePort):
    def __init__(self, domain):
        self.domain = domain

    def _aggregate_for(self, collection):
        if collection == CARTS:
            return Cart
        if collection == ORDERS:
            return OrderRecord
        raise ValueError(f"Unknown collection: {collection}")

    def get(self, collection: str, key: str) -> dict:
        aggregate_cls = self._aggregate_for(collection)
        with self.domain.domain_context():
            try:
                return self.domain.repository_for(aggregate_cls).get(key).to_document()
            except (ObjectNotFoundError, ValidationError):
                raise
            except Exception as exc:
                logger.error("document_store_read_failed", collection=collection, key=key, error=str(exc))
                raise PersistenceError("document-store", cause=exc) from exc

    def set(self, collection: str, key: str, document: dict, merge: bool = False) -> None:
        aggregate_cls = self._aggregate_for(collection)
        with self.domain.domain_context():
            repo = self.domain.repository_for(aggregate_cls)
            try:
                try:
                    existing = repo.get(key)
                except ObjectNotFoundError:
                    existing = None

                if collection == ORDERS:
                    if existing is not None:
                        raise PersistenceError("document-store", cause="orders are append-only")
                    repo.add(OrderRecord.from_document(document, order_id=key))
                    return

                if existing is None:
                    repo.add(Cart.from_document(document, owner_key=key))
                    return

                # Replace the lines on the stored aggregate so removed lines
                # are deleted from the provider as well.
                if "lines" in document or not merge:
                    existing.replace_lines(document.get("lines", []))
                if "is_guest" in document:
                    existing.is_guest = document["is_guest"]
                repo.add(existing)
            except (PersistenceError, ValidationError):
                raise
            except Exception as exc:
                logger.error("document_store_write_failed", collection=collection, key=key, error=str(exc))
                raise PersistenceError("document-store", cause=exc) from exc

    def add(self, collection: str, document: dict) -> str:
        aggregate_cls = self._aggregate_for(collection)
        with self.domain.domain_context():
            try:
                if aggregate_cls is OrderRecord:
                    record = OrderRecord.from_document({k: v for k, v in document.items() if k != "id"})
                    self.domain.repository_for(OrderRecord).add(record)
                    return str(record.id)

                cart = Cart.from_document(document)
                self.domain.repository_for(Cart).add(cart)
                return str(cart.owner_key)
            except ValidationError:
                raise
            except Exception as exc:
                logger.error("document_store_write_failed", collection=collection, error=str(exc))
                raise PersistenceError("document-store", cause=exc) from exc
