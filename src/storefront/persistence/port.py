"""Persistence ports — abstract interfaces for the cart's stores.

The cart engine programs against these ports; adapters are chosen when a
session is opened. Adapters raise ``PersistenceError`` when the backing
store is unreachable or refuses the request.
"""

from abc import ABC, abstractmethod

CARTS = "carts"
ORDERS = "orders"


class DocumentStorePort(ABC):
    """A hosted, schemaless key-document database."""

    @abstractmethod
    def get(self, collection: str, key: str) -> dict:
        """Return the document stored at ``collection/key``.

        Raises:
            ObjectNotFoundError: if there is no such document.
        """
        ...

    @abstractmethod
    def set(self, collection: str, key: str, document: dict, merge: bool = False) -> None:
        """Write a document. With ``merge=True`` only the given top-level fields are replaced."""
        ...

    @abstractmethod
    def add(self, collection: str, document: dict) -> str:
        """Append a new document under a generated key and return that key."""
        ...


class LocalCachePort(ABC):
    """Synchronous, size-bounded string storage local to one browser/session."""

    @abstractmethod
    def get(self, key: str) -> str | None: ...

    @abstractmethod
    def set(self, key: str, value: str) -> None: ...

    @abstractmethod
    def remove(self, key: str) -> None: ...
