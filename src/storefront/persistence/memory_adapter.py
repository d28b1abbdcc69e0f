"""In-memory store adapters — deterministic stores for testing and development.

Both adapters can be told to fail, which is how the engine's fallback and
warning paths are exercised.
"""

import copy
import threading
from uuid import uuid4

from protean.exceptions import ObjectNotFoundError

from storefront.exceptions import PersistenceError
from storefront.persistence.port import DocumentStorePort, LocalCachePort


class MemoryDocumentStore(DocumentStorePort):
    """Document store that keeps deep copies of documents in a dict."""

    def __init__(self):
        self.collections: dict[str, dict[str, dict]] = {}
        self.writes: list[tuple[str, str, dict]] = []
        self.should_succeed = True
        self.failure_reason = "permission-denied"
        self._lock = threading.Lock()

    def configure(self, should_succeed: bool = True, failure_reason: str = "permission-denied"):
        """Configure the fake store behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def _check(self):
        if not self.should_succeed:
            raise PersistenceError("document-store", cause=self.failure_reason)

    def get(self, collection: str, key: str) -> dict:
        self._check()
        with self._lock:
            try:
                return copy.deepcopy(self.collections[collection][key])
            except KeyError:
                raise ObjectNotFoundError(f"`{collection}/{key}` does not exist") from None

    def set(self, collection: str, key: str, document: dict, merge: bool = False) -> None:
        self._check()
        with self._lock:
            documents = self.collections.setdefault(collection, {})
            if merge and key in documents:
                documents[key] = {**documents[key], **copy.deepcopy(document)}
            else:
                documents[key] = copy.deepcopy(document)
            self.writes.append((collection, key, copy.deepcopy(documents[key])))

    def add(self, collection: str, document: dict) -> str:
        self._check()
        key = str(uuid4())
        with self._lock:
            self.collections.setdefault(collection, {})[key] = {**copy.deepcopy(document), "id": key}
            self.writes.append((collection, key, copy.deepcopy(document)))
        return key


class MemoryLocalCache(LocalCachePort):
    """Local cache backed by a dict, with an optional byte quota."""

    def __init__(self, quota_bytes: int | None = None):
        self.items: dict[str, str] = {}
        self.quota_bytes = quota_bytes
        self.should_succeed = True
        self.failure_reason = "storage unavailable"

    def configure(self, should_succeed: bool = True, failure_reason: str = "storage unavailable"):
        """Configure the fake cache behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def get(self, key: str) -> str | None:
        return self.items.get(key)

    def set(self, key: str, value: str) -> None:
        if not self.should_succeed:
            raise PersistenceError("local-cache", cause=self.failure_reason)

        if self.quota_bytes is not None:
            used = sum(len(k) + len(v) for k, v in self.items.items() if k != key)
            if used + len(key) + len(value) > self.quota_bytes:
                raise PersistenceError("local-cache", cause="quota exceeded")

        self.items[key] = value

    def remove(self, key: str) -> None:
        self.items.pop(key, None)
