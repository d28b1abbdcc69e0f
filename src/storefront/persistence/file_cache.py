"""File-backed local cache — one file per key inside a cache directory.

Plays the role of browser local storage for a session that runs outside a
browser: values survive restarts of the process and the directory is
bounded by a byte quota.
"""

import os
import threading
from pathlib import Path
from urllib.parse import quote

import structlog

from storefront.exceptions import PersistenceError
from storefront.persistence.port import LocalCachePort

logger = structlog.get_logger(__name__)


class FileLocalCache(LocalCachePort):
    def __init__(self, directory, quota_bytes: int | None = None):
        self.directory = Path(directory)
        self.quota_bytes = quota_bytes
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json"

    def _used_bytes(self, excluding: Path) -> int:
        if not self.directory.exists():
            return 0
        return sum(p.stat().st_size for p in self.directory.glob("*.json") if p != excluding)

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("local_cache_read_failed", key=key, error=str(exc))
            return None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        encoded = value.encode("utf-8")

        with self._lock:
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                if self.quota_bytes is not None and self._used_bytes(path) + len(encoded) > self.quota_bytes:
                    raise PersistenceError("local-cache", cause="quota exceeded")

                tmp_path = path.with_suffix(".tmp")
                tmp_path.write_bytes(encoded)
                os.replace(tmp_path, path)
            except OSError as exc:
                raise PersistenceError("local-cache", cause=exc) from exc

    def remove(self, key: str) -> None:
        with self._lock:
            try:
                self._path(key).unlink(missing_ok=True)
            except OSError as exc:
                raise PersistenceError("local-cache", cause=exc) from exc
