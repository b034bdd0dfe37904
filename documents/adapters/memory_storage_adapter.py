"""In-memory implementation of StorageAdapter (tests, previews)."""

from __future__ import annotations
from threading import Lock
from typing import Dict

from documents.adapters.storage_adapter import StorageAdapter
from documents.exceptions.errors import NotFoundError


class InMemoryStorageAdapter(StorageAdapter):

    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}
        self._lock = Lock()

    def read(self, path: str) -> bytes:
        with self._lock:
            if path not in self._blobs:
                raise NotFoundError(f"File not found: {path}")
            return self._blobs[path]

    def write(self, path: str, data: bytes) -> str:
        with self._lock:
            self._blobs[path] = bytes(data)
        return path

    def delete(self, path: str) -> None:
        with self._lock:
            self._blobs.pop(path, None)

    def exists(self, path: str) -> bool:
        with self._lock:
            return path in self._blobs
