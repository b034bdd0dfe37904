"""Adapters for external collaborators (blob storage)."""

from documents.adapters.storage_adapter import StorageAdapter
from documents.adapters.filesystem_storage_adapter import FilesystemStorageAdapter
from documents.adapters.memory_storage_adapter import InMemoryStorageAdapter

__all__ = [
    "StorageAdapter",
    "FilesystemStorageAdapter",
    "InMemoryStorageAdapter",
]
