"""Storage adapter abstraction.

Defines the interface for artifact (blob) storage.
Allows switching between local filesystem, S3, Azure Blob, etc.
"""

from __future__ import annotations
from abc import ABC, abstractmethod


class StorageAdapter(ABC):
    """Abstract blob store for original and signed artifacts."""

    @abstractmethod
    def read(self, path: str) -> bytes:
        """
        Read a stored artifact.

        Args:
            path: Store-relative path/URI

        Raises:
            NotFoundError: if nothing is stored at ``path``
        """
        raise NotImplementedError

    @abstractmethod
    def write(self, path: str, data: bytes) -> str:
        """
        Store (or overwrite) an artifact.

        Returns:
            The path/URI under which it was stored
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, path: str) -> None:
        """Remove an artifact; missing paths are ignored."""
        raise NotImplementedError

    @abstractmethod
    def exists(self, path: str) -> bool:
        raise NotImplementedError
