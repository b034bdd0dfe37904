"""Filesystem implementation of StorageAdapter.

Stores artifacts below a root directory; paths are root-relative.
"""

from __future__ import annotations
from pathlib import Path
import os

from documents.adapters.storage_adapter import StorageAdapter
from documents.exceptions.errors import NotFoundError, ValidationError


class FilesystemStorageAdapter(StorageAdapter):
    """Local filesystem implementation of StorageAdapter."""

    def __init__(self, root_path: str | Path):
        """
        Initialize filesystem storage.

        Args:
            root_path: Root directory for artifact storage
        """
        self._root = Path(root_path).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        target = (self._root / path).resolve()
        if target != self._root and self._root not in target.parents:
            raise ValidationError(f"Path escapes storage root: {path}")
        return target

    def read(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFoundError(f"File not found: {path}")
        return target.read_bytes()

    def write(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        # write-then-rename so readers never see a partial artifact
        tmp = target.with_name(target.name + ".part")
        tmp.write_bytes(data)
        os.replace(tmp, target)

        return path

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        if target.is_file():
            target.unlink()

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()
