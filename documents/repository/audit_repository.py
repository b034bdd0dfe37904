"""Audit store protocol and the in-process implementation.

Stores only ever append; ``query`` returns newest first, ties broken by
reverse insertion order.
"""

from __future__ import annotations

from threading import Lock
from typing import List, Protocol, Tuple

from documents.dto.audit_event import AuditEvent


class AuditStore(Protocol):
    def append(self, event: AuditEvent) -> None:
        """Persist one event. May raise; the recorder absorbs failures."""
        ...

    def query(self, document_id: str, limit: int = 100) -> List[AuditEvent]:
        """Events of one document, descending by timestamp."""
        ...


class InMemoryAuditStore:
    """List-backed audit store."""

    def __init__(self) -> None:
        self._events: List[Tuple[int, AuditEvent]] = []
        self._lock = Lock()

    def append(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append((len(self._events), event))

    def query(self, document_id: str, limit: int = 100) -> List[AuditEvent]:
        with self._lock:
            rows = [(i, e) for i, e in self._events if e.document_id == document_id]
        rows.sort(key=lambda r: (r[1].timestamp, r[0]), reverse=True)
        return [e for _, e in rows[:max(0, limit)]]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
