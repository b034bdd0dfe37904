"""Repository layer for documents module.

Provides data access abstractions.
"""

from documents.repository.document_repository import DocumentRepository
from documents.repository.memory_document_repository import InMemoryDocumentRepository
from documents.repository.sqlite_document_repository import SQLiteDocumentRepository
from documents.repository.audit_repository import AuditStore, InMemoryAuditStore
from documents.repository.sqlite_audit_repository import SQLiteAuditStore

__all__ = [
    "DocumentRepository",
    "InMemoryDocumentRepository",
    "SQLiteDocumentRepository",
    "AuditStore",
    "InMemoryAuditStore",
    "SQLiteAuditStore",
]
