"""Document repository protocol (interface).

Defines the contract for document data access without implementation details.
"""

from __future__ import annotations
from typing import Protocol, List, Optional

from documents.enum.document_status import DocumentStatus
from documents.models.document_models import Document


class DocumentRepository(Protocol):
    """Protocol for document data access.

    ``save`` implements optimistic concurrency: the document's ``version``
    must match the stored one, otherwise ``ConflictError`` is raised. On
    success the stored and the passed document carry the incremented version.
    """

    def load(self, doc_id: str) -> Document:
        """
        Get a document by ID (a private copy; mutate and ``save`` it).

        Raises:
            NotFoundError: unknown ID
        """
        ...

    def find_by_token(self, token: str) -> Document:
        """
        Get the document holding a signer with this token.

        Raises:
            NotFoundError: no signer carries the token
        """
        ...

    def save(self, document: Document) -> Document:
        """
        Insert (version 0) or update (version check) a document.

        Raises:
            ConflictError: stored version differs or the token is already used elsewhere
        """
        ...

    def delete(self, doc_id: str) -> None:
        """Remove a document; ``NotFoundError`` if absent."""
        ...

    def list_by_owner(
            self,
            owner: str,
            *,
            status: Optional[DocumentStatus] = None,
            search: Optional[str] = None
    ) -> List[Document]:
        """
        List an owner's documents, newest first.

        Args:
            owner: Owner reference
            status: Filter by status
            search: Case-insensitive substring of the title
        """
        ...

    def list_all(self) -> List[Document]:
        """All documents (maintenance sweeps)."""
        ...
