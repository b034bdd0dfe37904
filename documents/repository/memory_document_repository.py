"""In-process implementation of DocumentRepository.

Stores deep copies so callers never share state with the store; used by
tests and single-process deployments.
"""

from __future__ import annotations

import copy
import logging
from threading import RLock
from typing import Dict, List, Optional

from documents.enum.document_status import DocumentStatus
from documents.exceptions.errors import ConflictError, NotFoundError
from documents.models.document_models import Document

logger = logging.getLogger(__name__)


class InMemoryDocumentRepository:
    """Dictionary-backed document store with version checks."""

    def __init__(self) -> None:
        self._docs: Dict[str, Document] = {}
        self._tokens: Dict[str, str] = {}
        self._lock = RLock()

    def load(self, doc_id: str) -> Document:
        with self._lock:
            doc = self._docs.get(doc_id)
            if doc is None:
                raise NotFoundError(f"Document not found: {doc_id}")
            return copy.deepcopy(doc)

    def find_by_token(self, token: str) -> Document:
        with self._lock:
            doc_id = self._tokens.get(token or "")
            if doc_id is None:
                raise NotFoundError("Signing link not found.")
            return copy.deepcopy(self._docs[doc_id])

    def save(self, document: Document) -> Document:
        with self._lock:
            current = self._docs.get(document.id)
            stored_version = current.version if current else 0
            if document.version != stored_version:
                raise ConflictError(
                    f"Document {document.id} was modified concurrently "
                    f"(expected version {document.version}, stored {stored_version})"
                )
            self._check_tokens(document)

            document.version = stored_version + 1
            self._drop_tokens(document.id)
            self._docs[document.id] = copy.deepcopy(document)
            for signer in document.signers:
                if signer.token:
                    self._tokens[signer.token] = document.id
            logger.debug("Saved document %s at version %s", document.id, document.version)
            return document

    def delete(self, doc_id: str) -> None:
        with self._lock:
            if doc_id not in self._docs:
                raise NotFoundError(f"Document not found: {doc_id}")
            self._drop_tokens(doc_id)
            del self._docs[doc_id]

    def list_by_owner(
        self,
        owner: str,
        *,
        status: Optional[DocumentStatus] = None,
        search: Optional[str] = None,
    ) -> List[Document]:
        needle = (search or "").strip().lower()
        with self._lock:
            docs = [
                d for d in self._docs.values()
                if d.owner == owner
                and (status is None or d.status == status)
                and (not needle or needle in d.title.lower())
            ]
            docs.sort(key=lambda d: d.created_at, reverse=True)
            return [copy.deepcopy(d) for d in docs]

    def list_all(self) -> List[Document]:
        with self._lock:
            return [copy.deepcopy(d) for d in self._docs.values()]

    # ------------------------------------------------------------------ #
    def _check_tokens(self, document: Document) -> None:
        seen = set()
        for signer in document.signers:
            if not signer.token:
                continue
            if signer.token in seen:
                raise ConflictError(f"Duplicate signer token in document {document.id}")
            seen.add(signer.token)
            owner_id = self._tokens.get(signer.token)
            if owner_id is not None and owner_id != document.id:
                raise ConflictError("Signer token already used by another document")

    def _drop_tokens(self, doc_id: str) -> None:
        for token in [t for t, d in self._tokens.items() if d == doc_id]:
            del self._tokens[token]
