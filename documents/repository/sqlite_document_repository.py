"""SQLite implementation of DocumentRepository.

Lightweight repository - only CRUD and simple queries.
Business logic is in the services layer.

The aggregate (signers + fields) is stored as one JSON body next to the
indexed columns; signer tokens are mirrored into ``signer_tokens`` whose
primary key enforces global token uniqueness.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, List, Optional

from core.common.db_interface import SQLiteRepository
from core.helpers.date_time_helper import to_iso
from documents.enum.document_status import DocumentStatus
from documents.exceptions.errors import ConflictError, NotFoundError
from documents.models.document_models import Document
from documents.models.mappers import document_from_dict, document_to_dict
from signature.logic.encryption import SignatureCipher

logger = logging.getLogger(__name__)


def _escape_like(text: str) -> str:
    """Make ``%`` and ``_`` match literally in a LIKE pattern."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteDocumentRepository(SQLiteRepository):
    """SQLite backend for signing documents with optimistic versioning."""

    schema = """
        CREATE TABLE IF NOT EXISTS documents (
            doc_id TEXT PRIMARY KEY,
            owner TEXT NOT NULL,
            title TEXT NOT NULL,
            status TEXT NOT NULL,
            version INTEGER NOT NULL,
            created_at TEXT NOT NULL,
            expires_at TEXT NOT NULL,
            body TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_documents_owner
            ON documents(owner, created_at);

        CREATE TABLE IF NOT EXISTS signer_tokens (
            token TEXT PRIMARY KEY,
            doc_id TEXT NOT NULL REFERENCES documents(doc_id) ON DELETE CASCADE
        );
    """

    def __init__(self, db_path: Path | str, *, cipher: Optional[SignatureCipher] = None) -> None:
        """
        Args:
            db_path: Path to SQLite database file (``":memory:"`` for tests)
            cipher: Encrypts signature images at rest when given
        """
        self._cipher = cipher
        super().__init__(db_path, foreign_keys=True)

    # =========================================================================
    # Row mapping
    # =========================================================================

    def _seal(self, value: str) -> str:
        return self._cipher.seal(value) if self._cipher else value

    def _unseal(self, value: str) -> str:
        return self._cipher.unseal(value) if self._cipher else value

    def _row_to_document(self, row: sqlite3.Row) -> Document:
        return document_from_dict(
            doc_id=row["doc_id"],
            owner=row["owner"],
            status=row["status"],
            version=int(row["version"]),
            body=json.loads(row["body"]),
            unseal=self._unseal,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def load(self, doc_id: str) -> Document:
        row = self.fetch_one("SELECT * FROM documents WHERE doc_id = ?", (doc_id,))
        if row is None:
            raise NotFoundError(f"Document not found: {doc_id}")
        return self._row_to_document(row)

    def find_by_token(self, token: str) -> Document:
        row = self.fetch_one(
            """
            SELECT d.* FROM documents d
            JOIN signer_tokens t ON t.doc_id = d.doc_id
            WHERE t.token = ?
            """,
            (token or "",),
        )
        if row is None:
            raise NotFoundError("Signing link not found.")
        return self._row_to_document(row)

    def list_by_owner(
        self,
        owner: str,
        *,
        status: Optional[DocumentStatus] = None,
        search: Optional[str] = None,
    ) -> List[Document]:
        query = "SELECT * FROM documents WHERE owner = ?"
        params: List[Any] = [owner]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        if search and search.strip():
            query += " AND LOWER(title) LIKE ? ESCAPE '\\'"
            params.append(f"%{_escape_like(search.strip().lower())}%")
        query += " ORDER BY created_at DESC"
        return [self._row_to_document(r) for r in self.fetch_all(query, tuple(params))]

    def list_all(self) -> List[Document]:
        return [self._row_to_document(r) for r in self.fetch_all("SELECT * FROM documents")]

    # =========================================================================
    # Writes
    # =========================================================================

    def save(self, document: Document) -> Document:
        body = json.dumps(document_to_dict(document, seal=self._seal))
        new_version = document.version + 1
        columns = (
            document.owner,
            document.title,
            document.status.value,
            new_version,
            to_iso(document.created_at),
            to_iso(document.expires_at),
            body,
        )

        try:
            with self.transaction() as conn:
                if document.version == 0:
                    conn.execute(
                        """
                        INSERT INTO documents
                            (owner, title, status, version, created_at, expires_at, body, doc_id)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        columns + (document.id,),
                    )
                else:
                    cur = conn.execute(
                        """
                        UPDATE documents
                        SET owner = ?, title = ?, status = ?, version = ?,
                            created_at = ?, expires_at = ?, body = ?
                        WHERE doc_id = ? AND version = ?
                        """,
                        columns + (document.id, document.version),
                    )
                    if cur.rowcount != 1:
                        raise ConflictError(
                            f"Document {document.id} was modified concurrently "
                            f"(expected version {document.version})"
                        )

                conn.execute("DELETE FROM signer_tokens WHERE doc_id = ?", (document.id,))
                conn.executemany(
                    "INSERT INTO signer_tokens (token, doc_id) VALUES (?, ?)",
                    [(s.token, document.id) for s in document.signers if s.token],
                )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"Could not save document {document.id}: {exc}") from exc

        document.version = new_version
        logger.debug("Saved document %s at version %s", document.id, new_version)
        return document

    def delete(self, doc_id: str) -> None:
        with self.transaction() as conn:
            cur = conn.execute("DELETE FROM documents WHERE doc_id = ?", (doc_id,))
        if cur.rowcount == 0:
            raise NotFoundError(f"Document not found: {doc_id}")
