"""Documents feature exceptions.

Every error carries a ``kind`` so the calling layer can map it to a
user-facing response without inspecting messages.
"""
from __future__ import annotations


class DocumentsError(Exception):
    """Base exception for the documents feature."""

    kind = "error"


class ValidationError(DocumentsError):
    """Missing or malformed input (e.g. sending without signers)."""

    kind = "validation"


class NotFoundError(DocumentsError):
    """Document, signer, token or blob does not exist."""

    kind = "not_found"


class ConflictError(DocumentsError):
    """Duplicate signer, repeated signature or a lost optimistic-version race."""

    kind = "conflict"


class ExpiredError(DocumentsError):
    """Signing token past its expiry."""

    kind = "expired"


class DocumentExpiredError(ExpiredError):
    """Document past its ``expires_at`` or already marked expired."""

    kind = "document_expired"


class StateError(DocumentsError):
    """Operation not valid for the current document or signer state."""

    kind = "state"
