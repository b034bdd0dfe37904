"""Read-side DTOs returned by the signing service."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from documents.enum.document_status import DocumentStatus, SignerStatus
from documents.models.document_models import SignatureField


@dataclass(frozen=True)
class SigningLink:
    email: str
    link: str


@dataclass(frozen=True)
class SignerView:
    """What a token holder may see: never the token itself, never other signers."""

    document_id: str
    title: str
    description: str
    document_status: DocumentStatus
    expires_at: datetime
    original_path: str
    email: str
    name: Optional[str]
    signer_status: SignerStatus
    fields: List[SignatureField] = field(default_factory=list)


@dataclass(frozen=True)
class DocumentStats:
    total: int = 0
    pending: int = 0
    signed: int = 0
    rejected: int = 0


@dataclass(frozen=True)
class SignerInput:
    """Entry of a bulk signer edit."""

    email: str
    name: Optional[str] = None


@dataclass(frozen=True)
class Download:
    filename: str
    content: bytes
    mimetype: str = "application/pdf"
