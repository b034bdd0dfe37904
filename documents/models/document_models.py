"""
Document domain models for the signing workflow.

Keeps the data layer independent from storage details. A ``Document`` is the
aggregate root: signers and fields are only ever mutated through it and are
saved together as one unit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from documents.enum.document_status import DocumentStatus, SignerStatus


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@dataclass(frozen=True)
class FileRef:
    """Location of the original artifact in the blob store."""

    path: str
    size: int = 0
    mimetype: str = "application/pdf"
    filename: str = ""
    original_name: str = ""


@dataclass(frozen=True)
class SignedFileRef:
    """Location of the generated signed artifact."""

    path: str
    generated_at: datetime
    filename: str = ""


@dataclass(frozen=True)
class SignatureField:
    """
    Placement hint for one signature (points, top-left origin, 1-based page).
    Carries no mutable state.
    """

    page: int
    x: float
    y: float
    signer_email: str
    width: float = 200.0
    height: float = 60.0
    label: str = "Signature"
    required: bool = True
    id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self) -> None:
        object.__setattr__(self, "signer_email", normalize_email(self.signer_email))


@dataclass
class Signer:
    email: str
    name: Optional[str] = None
    status: SignerStatus = SignerStatus.PENDING
    token: str = ""
    token_expiry: Optional[datetime] = None

    signature_image: Optional[str] = None   # data URL, present once signed
    signed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    # captured at signing/rejection time
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    def __post_init__(self) -> None:
        self.email = normalize_email(self.email)


@dataclass
class Document:
    id: str
    title: str
    owner: str
    original: FileRef
    created_at: datetime
    expires_at: datetime
    status: DocumentStatus = DocumentStatus.DRAFT
    description: str = ""
    signers: List[Signer] = field(default_factory=list)
    fields: List[SignatureField] = field(default_factory=list)
    signed_file: Optional[SignedFileRef] = None
    updated_at: Optional[datetime] = None

    # optimistic concurrency counter, owned by the document store
    version: int = 0

    def find_signer(self, email: str) -> Optional[Signer]:
        wanted = normalize_email(email)
        for signer in self.signers:
            if signer.email == wanted:
                return signer
        return None

    def signer_for_token(self, token: str) -> Optional[Signer]:
        if not token:
            return None
        for signer in self.signers:
            if signer.token == token:
                return signer
        return None

    def fields_for(self, email: str) -> List[SignatureField]:
        wanted = normalize_email(email)
        return [f for f in self.fields if f.signer_email == wanted]

    def is_past_expiry(self, now: datetime) -> bool:
        return self.status == DocumentStatus.EXPIRED or now > self.expires_at
