"""Document, signer and actor enumerations."""
from __future__ import annotations

from enum import Enum


class DocumentStatus(str, Enum):
    """Document lifecycle statuses (derived from signer statuses after send)."""

    DRAFT = "draft"
    PENDING = "pending"
    PARTIALLY_SIGNED = "partially_signed"
    SIGNED = "signed"
    REJECTED = "rejected"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.SIGNED, DocumentStatus.REJECTED, DocumentStatus.EXPIRED)


class SignerStatus(str, Enum):
    """Per-signer status; ``SIGNED`` and ``REJECTED`` are terminal."""

    PENDING = "pending"
    VIEWED = "viewed"
    SIGNED = "signed"
    REJECTED = "rejected"


class ActorType(str, Enum):
    OWNER = "owner"
    SIGNER = "signer"
    SYSTEM = "system"
