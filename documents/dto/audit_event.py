"""Audit event DTO for the signing ledger.

Events are immutable once built and only ever appended; the audit store
never updates or deletes them.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Union, List
from enum import Enum

from core.helpers.date_time_helper import from_iso, to_iso
from documents.enum.document_status import ActorType
from documents.exceptions.errors import ValidationError


class AuditAction(str, Enum):
    """Closed vocabulary of audited actions. New kinds are added here, never passed as text."""

    # Owner side
    DOCUMENT_CREATED = "document_created"
    DOCUMENT_VIEWED = "document_viewed"
    DOCUMENT_SENT = "document_sent"
    DOCUMENT_DOWNLOADED = "document_downloaded"
    LINK_SHARED = "link_shared"
    SIGNATURE_PLACED = "signature_placed"

    # Signer side
    SIGNER_VIEWED = "signer_viewed"
    SIGNER_SIGNED = "signer_signed"
    SIGNER_REJECTED = "signer_rejected"

    # System
    SIGNED_PDF_GENERATED = "signed_pdf_generated"


MetadataValue = Union[str, int, float, bool, None, List[str]]


def validate_metadata(metadata: Optional[Mapping[str, Any]]) -> Dict[str, MetadataValue]:
    """
    Check the opaque payload: string keys, scalar leaves or lists of strings.

    Raises:
        ValidationError: for nested structures or non-string keys
    """
    result: Dict[str, MetadataValue] = {}
    for key, value in (metadata or {}).items():
        if not isinstance(key, str):
            raise ValidationError(f"Audit metadata key must be a string: {key!r}")
        if value is None or isinstance(value, (str, int, float, bool)):
            result[key] = value
        elif isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
            result[key] = list(value)
        else:
            raise ValidationError(f"Unsupported audit metadata value for {key!r}: {type(value).__name__}")
    return result


@dataclass(frozen=True)
class AuditEvent:
    """
    Immutable audit ledger entry.

    ``sequence`` is assigned by the recorder at build time and breaks ties
    between events sharing a timestamp (insertion order).
    """

    event_id: str
    document_id: str
    action: AuditAction
    actor: str
    """Email of the owner/signer, or ``"system"``"""

    actor_type: ActorType
    timestamp: datetime
    sequence: int = 0
    metadata: Dict[str, MetadataValue] = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "document_id": self.document_id,
            "action": self.action.value,
            "actor": self.actor,
            "actor_type": self.actor_type.value,
            "timestamp": to_iso(self.timestamp),
            "sequence": self.sequence,
            "metadata": dict(self.metadata),
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuditEvent":
        return cls(
            event_id=data["event_id"],
            document_id=data["document_id"],
            action=AuditAction(data["action"]),
            actor=data["actor"],
            actor_type=ActorType(data["actor_type"]),
            timestamp=from_iso(data["timestamp"]),
            sequence=int(data.get("sequence") or 0),
            metadata=dict(data.get("metadata") or {}),
            ip_address=data.get("ip_address"),
            user_agent=data.get("user_agent"),
        )

    def to_log_string(self) -> str:
        """Human-readable one-liner for the application log."""
        parts = [
            f"[{to_iso(self.timestamp)}]",
            self.action.value,
            f"by {self.actor} ({self.actor_type.value})",
            f"on {self.document_id}",
        ]
        if self.ip_address:
            parts.append(f"from {self.ip_address}")
        return " ".join(parts)
