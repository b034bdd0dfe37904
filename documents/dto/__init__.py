"""Data Transfer Objects for documents module.

DTOs are immutable data containers for transferring data between layers.
"""

from documents.dto.audit_event import AuditEvent, AuditAction
from documents.dto.request_context import RequestContext, SYSTEM_CONTEXT
from documents.dto.signing_link import (
    Download,
    DocumentStats,
    SignerInput,
    SignerView,
    SigningLink,
)

__all__ = [
    "AuditEvent",
    "AuditAction",
    "RequestContext",
    "SYSTEM_CONTEXT",
    "Download",
    "DocumentStats",
    "SignerInput",
    "SignerView",
    "SigningLink",
]
