"""Services layer for documents module.

Signing workflow state machine, token authority, audit recorder and policy.
"""

from documents.services.audit_service import AuditRecorder
from documents.services.document_locks import DocumentLocks
from documents.services.policy.workflow_policy import WorkflowPolicy
from documents.services.signing_service import SigningService
from documents.services.token_authority import TokenAuthority

__all__ = [
    "AuditRecorder",
    "DocumentLocks",
    "WorkflowPolicy",
    "SigningService",
    "TokenAuthority",
]
