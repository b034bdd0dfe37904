"""Signing workflow service.

Orchestrates the document/signer state machine:

- validates transitions via :class:`WorkflowPolicy`
- mints tokens and builds links via :class:`TokenAuthority`
- records every state-changing action via :class:`AuditRecorder`
- burns the signed artifact via :class:`PdfSigner` once all signers signed

Every mutation is a load -> mutate -> save cycle over the whole document,
run under the document's lock; the store's version check rejects writers
that bypass this process.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar
from uuid import uuid4

from core.common.clock import Clock
from documents.adapters.storage_adapter import StorageAdapter
from documents.dto.audit_event import AuditAction, AuditEvent
from documents.dto.request_context import RequestContext, SYSTEM_CONTEXT
from documents.dto.signing_link import Download, DocumentStats, SignerInput, SignerView, SigningLink
from documents.enum.document_status import ActorType, DocumentStatus, SignerStatus
from documents.exceptions.errors import (
    ConflictError,
    DocumentExpiredError,
    ExpiredError,
    NotFoundError,
    ValidationError,
)
from documents.models.document_models import (
    Document,
    FileRef,
    SignatureField,
    SignedFileRef,
    Signer,
    normalize_email,
)
from documents.repository.document_repository import DocumentRepository
from documents.services.audit_service import AuditRecorder
from documents.services.document_locks import DocumentLocks
from documents.services.policy.workflow_policy import WorkflowPolicy
from documents.services.token_authority import TokenAuthority
from signature.logic.pdf_signer import PdfSigner

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DOCUMENT_TTL = timedelta(days=30)
DEFAULT_REJECTION_REASON = "No reason provided"
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 1000


class SigningService:
    """
    Document/signer state machine.

    Args:
        repository: Document store (versioned saves)
        storage: Blob store for original and signed artifacts
        recorder: Best-effort audit recorder
        tokens: Token authority (minting, resolution, links)
        clock: Time source
        pdf_signer: Artifact generator
        document_ttl: Lifetime of a document from creation
        default_rejection_reason: Stored when a signer rejects without reason
        signed_dir: Blob-store prefix for generated artifacts
    """

    def __init__(
        self,
        *,
        repository: DocumentRepository,
        storage: StorageAdapter,
        recorder: AuditRecorder,
        tokens: TokenAuthority,
        clock: Clock,
        pdf_signer: Optional[PdfSigner] = None,
        document_ttl: timedelta = DEFAULT_DOCUMENT_TTL,
        default_rejection_reason: str = DEFAULT_REJECTION_REASON,
        signed_dir: str = "signed",
        locks: Optional[DocumentLocks] = None,
    ) -> None:
        self._repo = repository
        self._storage = storage
        self._audit = recorder
        self._tokens = tokens
        self._clock = clock
        self._pdf = pdf_signer or PdfSigner()
        self._document_ttl = document_ttl
        self._default_reason = default_rejection_reason
        self._signed_dir = signed_dir.strip("/")
        self._locks = locks or DocumentLocks()
        self._policy = WorkflowPolicy()

    @property
    def storage(self) -> StorageAdapter:
        return self._storage

    @property
    def recorder(self) -> AuditRecorder:
        return self._audit

    # =========================================================================
    # Helpers
    # =========================================================================

    def _mutate(self, doc_id: str, change: Callable[[Document], T]) -> Tuple[Document, T]:
        """Load -> change -> save under the document lock."""
        with self._locks.hold(doc_id):
            doc = self._repo.load(doc_id)
            result = change(doc)
            doc.updated_at = self._clock.now()
            self._repo.save(doc)
            return doc, result

    def _recompute(self, doc: Document) -> DocumentStatus:
        doc.status = self._policy.derive_status(doc.status, [s.status for s in doc.signers])
        return doc.status

    def _new_signer(self, email: str, name: Optional[str]) -> Signer:
        email = normalize_email(email)
        if not email or "@" not in email:
            raise ValidationError(f"A valid signer email is required (got {email!r})")
        return self._tokens.issue(Signer(email=email, name=(name or None)))

    def _owner_event(self, doc: Document, action: AuditAction, actor: Optional[str],
                     ctx: RequestContext, metadata: Optional[dict] = None) -> AuditEvent:
        return self._audit.record(
            document_id=doc.id,
            action=action,
            actor=actor or doc.owner,
            actor_type=ActorType.OWNER,
            metadata=metadata,
            ctx=ctx,
        )

    def _signer_event(self, doc: Document, signer: Signer, action: AuditAction,
                      ctx: RequestContext, metadata: Optional[dict] = None) -> AuditEvent:
        return self._audit.record(
            document_id=doc.id,
            action=action,
            actor=signer.email,
            actor_type=ActorType.SIGNER,
            metadata=metadata,
            ctx=ctx,
        )

    @staticmethod
    def _validate_title(title: Optional[str]) -> str:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Document title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(f"Title cannot exceed {MAX_TITLE_LENGTH} characters")
        return title

    @staticmethod
    def _validate_description(description: Optional[str]) -> str:
        description = (description or "").strip()
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters")
        return description

    @staticmethod
    def _validate_fields(fields: Sequence[SignatureField]) -> List[SignatureField]:
        for f in fields:
            if f.page < 1:
                raise ValidationError(f"Field {f.id}: page numbers start at 1")
            if f.width <= 0 or f.height <= 0:
                raise ValidationError(f"Field {f.id}: width and height must be positive")
            if not f.signer_email:
                raise ValidationError(f"Field {f.id}: signer email is required")
        return list(fields)

    # =========================================================================
    # Owner side: documents
    # =========================================================================

    def create_document(
        self,
        *,
        owner: str,
        title: str,
        original: FileRef,
        description: str = "",
        fields: Sequence[SignatureField] = (),
        actor: Optional[str] = None,
        ctx: RequestContext = SYSTEM_CONTEXT,
    ) -> Document:
        """Register an uploaded artifact as a new ``draft`` document."""
        if not owner:
            raise ValidationError("Document owner is required")
        if not original or not original.path:
            raise ValidationError("An original file is required")
        now = self._clock.now()
        doc = Document(
            id=str(uuid4()),
            title=self._validate_title(title),
            owner=owner,
            original=original,
            created_at=now,
            updated_at=now,
            expires_at=now + self._document_ttl,
            status=DocumentStatus.DRAFT,
            description=self._validate_description(description),
            fields=self._validate_fields(fields),
        )
        self._repo.save(doc)
        logger.info(f"Document {doc.id} created by {owner}")
        self._owner_event(doc, AuditAction.DOCUMENT_CREATED, actor, ctx,
                          {"title": doc.title, "file_size": original.size})
        return doc

    def get_document(self, doc_id: str, *, actor: Optional[str] = None,
                     ctx: RequestContext = SYSTEM_CONTEXT) -> Document:
        doc = self._repo.load(doc_id)
        self._owner_event(doc, AuditAction.DOCUMENT_VIEWED, actor, ctx)
        return doc

    def list_documents(
        self,
        owner: str,
        *,
        status: Optional[DocumentStatus] = None,
        search: Optional[str] = None,
    ) -> List[Document]:
        return self._repo.list_by_owner(owner, status=status, search=search)

    def stats(self, owner: str) -> DocumentStats:
        docs = self._repo.list_by_owner(owner)
        by_status = [d.status for d in docs]
        return DocumentStats(
            total=len(docs),
            pending=sum(1 for s in by_status if s in (DocumentStatus.PENDING, DocumentStatus.PARTIALLY_SIGNED)),
            signed=by_status.count(DocumentStatus.SIGNED),
            rejected=by_status.count(DocumentStatus.REJECTED),
        )

    def update_document(
        self,
        doc_id: str,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        fields: Optional[Sequence[SignatureField]] = None,
        expires_at: Optional[datetime] = None,
        signers: Optional[Sequence[SignerInput]] = None,
        actor: Optional[str] = None,
        ctx: RequestContext = SYSTEM_CONTEXT,
    ) -> Document:
        """Edit metadata; ``signers`` is a bulk replacement with merge-by-email."""

        def change(doc: Document) -> bool:
            self._policy.ensure_metadata_editable(doc.status)
            if title is not None:
                doc.title = self._validate_title(title)
            if description is not None:
                doc.description = self._validate_description(description)
            if expires_at is not None:
                doc.expires_at = expires_at
            placed = False
            if fields is not None:
                doc.fields = self._validate_fields(fields)
                placed = True
            if signers is not None:
                self._merge_signers(doc, signers)
            return placed

        doc, placed = self._mutate(doc_id, change)
        if placed:
            self._owner_event(doc, AuditAction.SIGNATURE_PLACED, actor, ctx,
                              {"fields": len(doc.fields)})
        return doc

    def delete_document(self, doc_id: str) -> None:
        with self._locks.hold(doc_id):
            doc = self._repo.load(doc_id)
            self._storage.delete(doc.original.path)
            if doc.signed_file:
                self._storage.delete(doc.signed_file.path)
            self._repo.delete(doc_id)
        logger.info(f"Document {doc_id} deleted")

    def download(self, doc_id: str, *, actor: Optional[str] = None,
                 ctx: RequestContext = SYSTEM_CONTEXT) -> Download:
        """Signed artifact if one exists, otherwise the original."""
        doc = self._repo.load(doc_id)
        if doc.signed_file:
            path = doc.signed_file.path
            filename = f"signed-{doc.title}.pdf"
        else:
            path = doc.original.path
            filename = doc.original.original_name or doc.original.filename or f"{doc.title}.pdf"
        content = self._storage.read(path)
        self._owner_event(doc, AuditAction.DOCUMENT_DOWNLOADED, actor, ctx)
        return Download(filename=filename, content=content)

    def audit_trail(self, doc_id: str, limit: Optional[int] = None) -> List[AuditEvent]:
        self._repo.load(doc_id)
        return self._audit.query(doc_id, limit)

    # =========================================================================
    # Owner side: signers
    # =========================================================================

    def add_signer(self, doc_id: str, email: str, name: Optional[str] = None) -> Document:
        def change(doc: Document) -> Signer:
            self._policy.ensure_signers_editable(doc.status)
            if doc.find_signer(email) is not None:
                raise ConflictError("Signer already added.")
            signer = self._new_signer(email, name)
            doc.signers.append(signer)
            self._recompute(doc)
            return signer

        doc, signer = self._mutate(doc_id, change)
        logger.info(f"Signer {signer.email} added to {doc_id}")
        return doc

    def remove_signer(self, doc_id: str, email: str) -> Document:
        """Drop a signer; removing the last outstanding one completes the document."""
        written: List[str] = []

        def change(doc: Document) -> Optional[SignedFileRef]:
            self._policy.ensure_signers_editable(doc.status)
            signer = doc.find_signer(email)
            if signer is None:
                raise NotFoundError(f"Signer not found: {email}")
            doc.signers.remove(signer)
            return self._recompute_and_complete(doc, written)

        try:
            doc, artifact = self._mutate(doc_id, change)
        except Exception:
            self._discard(written)
            raise

        logger.info(f"Signer {normalize_email(email)} removed from {doc_id}")
        self._announce_artifact(doc, artifact)
        return doc

    def replace_signers(self, doc_id: str, entries: Sequence[SignerInput]) -> Document:
        """
        Bulk edit used by the document editor.

        Entries matched by email keep token, expiry, status and signing data;
        only unmatched entries get a fresh token. Outstanding links stay valid.
        """
        doc, _ = self._mutate(doc_id, lambda d: self._merge_signers(d, entries))
        return doc

    def _merge_signers(self, doc: Document, entries: Sequence[SignerInput]) -> None:
        self._policy.ensure_replaceable(doc.status)
        seen = set()
        merged: List[Signer] = []
        for entry in entries:
            email = normalize_email(entry.email)
            if email in seen:
                raise ValidationError(f"Duplicate signer email: {email}")
            seen.add(email)
            existing = doc.find_signer(email)
            if existing is not None:
                if entry.name:
                    existing.name = entry.name
                merged.append(existing)
            else:
                merged.append(self._new_signer(email, entry.name))
        doc.signers = merged
        self._recompute(doc)

    def send(self, doc_id: str, *, actor: Optional[str] = None,
             ctx: RequestContext = SYSTEM_CONTEXT) -> List[SigningLink]:
        """Move to ``pending`` (re-invocable) and return every signer's link."""

        def change(doc: Document) -> List[str]:
            self._policy.ensure_sendable(doc.status)
            if not doc.signers:
                raise ValidationError("Add at least one signer before sending.")
            repaired = []
            for signer in doc.signers:
                if not signer.token:
                    self._tokens.issue(signer)
                    repaired.append(signer.email)
            doc.status = DocumentStatus.PENDING
            self._recompute(doc)
            return repaired

        doc, repaired = self._mutate(doc_id, change)
        if repaired:
            logger.warning(f"Minted missing tokens on send for {doc_id}: {', '.join(repaired)}")

        links = [SigningLink(email=s.email, link=self._tokens.build_link(s.token)) for s in doc.signers]
        for signer, link in zip(doc.signers, links):
            if signer.status == SignerStatus.PENDING:
                logger.info(f"Signing link for {signer.email}: {link.link}")

        self._owner_event(doc, AuditAction.DOCUMENT_SENT, actor, ctx,
                          {"signers": [s.email for s in doc.signers]})
        return links

    def share_link(self, doc_id: str, email: str, *, actor: Optional[str] = None,
                   ctx: RequestContext = SYSTEM_CONTEXT) -> SigningLink:
        """Link of a single signer (e.g. to copy it manually)."""
        doc = self._repo.load(doc_id)
        signer = doc.find_signer(email)
        if signer is None or not signer.token:
            raise NotFoundError(f"Signer not found: {email}")
        link = SigningLink(email=signer.email, link=self._tokens.build_link(signer.token))
        self._owner_event(doc, AuditAction.LINK_SHARED, actor, ctx, {"signer": signer.email})
        return link

    # =========================================================================
    # Signer side (token holders)
    # =========================================================================

    def _signer_cycle(self, token: str, change: Callable[[Document, Signer, datetime], T]) -> Tuple[Document, Signer, T]:
        """Resolve the token, then run ``change`` on a fresh copy under the document lock."""
        doc_id = self._tokens.resolve(token)[0].id
        with self._locks.hold(doc_id):
            doc, signer = self._tokens.resolve(token)
            now = self._clock.now()
            result = change(doc, signer, now)
            doc.updated_at = now
            self._repo.save(doc)
            return doc, signer, result

    def _check_token(self, signer: Signer, now: datetime) -> None:
        if self._tokens.is_expired(signer, now):
            raise ExpiredError("This signing link has expired.")

    @staticmethod
    def _check_document(doc: Document, now: datetime) -> None:
        if doc.is_past_expiry(now):
            raise DocumentExpiredError("This document has expired.")

    def view_as_signer(self, token: str, *, ctx: RequestContext = SYSTEM_CONTEXT) -> SignerView:
        doc_id = self._tokens.resolve(token)[0].id
        with self._locks.hold(doc_id):
            doc, signer = self._tokens.resolve(token)
            now = self._clock.now()
            self._check_token(signer, now)
            self._check_document(doc, now)
            if signer.status == SignerStatus.PENDING:
                signer.status = SignerStatus.VIEWED
                doc.updated_at = now
                self._repo.save(doc)

        self._signer_event(doc, signer, AuditAction.SIGNER_VIEWED, ctx)
        return SignerView(
            document_id=doc.id,
            title=doc.title,
            description=doc.description,
            document_status=doc.status,
            expires_at=doc.expires_at,
            original_path=doc.original.path,
            email=signer.email,
            name=signer.name,
            signer_status=signer.status,
            fields=doc.fields_for(signer.email),
        )

    def sign(
        self,
        token: str,
        signature_image: str,
        *,
        name: Optional[str] = None,
        ctx: RequestContext = SYSTEM_CONTEXT,
    ) -> Document:
        """
        Record a signature. When it completes the document, the artifact is
        generated inline; a generation failure is logged and leaves the
        document ``signed`` without artifact (see :meth:`generate_artifact`).
        """
        if not signature_image or not signature_image.strip():
            raise ValidationError("Signature data is required.")
        written: List[str] = []

        def change(doc: Document, signer: Signer, now: datetime) -> Optional[SignedFileRef]:
            self._policy.ensure_can_sign(signer.status)
            self._check_token(signer, now)
            self._check_document(doc, now)

            signer.status = SignerStatus.SIGNED
            signer.signed_at = now
            signer.signature_image = signature_image
            signer.name = name or signer.name
            signer.ip_address = ctx.ip_address
            signer.user_agent = ctx.user_agent

            return self._recompute_and_complete(doc, written)

        try:
            doc, signer, artifact = self._signer_cycle(token, change)
        except Exception:
            # the artifact of a failed save is orphaned
            self._discard(written)
            raise

        logger.info(f"{signer.email} signed {doc.id} (status {doc.status.value})")
        self._announce_artifact(doc, artifact)
        self._signer_event(doc, signer, AuditAction.SIGNER_SIGNED, ctx,
                           {"name": signer.name, "ip_address": signer.ip_address})
        return doc

    def reject(self, token: str, reason: Optional[str] = None, *,
               ctx: RequestContext = SYSTEM_CONTEXT) -> Document:

        def change(doc: Document, signer: Signer, now: datetime) -> None:
            self._policy.ensure_can_reject(signer.status)
            self._check_token(signer, now)
            self._check_document(doc, now)

            signer.status = SignerStatus.REJECTED
            signer.rejected_at = now
            signer.rejection_reason = (reason or "").strip() or self._default_reason
            signer.ip_address = ctx.ip_address
            signer.user_agent = ctx.user_agent
            self._recompute(doc)

        doc, signer, _ = self._signer_cycle(token, change)
        logger.info(f"{signer.email} rejected {doc.id}")
        self._signer_event(doc, signer, AuditAction.SIGNER_REJECTED, ctx,
                           {"reason": signer.rejection_reason})
        return doc

    # =========================================================================
    # Artifact
    # =========================================================================

    def _write_artifact(self, doc: Document, written: List[str]) -> SignedFileRef:
        now = self._clock.now()
        source = self._storage.read(doc.original.path)
        data = self._pdf.embed_signatures(source, doc.fields, doc.signers, generated_at=now)
        filename = f"signed-{int(now.timestamp() * 1000)}.pdf"
        path = self._storage.write(f"{self._signed_dir}/{doc.id}/{filename}", data)
        written.append(path)
        return SignedFileRef(path=path, filename=filename, generated_at=now)

    def _recompute_and_complete(self, doc: Document, written: List[str]) -> Optional[SignedFileRef]:
        """
        Recompute the status; on the transition into ``signed`` burn the
        artifact. A generation failure is logged and leaves the document
        ``signed`` without artifact (see :meth:`generate_artifact`).
        """
        previous = doc.status
        if self._recompute(doc) != DocumentStatus.SIGNED or previous == DocumentStatus.SIGNED:
            return None
        try:
            doc.signed_file = self._write_artifact(doc, written)
        except Exception:
            logger.exception(f"Signed PDF generation failed for {doc.id}; document stays signed without artifact")
            return None
        return doc.signed_file

    def _announce_artifact(self, doc: Document, artifact: Optional[SignedFileRef]) -> None:
        if artifact is not None:
            self._audit.record_system(document_id=doc.id, action=AuditAction.SIGNED_PDF_GENERATED,
                                      metadata={"filename": artifact.filename})

    def _discard(self, paths: Sequence[str]) -> None:
        for path in paths:
            try:
                self._storage.delete(path)
            except Exception:
                logger.exception(f"Could not remove orphaned artifact {path}")

    def generate_artifact(self, doc_id: str) -> Document:
        """
        Manual (re)generation against current signer data. Overwrites the
        stored reference; statuses are untouched; failures propagate.
        """
        previous: List[Optional[SignedFileRef]] = []
        written: List[str] = []

        def change(doc: Document) -> SignedFileRef:
            previous.append(doc.signed_file)
            doc.signed_file = self._write_artifact(doc, written)
            return doc.signed_file

        try:
            doc, artifact = self._mutate(doc_id, change)
        except Exception:
            self._discard(written)
            raise

        old = previous[0] if previous else None
        if old is not None and old.path != artifact.path:
            self._storage.delete(old.path)
        logger.info(f"Signed PDF regenerated for {doc_id}")
        self._audit.record_system(document_id=doc.id, action=AuditAction.SIGNED_PDF_GENERATED,
                                  metadata={"filename": artifact.filename, "manual": True})
        return doc

    # =========================================================================
    # Maintenance
    # =========================================================================

    def expire_overdue(self) -> List[str]:
        """Mark every non-terminal document past ``expires_at`` as ``expired``."""
        now = self._clock.now()
        expired: List[str] = []
        for candidate in self._repo.list_all():
            if candidate.status.is_terminal or now <= candidate.expires_at:
                continue
            with self._locks.hold(candidate.id):
                try:
                    doc = self._repo.load(candidate.id)
                except NotFoundError:
                    continue
                # re-checked under the lock; an untouched document keeps its version
                if doc.status.is_terminal or now <= doc.expires_at:
                    continue
                doc.status = DocumentStatus.EXPIRED
                doc.updated_at = now
                self._repo.save(doc)
            expired.append(doc.id)
        if expired:
            logger.info(f"Expired {len(expired)} document(s)")
        return expired
