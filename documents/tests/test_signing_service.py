"""End-to-end workflows of the signing state machine."""
from __future__ import annotations

import base64
import struct
import threading
import zlib
from datetime import timedelta
from io import BytesIO

import pytest
from pypdf import PdfReader

from documents.dto.audit_event import AuditAction
from documents.dto.request_context import RequestContext
from documents.dto.signing_link import SignerInput
from documents.enum.document_status import DocumentStatus, SignerStatus
from documents.exceptions.errors import (
    ConflictError,
    DocumentExpiredError,
    ExpiredError,
    NotFoundError,
    StateError,
    ValidationError,
)
from documents.models.document_models import FileRef, SignatureField
from documents.services.audit_service import AuditRecorder
from documents.services.signing_service import SigningService

from .conftest import OWNER, START

ALICE = "alice@example.com"
BOB = "bob@example.com"
CTX = RequestContext(ip_address="203.0.113.7", user_agent="pytest-browser")


def _fields():
    return [
        SignatureField(page=1, x=72, y=600, signer_email=ALICE),
        SignatureField(page=2, x=300, y=600, signer_email=BOB),
    ]


def _actions(service, recorder, doc_id):
    assert recorder.flush()
    return [e.action for e in service.audit_trail(doc_id)]


@pytest.fixture
def sent(service, make_document):
    """Document with Alice and Bob, already sent; returns (doc_id, {email: token})."""
    doc = make_document(fields=_fields())
    service.add_signer(doc.id, ALICE, "Alice")
    service.add_signer(doc.id, BOB, "Bob")
    links = service.send(doc.id)
    loaded = service.get_document(doc.id)
    return doc.id, {s.email: s.token for s in loaded.signers}, links


# --------------------------------------------------------------------------- #
# Creation and owner-side edits
# --------------------------------------------------------------------------- #

def test_create_document_starts_as_draft(service, make_document, recorder) -> None:
    doc = make_document()
    assert doc.status == DocumentStatus.DRAFT
    assert doc.expires_at == START + timedelta(days=30)
    assert doc.version == 1

    assert recorder.flush()
    [event] = service.audit_trail(doc.id)
    assert event.action == AuditAction.DOCUMENT_CREATED
    assert event.metadata == {"title": "Service agreement", "file_size": doc.original.size}
    assert event.actor == OWNER


@pytest.mark.parametrize("title", ["", "   ", "x" * 201])
def test_create_document_validates_title(make_document, title) -> None:
    with pytest.raises(ValidationError):
        make_document(title=title)


def test_add_signer_rejects_duplicate_email(service, make_document) -> None:
    doc = make_document()
    service.add_signer(doc.id, ALICE)
    with pytest.raises(ConflictError):
        service.add_signer(doc.id, "ALICE@example.com ")


def test_add_signer_mints_token(service, make_document) -> None:
    doc = service.add_signer(make_document().id, ALICE, "Alice")
    [signer] = doc.signers
    assert signer.status == SignerStatus.PENDING
    assert signer.token
    assert signer.token_expiry == START + timedelta(days=7)
    assert doc.status == DocumentStatus.DRAFT


def test_remove_unknown_signer(service, make_document) -> None:
    with pytest.raises(NotFoundError):
        service.remove_signer(make_document().id, ALICE)


def test_replace_signers_keeps_existing_tokens(service, repo, make_document) -> None:
    doc = make_document()
    doc = service.add_signer(doc.id, ALICE, "Alice")
    alice_token = doc.signers[0].token
    stored = repo.load(doc.id)
    stored.signers[0].status = SignerStatus.VIEWED
    stored.signers[0].signed_at = START
    repo.save(stored)

    doc = service.replace_signers(doc.id, [SignerInput(BOB, "Bob"), SignerInput("Alice@Example.com", "Alice B.")])
    by_email = {s.email: s for s in doc.signers}
    assert [s.email for s in doc.signers] == [BOB, ALICE]
    assert by_email[ALICE].token == alice_token
    assert by_email[ALICE].name == "Alice B."
    assert by_email[ALICE].status == SignerStatus.VIEWED
    assert by_email[ALICE].signed_at == START
    assert by_email[BOB].token and by_email[BOB].token != alice_token


def test_replace_signers_rejects_duplicates(service, make_document) -> None:
    doc = make_document()
    with pytest.raises(ValidationError):
        service.replace_signers(doc.id, [SignerInput(ALICE), SignerInput(ALICE.upper())])


def test_replace_signers_only_in_draft(service, sent) -> None:
    doc_id, _, _ = sent
    with pytest.raises(StateError):
        service.replace_signers(doc_id, [SignerInput(ALICE)])


def test_update_document_fields_are_audited(service, make_document, recorder) -> None:
    doc = make_document()
    doc = service.update_document(doc.id, title="Renamed", fields=_fields())
    assert doc.title == "Renamed"
    assert len(doc.fields) == 2
    assert AuditAction.SIGNATURE_PLACED in _actions(service, recorder, doc.id)


def test_get_document_is_audited(service, make_document, recorder) -> None:
    doc = make_document()
    service.get_document(doc.id, actor="viewer@example.com")
    assert recorder.flush()
    latest = service.audit_trail(doc.id)[0]
    assert latest.action == AuditAction.DOCUMENT_VIEWED
    assert latest.actor == "viewer@example.com"


# --------------------------------------------------------------------------- #
# Send
# --------------------------------------------------------------------------- #

def test_send_without_signers(service, make_document) -> None:
    with pytest.raises(ValidationError):
        service.send(make_document().id)


def test_send_returns_links_and_is_repeatable(service, sent, recorder) -> None:
    doc_id, tokens, links = sent
    assert {l.email: l.link for l in links} == {
        email: f"https://sign.example.com/sign/{token}" for email, token in tokens.items()
    }
    assert service.get_document(doc_id).status == DocumentStatus.PENDING

    again = service.send(doc_id)
    assert [l.link for l in again] == [l.link for l in links]

    assert recorder.flush()
    sent_events = [e for e in service.audit_trail(doc_id) if e.action == AuditAction.DOCUMENT_SENT]
    assert sent_events[0].metadata == {"signers": [ALICE, BOB]}


def test_send_mints_token_for_signer_without_one(service, repo, make_document) -> None:
    doc = make_document()
    service.add_signer(doc.id, ALICE)
    service.add_signer(doc.id, BOB)
    stored = repo.load(doc.id)
    stored.find_signer(BOB).token = ""
    stored.find_signer(BOB).token_expiry = None
    repo.save(stored)

    links = {l.email: l.link for l in service.send(doc.id)}
    bob = service.get_document(doc.id).find_signer(BOB)
    assert bob.token
    assert bob.token_expiry == START + timedelta(days=7)
    assert links[BOB] == f"https://sign.example.com/sign/{bob.token}"
    assert service.view_as_signer(bob.token).email == BOB


def test_share_link_is_audited(service, sent, recorder) -> None:
    doc_id, tokens, _ = sent
    link = service.share_link(doc_id, BOB)
    assert link.link.endswith(tokens[BOB])
    assert AuditAction.LINK_SHARED in _actions(service, recorder, doc_id)


# --------------------------------------------------------------------------- #
# Signer side
# --------------------------------------------------------------------------- #

def test_view_marks_viewed_once(service, repo, sent, recorder) -> None:
    doc_id, tokens, _ = sent
    view = service.view_as_signer(tokens[ALICE], ctx=CTX)
    assert view.signer_status == SignerStatus.VIEWED
    assert view.email == ALICE
    assert [f.signer_email for f in view.fields] == [ALICE]
    version = repo.load(doc_id).version

    again = service.view_as_signer(tokens[ALICE], ctx=CTX)
    assert again.signer_status == SignerStatus.VIEWED
    assert repo.load(doc_id).version == version

    actions = _actions(service, recorder, doc_id)
    assert actions.count(AuditAction.SIGNER_VIEWED) == 2


def test_view_keeps_signed_and_rejected_status(service, repo, sent, signature_image) -> None:
    doc_id, tokens, _ = sent
    service.sign(tokens[ALICE], signature_image)
    service.reject(tokens[BOB], "No")
    version = repo.load(doc_id).version

    assert service.view_as_signer(tokens[ALICE]).signer_status == SignerStatus.SIGNED
    assert service.view_as_signer(tokens[BOB]).signer_status == SignerStatus.REJECTED
    stored = repo.load(doc_id)
    assert stored.version == version
    assert [s.status for s in stored.signers] == [SignerStatus.SIGNED, SignerStatus.REJECTED]


def test_all_signers_sign(service, storage, sent, signature_image, recorder) -> None:
    doc_id, tokens, _ = sent
    service.view_as_signer(tokens[ALICE])

    doc = service.sign(tokens[ALICE], signature_image, ctx=CTX)
    assert doc.status == DocumentStatus.PARTIALLY_SIGNED
    assert doc.signed_file is None

    doc = service.sign(tokens[BOB], signature_image, name="Robert", ctx=CTX)
    assert doc.status == DocumentStatus.SIGNED
    bob = doc.find_signer(BOB)
    assert bob.name == "Robert"
    assert bob.ip_address == "203.0.113.7"
    assert bob.user_agent == "pytest-browser"
    assert bob.signed_at == START

    assert doc.signed_file is not None
    assert doc.signed_file.filename == f"signed-{int(START.timestamp() * 1000)}.pdf"
    reader = PdfReader(BytesIO(storage.read(doc.signed_file.path)))
    assert len(reader.pages) == 3
    assert "DOCUMENT AUDIT TRAIL" in reader.pages[-1].extract_text()

    actions = _actions(service, recorder, doc_id)
    assert actions.count(AuditAction.SIGNER_SIGNED) == 2
    assert actions.count(AuditAction.SIGNED_PDF_GENERATED) == 1
    signed_event = next(e for e in service.audit_trail(doc_id) if e.action == AuditAction.SIGNER_SIGNED)
    assert signed_event.metadata == {"name": "Robert", "ip_address": "203.0.113.7"}
    assert signed_event.ip_address == "203.0.113.7"


def test_rejection_dominates(service, sent, signature_image, recorder) -> None:
    doc_id, tokens, _ = sent
    service.sign(tokens[ALICE], signature_image)
    doc = service.reject(tokens[BOB], "Terms unclear", ctx=CTX)
    assert doc.status == DocumentStatus.REJECTED
    bob = doc.find_signer(BOB)
    assert bob.rejection_reason == "Terms unclear"
    assert bob.rejected_at == START
    assert doc.signed_file is None

    recorder.flush()
    rejected = next(e for e in service.audit_trail(doc_id) if e.action == AuditAction.SIGNER_REJECTED)
    assert rejected.metadata == {"reason": "Terms unclear"}


def test_reject_default_reason(service, sent) -> None:
    _, tokens, _ = sent
    doc = service.reject(tokens[ALICE], "   ")
    assert doc.find_signer(ALICE).rejection_reason == "No reason provided"


def test_sign_requires_image(service, sent) -> None:
    _, tokens, _ = sent
    with pytest.raises(ValidationError):
        service.sign(tokens[ALICE], "")


def test_repeated_signer_actions(service, sent, signature_image) -> None:
    _, tokens, _ = sent
    service.sign(tokens[ALICE], signature_image)
    with pytest.raises(ConflictError, match="already signed"):
        service.sign(tokens[ALICE], signature_image)
    with pytest.raises(ConflictError):
        service.reject(tokens[ALICE])

    service.reject(tokens[BOB])
    with pytest.raises(StateError):
        service.reject(tokens[BOB])
    with pytest.raises(StateError):
        service.sign(tokens[BOB], signature_image)


def test_expired_token_blocks_every_signer_action(service, repo, sent, clock, signature_image) -> None:
    doc_id, tokens, _ = sent
    clock.advance(days=7, seconds=1)
    before = repo.load(doc_id)

    with pytest.raises(ExpiredError, match="expired"):
        service.view_as_signer(tokens[ALICE])
    with pytest.raises(ExpiredError):
        service.sign(tokens[ALICE], signature_image)
    with pytest.raises(ExpiredError):
        service.reject(tokens[ALICE])

    after = repo.load(doc_id)
    assert after.version == before.version
    assert after.find_signer(ALICE).status == SignerStatus.PENDING


def test_token_valid_until_expiry_instant(service, sent, clock) -> None:
    _, tokens, _ = sent
    clock.advance(days=7)
    assert service.view_as_signer(tokens[ALICE]).signer_status == SignerStatus.VIEWED


def test_expired_document_blocks_signing(service, sent, clock, signature_image) -> None:
    doc_id, tokens, _ = sent
    service.update_document(doc_id, expires_at=START + timedelta(days=1))
    clock.advance(days=2)
    with pytest.raises(DocumentExpiredError):
        service.view_as_signer(tokens[ALICE])
    with pytest.raises(ExpiredError):
        service.sign(tokens[BOB], signature_image)


def test_unknown_token(service) -> None:
    with pytest.raises(NotFoundError):
        service.view_as_signer("does-not-exist")


def test_signer_edits_after_terminal(service, sent, signature_image) -> None:
    doc_id, tokens, _ = sent
    service.reject(tokens[ALICE])
    with pytest.raises(StateError):
        service.add_signer(doc_id, "carol@example.com")
    with pytest.raises(StateError):
        service.send(doc_id)


def test_removing_last_pending_signer_completes_document(service, storage, sent, signature_image,
                                                         recorder) -> None:
    doc_id, tokens, _ = sent
    service.sign(tokens[ALICE], signature_image)
    doc = service.remove_signer(doc_id, BOB)
    assert doc.status == DocumentStatus.SIGNED
    assert doc.signed_file is not None
    assert storage.exists(doc.signed_file.path)
    assert service.get_document(doc_id).signed_file == doc.signed_file
    assert _actions(service, recorder, doc_id).count(AuditAction.SIGNED_PDF_GENERATED) == 1


def test_oversized_signature_image_still_produces_artifact(service, storage, sent, signature_image) -> None:
    doc_id, tokens, _ = sent
    ihdr = struct.pack(">IIBBBBB", 30000, 30000, 8, 6, 0, 0, 0)
    png = (b"\x89PNG\r\n\x1a\n" + struct.pack(">I", len(ihdr)) + b"IHDR" + ihdr
           + struct.pack(">I", zlib.crc32(b"IHDR" + ihdr)))
    oversized = "data:image/png;base64," + base64.b64encode(png).decode("ascii")

    service.sign(tokens[ALICE], signature_image)
    doc = service.sign(tokens[BOB], oversized, name="Bob")
    assert doc.status == DocumentStatus.SIGNED
    assert doc.signed_file is not None
    reader = PdfReader(BytesIO(storage.read(doc.signed_file.path)))
    assert "Bob" in reader.pages[1].extract_text()


# --------------------------------------------------------------------------- #
# Artifact
# --------------------------------------------------------------------------- #

def test_artifact_failure_on_completion_is_absorbed(service, storage, sent, signature_image) -> None:
    doc_id, tokens, _ = sent
    service.sign(tokens[ALICE], signature_image)
    storage.delete(service.get_document(doc_id).original.path)

    doc = service.sign(tokens[BOB], signature_image)
    assert doc.status == DocumentStatus.SIGNED
    assert doc.signed_file is None


def test_generate_artifact_overwrites_previous(service, storage, sent, signature_image, clock) -> None:
    doc_id, tokens, _ = sent
    service.sign(tokens[ALICE], signature_image)
    first = service.sign(tokens[BOB], signature_image).signed_file

    clock.advance(seconds=5)
    doc = service.generate_artifact(doc_id)
    assert doc.status == DocumentStatus.SIGNED
    assert doc.signed_file.path != first.path
    assert storage.exists(doc.signed_file.path)
    assert not storage.exists(first.path)


def test_generate_artifact_errors_propagate(service, storage, sent) -> None:
    doc_id, _, _ = sent
    storage.delete(service.get_document(doc_id).original.path)
    with pytest.raises(NotFoundError):
        service.generate_artifact(doc_id)
    assert service.get_document(doc_id).signed_file is None


def test_download_prefers_signed_artifact(service, sent, signature_image, recorder) -> None:
    doc_id, tokens, _ = sent
    original = service.download(doc_id)
    assert original.filename == "Service agreement.pdf"
    assert original.content.startswith(b"%PDF")

    service.sign(tokens[ALICE], signature_image)
    service.sign(tokens[BOB], signature_image)
    signed = service.download(doc_id)
    assert signed.filename == "signed-Service agreement.pdf"
    assert signed.content != original.content
    assert AuditAction.DOCUMENT_DOWNLOADED in _actions(service, recorder, doc_id)


# --------------------------------------------------------------------------- #
# Listing, stats, maintenance
# --------------------------------------------------------------------------- #

def test_list_and_stats(service, make_document, clock, signature_image) -> None:
    first = make_document("NDA")
    clock.advance(minutes=1)
    second = make_document("Lease contract")
    service.add_signer(second.id, ALICE)
    token = service.get_document(second.id).signers[0].token
    service.send(second.id)
    service.sign(token, signature_image)

    assert [d.id for d in service.list_documents(OWNER)] == [second.id, first.id]
    assert [d.id for d in service.list_documents(OWNER, search="lease")] == [second.id]
    assert [d.id for d in service.list_documents(OWNER, status=DocumentStatus.DRAFT)] == [first.id]

    stats = service.stats(OWNER)
    assert (stats.total, stats.pending, stats.signed, stats.rejected) == (2, 0, 1, 0)


def test_expire_overdue(service, sent, make_document, clock) -> None:
    doc_id, _, _ = sent
    draft = make_document("Draft")
    clock.advance(days=31)
    expired = service.expire_overdue()
    assert set(expired) == {doc_id, draft.id}
    assert service.get_document(doc_id).status == DocumentStatus.EXPIRED
    assert service.expire_overdue() == []


def test_expire_overdue_skips_documents_extended_meanwhile(service, repo, make_document,
                                                          clock, monkeypatch) -> None:
    doc = make_document()
    clock.advance(days=31)
    stale = repo.list_all()
    service.update_document(doc.id, expires_at=clock.now() + timedelta(days=1))
    before = repo.load(doc.id)

    monkeypatch.setattr(repo, "list_all", lambda: stale)
    assert service.expire_overdue() == []
    after = repo.load(doc.id)
    assert after.status == DocumentStatus.DRAFT
    assert (after.version, after.updated_at) == (before.version, before.updated_at)


def test_delete_document_removes_blobs(service, storage, repo, make_document) -> None:
    doc = make_document()
    service.delete_document(doc.id)
    assert not storage.exists(doc.original.path)
    with pytest.raises(NotFoundError):
        repo.load(doc.id)


# --------------------------------------------------------------------------- #
# Best-effort audit and concurrency
# --------------------------------------------------------------------------- #

class _BrokenStore:
    def append(self, event):
        raise RuntimeError("audit database unavailable")

    def query(self, document_id, limit=100):
        return []


def test_operations_survive_failing_audit_store(repo, storage, tokens, clock) -> None:
    recorder = AuditRecorder(_BrokenStore(), clock=clock)
    service = SigningService(repository=repo, storage=storage, recorder=recorder,
                             tokens=tokens, clock=clock)
    try:
        path = storage.write("uploads/a.pdf", b"%PDF-1.4")
        doc = service.create_document(owner=OWNER, title="A", original=FileRef(path=path, size=8))
        service.add_signer(doc.id, ALICE)
        service.send(doc.id)
        assert recorder.flush()
        assert recorder.dropped == 2
        assert service.get_document(doc.id).status == DocumentStatus.PENDING
    finally:
        recorder.close()


def test_concurrent_signers_both_count(service, make_document, signature_image) -> None:
    doc = make_document()
    emails = [f"signer{i}@example.com" for i in range(6)]
    for email in emails:
        service.add_signer(doc.id, email)
    service.send(doc.id)
    tokens = [s.token for s in service.get_document(doc.id).signers]

    barrier = threading.Barrier(len(tokens))
    errors = []

    def _sign(token):
        barrier.wait()
        try:
            service.sign(token, signature_image)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=_sign, args=(t,)) for t in tokens]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)

    assert errors == []
    final = service.get_document(doc.id)
    assert final.status == DocumentStatus.SIGNED
    assert all(s.status == SignerStatus.SIGNED for s in final.signers)
    assert final.signed_file is not None
