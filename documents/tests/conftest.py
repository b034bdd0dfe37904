"""Shared fixtures: an in-memory signing service on a fixed clock."""
from __future__ import annotations

import base64
from datetime import datetime, timezone
from io import BytesIO

import pytest
from PIL import Image
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from core.common.clock import FixedClock
from documents.adapters.memory_storage_adapter import InMemoryStorageAdapter
from documents.models.document_models import FileRef
from documents.repository.audit_repository import InMemoryAuditStore
from documents.repository.memory_document_repository import InMemoryDocumentRepository
from documents.services.audit_service import AuditRecorder
from documents.services.signing_service import SigningService
from documents.services.token_authority import TokenAuthority

START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
BASE_URL = "https://sign.example.com/"
OWNER = "owner@example.com"


def make_pdf(pages: int = 2) -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    for i in range(pages):
        c.drawString(72, 720, f"Contract page {i + 1}")
        c.showPage()
    c.save()
    return buf.getvalue()


def make_png_data_url() -> str:
    img = Image.new("RGBA", (120, 40), (255, 255, 255, 0))
    for x in range(10, 110):
        img.putpixel((x, 20), (0, 0, 0, 255))
    buf = BytesIO()
    img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest.fixture
def repo() -> InMemoryDocumentRepository:
    return InMemoryDocumentRepository()


@pytest.fixture
def storage() -> InMemoryStorageAdapter:
    return InMemoryStorageAdapter()


@pytest.fixture
def audit_store() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture
def recorder(audit_store, clock):
    rec = AuditRecorder(audit_store, clock=clock)
    yield rec
    rec.close()


@pytest.fixture
def tokens(repo, clock) -> TokenAuthority:
    return TokenAuthority(repository=repo, clock=clock, base_url=BASE_URL)


@pytest.fixture
def service(repo, storage, recorder, tokens, clock) -> SigningService:
    return SigningService(
        repository=repo,
        storage=storage,
        recorder=recorder,
        tokens=tokens,
        clock=clock,
    )


@pytest.fixture
def signature_image() -> str:
    return make_png_data_url()


@pytest.fixture
def make_document(service, storage):
    """Upload a two-page PDF and register it as a draft."""

    def _make(title: str = "Service agreement", **kwargs):
        data = make_pdf()
        path = storage.write(f"uploads/{title}.pdf", data)
        original = FileRef(path=path, size=len(data), filename=f"{title}.pdf",
                           original_name=f"{title}.pdf")
        return service.create_document(owner=OWNER, title=title, original=original, **kwargs)

    return _make
