from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, tzinfo
from io import BytesIO
from typing import Dict, List, Optional, Sequence, Tuple

from pypdf import PdfReader, PdfWriter
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from core.helpers.date_time_helper import format_local_date, to_iso
from documents.enum.document_status import SignerStatus
from documents.models.document_models import SignatureField, Signer, normalize_email
from .signature_image import SignatureImageError, decode_data_url
from ..models.signature_placement import SignaturePlacement

logger = logging.getLogger(__name__)

RGB = Tuple[float, float, float]


@dataclass(frozen=True)
class ArtifactStyle:
    """
    Colours (RGB 0–1), font sizes and spacing for the burned-in signature boxes
    and the audit summary page.
    """
    border_color: RGB = (0.1, 0.4, 0.8)
    border_width: float = 1.5
    inset: float = 5.0
    label_band: float = 14.0          # reserved below the image for the label
    label_color: RGB = (0.3, 0.3, 0.3)
    label_font_size: int = 7
    fallback_color: RGB = (0.1, 0.1, 0.6)
    fallback_font_size: int = 14
    title_color: RGB = (0.1, 0.4, 0.8)
    signed_color: RGB = (0.1, 0.6, 0.2)
    detail_color: RGB = (0.4, 0.4, 0.4)
    margin: float = 50.0
    line_height: float = 20.0
    local_tz: Optional[tzinfo] = None


def _signer_display(signer: Signer) -> str:
    return signer.name or signer.email


def find_signed_signer(field: SignatureField, signers: Sequence[Signer]) -> Optional[Signer]:
    """First signer matching the field's email that has signed and left an image."""
    wanted = normalize_email(field.signer_email)
    for signer in signers:
        if signer.email == wanted and signer.status == SignerStatus.SIGNED and signer.signature_image:
            return signer
    return None


class PdfSigner:
    """
    Burns signatures into a source PDF and appends an audit summary page.

    Each page that carries at least one signature gets a reportlab overlay
    (same size as the page) merged on top with pypdf. Fields are processed in
    list order; a malformed signature image never aborts generation.
    """

    def __init__(self, style: Optional[ArtifactStyle] = None) -> None:
        self._style = style or ArtifactStyle()

    # ------------------------------------------------------------------ #
    def embed_signatures(
        self,
        source: bytes,
        fields: Sequence[SignatureField],
        signers: Sequence[Signer],
        *,
        generated_at: datetime,
    ) -> bytes:
        reader = PdfReader(BytesIO(source))
        pages = list(reader.pages)

        per_page: Dict[int, List[Tuple[SignaturePlacement, Signer]]] = defaultdict(list)
        for field in fields:
            signer = find_signed_signer(field, signers)
            if signer is None:
                continue
            page_index = field.page - 1
            if page_index < 0 or page_index >= len(pages):
                logger.warning("Field %s targets missing page %s, skipped", field.id, field.page)
                continue
            box = pages[page_index].mediabox
            placement = SignaturePlacement.from_field(
                field,
                page_height=float(box.height),
                origin_x=float(box.left),
                origin_y=float(box.bottom),
            )
            per_page[page_index].append((placement, signer))

        writer = PdfWriter()
        for i, page in enumerate(pages):
            if i in per_page:
                box = page.mediabox
                overlay = self._make_overlay(float(box.right), float(box.top), per_page[i])
                page.merge_page(PdfReader(BytesIO(overlay)).pages[0])
            writer.add_page(page)

        if pages:
            last = pages[-1].mediabox
            summary_size = (float(last.width), float(last.height))
        else:
            summary_size = A4
        summary = self._make_audit_summary(summary_size, signers, generated_at)
        for summary_page in PdfReader(BytesIO(summary)).pages:
            writer.add_page(summary_page)

        out = BytesIO()
        writer.write(out)
        return out.getvalue()

    # ------------------------------------------------------------------ #
    def _make_overlay(
        self,
        page_w: float,
        page_h: float,
        items: Sequence[Tuple[SignaturePlacement, Signer]],
    ) -> bytes:
        buf = BytesIO()
        c = canvas.Canvas(buf, pagesize=(page_w, page_h))
        for placement, signer in items:
            self._draw_signature_box(c, placement, signer)
        c.save()
        return buf.getvalue()

    def _draw_signature_box(self, c: canvas.Canvas, p: SignaturePlacement, signer: Signer) -> None:
        st = self._style

        # --- Box
        c.setStrokeColorRGB(*st.border_color)
        c.setLineWidth(st.border_width)
        c.rect(p.x, p.y, p.width, p.height, stroke=1, fill=0)

        # --- Signature image (or text fallback)
        try:
            img = decode_data_url(signer.signature_image or "")
            img_w = max(1.0, p.width - 2 * st.inset)
            img_h = max(1.0, p.height - st.inset - st.label_band)
            c.drawImage(
                ImageReader(img),
                p.x + st.inset,
                p.y + st.label_band,
                width=img_w,
                height=img_h,
                mask="auto",
                preserveAspectRatio=True,
                anchor="c",
            )
        except SignatureImageError as exc:
            logger.warning("Signature image of %s unusable, drawing text instead: %s", signer.email, exc)
            self._draw_fallback(c, p, signer)
        except Exception:
            # reportlab can still fail on an image Pillow accepted
            logger.exception("Drawing the signature image of %s failed, drawing text instead", signer.email)
            self._draw_fallback(c, p, signer)

        # --- Label
        label = f"{_signer_display(signer)} | {format_local_date(signer.signed_at, st.local_tz)}"
        c.setFillColorRGB(*st.label_color)
        c.setFont("Helvetica", st.label_font_size)
        c.drawString(p.x + st.inset, p.y + 4, label)

    def _draw_fallback(self, c: canvas.Canvas, p: SignaturePlacement, signer: Signer) -> None:
        st = self._style
        c.setFillColorRGB(*st.fallback_color)
        c.setFont("Helvetica", st.fallback_font_size)
        c.drawString(p.x + 10, p.y + p.height / 2, _signer_display(signer))

    # ------------------------------------------------------------------ #
    def _make_audit_summary(
        self,
        size: Tuple[float, float],
        signers: Sequence[Signer],
        generated_at: datetime,
    ) -> bytes:
        st = self._style
        width, height = size
        buf = BytesIO()
        c = canvas.Canvas(buf, pagesize=(width, height))

        def header() -> float:
            c.setFillColorRGB(*st.title_color)
            c.setFont("Helvetica", 18)
            c.drawString(st.margin, height - 60, "DOCUMENT AUDIT TRAIL")
            c.setStrokeColorRGB(*st.title_color)
            c.setLineWidth(2)
            c.line(st.margin, height - 70, width - st.margin, height - 70)
            return height - 100

        y = header()
        c.setFillColorRGB(*st.label_color)
        c.setFont("Helvetica", 10)
        c.drawString(st.margin, y, f"Document generated: {to_iso(generated_at)}")
        y -= st.line_height

        block = st.line_height * 2.8
        for signer in signers:
            if signer.status != SignerStatus.SIGNED:
                continue
            if y - block < st.margin:
                c.showPage()
                y = header()

            # ✓ from the symbol font; Helvetica has no check mark glyph
            c.setFillColorRGB(*st.signed_color)
            c.setFont("ZapfDingbats", 10)
            c.drawString(st.margin, y, "3")
            c.setFont("Helvetica", 10)
            c.drawString(st.margin + 14, y, f"Signed by: {signer.email}")
            y -= st.line_height * 0.8

            c.setFillColorRGB(*st.detail_color)
            c.setFont("Helvetica", 9)
            c.drawString(st.margin, y, f"  Name: {signer.name or 'N/A'} | Date: {to_iso(signer.signed_at) or 'N/A'}")
            y -= st.line_height * 0.8
            c.drawString(st.margin, y, f"  IP: {signer.ip_address or 'N/A'}")
            y -= st.line_height * 1.2

        c.save()
        return buf.getvalue()
