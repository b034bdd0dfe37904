from __future__ import annotations
from dataclasses import dataclass

from documents.models.document_models import SignatureField


@dataclass(frozen=True)
class SignaturePlacement:
    """
    Absolute box on a PDF page (points; 1 pt = 1/72 inch), origin bottom-left.
    """
    page_index: int
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_field(
        cls,
        field: SignatureField,
        *,
        page_height: float,
        origin_x: float = 0.0,
        origin_y: float = 0.0,
    ) -> "SignaturePlacement":
        """
        Convert a top-left-origin field into PDF space.

        ``origin_x``/``origin_y`` are the lower-left corner of the page's
        mediabox (non-zero for cropped or shifted pages).
        """
        return cls(
            page_index=field.page - 1,
            x=origin_x + field.x,
            y=origin_y + page_height - field.y - field.height,
            width=field.width,
            height=field.height,
        )
