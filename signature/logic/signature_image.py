# signature/logic/signature_image.py
from __future__ import annotations

import base64
import binascii
from io import BytesIO

from PIL import Image, UnidentifiedImageError

# data URL mime type -> Pillow format
SUPPORTED_FORMATS = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
}


class SignatureImageError(ValueError):
    """The signature payload is not a decodable PNG/JPEG data URL."""


def decode_data_url(data_url: str) -> Image.Image:
    """
    Decode ``data:image/png;base64,...`` or ``data:image/jpeg;base64,...``.

    PNG keeps its alpha channel (RGBA); JPEG is returned as RGB.
    """
    if not data_url or not data_url.startswith("data:"):
        raise SignatureImageError("Signature is not a data URL")
    header, sep, payload = data_url.partition(",")
    if not sep:
        raise SignatureImageError("Signature data URL has no payload")

    mime = header[len("data:"):].split(";", 1)[0].strip().lower()
    expected = SUPPORTED_FORMATS.get(mime)
    if expected is None:
        raise SignatureImageError(f"Unsupported signature image type: {mime or '?'}")
    if ";base64" not in header.lower():
        raise SignatureImageError("Signature data URL must be base64 encoded")

    try:
        raw = base64.b64decode(payload, validate=True)
        img = Image.open(BytesIO(raw))
        img.load()
    except (binascii.Error, UnidentifiedImageError, Image.DecompressionBombError,
            OSError, SyntaxError, ValueError) as exc:
        raise SignatureImageError(f"Cannot decode signature image: {exc}") from exc

    if img.format != expected:
        raise SignatureImageError(f"Declared {mime} but payload is {img.format}")
    return img.convert("RGBA" if expected == "PNG" else "RGB")
