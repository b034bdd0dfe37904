from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from core.helpers.date_time_helper import from_iso, to_iso
from documents.enum.document_status import DocumentStatus, SignerStatus
from documents.models.document_models import (
    Document,
    FileRef,
    SignatureField,
    SignedFileRef,
    Signer,
)

Transform = Callable[[str], str]


def _identity(value: str) -> str:
    return value


def signer_to_dict(signer: Signer, *, seal: Transform = _identity) -> Dict[str, Any]:
    return {
        "email": signer.email,
        "name": signer.name,
        "status": signer.status.value,
        "token": signer.token,
        "token_expiry": to_iso(signer.token_expiry),
        "signature_image": seal(signer.signature_image) if signer.signature_image else None,
        "signed_at": to_iso(signer.signed_at),
        "rejected_at": to_iso(signer.rejected_at),
        "rejection_reason": signer.rejection_reason,
        "ip_address": signer.ip_address,
        "user_agent": signer.user_agent,
    }


def signer_from_dict(data: Dict[str, Any], *, unseal: Transform = _identity) -> Signer:
    image = data.get("signature_image")
    return Signer(
        email=data["email"],
        name=data.get("name"),
        status=SignerStatus(data.get("status", SignerStatus.PENDING.value)),
        token=data.get("token") or "",
        token_expiry=from_iso(data.get("token_expiry")),
        signature_image=unseal(image) if image else None,
        signed_at=from_iso(data.get("signed_at")),
        rejected_at=from_iso(data.get("rejected_at")),
        rejection_reason=data.get("rejection_reason"),
        ip_address=data.get("ip_address"),
        user_agent=data.get("user_agent"),
    )


def field_to_dict(f: SignatureField) -> Dict[str, Any]:
    return {
        "id": f.id,
        "page": f.page,
        "x": f.x,
        "y": f.y,
        "width": f.width,
        "height": f.height,
        "signer_email": f.signer_email,
        "label": f.label,
        "required": f.required,
    }


def field_from_dict(data: Dict[str, Any]) -> SignatureField:
    kwargs = dict(
        page=int(data["page"]),
        x=float(data["x"]),
        y=float(data["y"]),
        signer_email=data["signer_email"],
        width=float(data.get("width", 200.0)),
        height=float(data.get("height", 60.0)),
        label=data.get("label", "Signature"),
        required=bool(data.get("required", True)),
    )
    if data.get("id"):
        kwargs["id"] = data["id"]
    return SignatureField(**kwargs)


def _file_ref_to_dict(ref: FileRef) -> Dict[str, Any]:
    return {
        "path": ref.path,
        "size": ref.size,
        "mimetype": ref.mimetype,
        "filename": ref.filename,
        "original_name": ref.original_name,
    }


def _signed_ref_to_dict(ref: Optional[SignedFileRef]) -> Optional[Dict[str, Any]]:
    if ref is None:
        return None
    return {"path": ref.path, "filename": ref.filename, "generated_at": to_iso(ref.generated_at)}


def _signed_ref_from_dict(data: Optional[Dict[str, Any]]) -> Optional[SignedFileRef]:
    if not data:
        return None
    return SignedFileRef(
        path=data["path"],
        filename=data.get("filename", ""),
        generated_at=from_iso(data["generated_at"]),
    )


def document_to_dict(doc: Document, *, seal: Transform = _identity) -> Dict[str, Any]:
    """Serializable body of a document (everything except id/owner/status columns)."""
    return {
        "title": doc.title,
        "description": doc.description,
        "original": _file_ref_to_dict(doc.original),
        "signed_file": _signed_ref_to_dict(doc.signed_file),
        "signers": [signer_to_dict(s, seal=seal) for s in doc.signers],
        "fields": [field_to_dict(f) for f in doc.fields],
        "created_at": to_iso(doc.created_at),
        "updated_at": to_iso(doc.updated_at),
        "expires_at": to_iso(doc.expires_at),
    }


def document_from_dict(
    *,
    doc_id: str,
    owner: str,
    status: str,
    version: int,
    body: Dict[str, Any],
    unseal: Transform = _identity,
) -> Document:
    return Document(
        id=doc_id,
        title=body["title"],
        owner=owner,
        original=FileRef(**body["original"]),
        created_at=from_iso(body["created_at"]),
        expires_at=from_iso(body["expires_at"]),
        status=DocumentStatus(status),
        description=body.get("description") or "",
        signers=[signer_from_dict(s, unseal=unseal) for s in body.get("signers", [])],
        fields=[field_from_dict(f) for f in body.get("fields", [])],
        signed_file=_signed_ref_from_dict(body.get("signed_file")),
        updated_at=from_iso(body.get("updated_at")),
        version=version,
    )
