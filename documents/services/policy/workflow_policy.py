"""Workflow policy (no IO).

Derives the document status from its signers and holds the guards that
decide which operations a document/signer state allows.
"""

from __future__ import annotations
from typing import Sequence

from documents.enum.document_status import DocumentStatus, SignerStatus
from documents.exceptions.errors import ConflictError, StateError


class WorkflowPolicy:
    """
    Status derivation and transition guards.

    The derivation is rejection-dominant: one rejection makes the whole
    document ``rejected`` even when every other signer has signed.
    """

    @staticmethod
    def derive_status(current: DocumentStatus, signer_statuses: Sequence[SignerStatus]) -> DocumentStatus:
        """
        Document status as a pure function of the signer snapshot.

        Args:
            current: Status before recomputation (keeps ``draft`` while nobody acted)
            signer_statuses: Status of every signer, in any order

        Returns:
            Derived DocumentStatus
        """
        if not signer_statuses:
            return current
        if all(s == SignerStatus.SIGNED for s in signer_statuses):
            return DocumentStatus.SIGNED
        if any(s == SignerStatus.REJECTED for s in signer_statuses):
            return DocumentStatus.REJECTED
        if any(s == SignerStatus.SIGNED for s in signer_statuses):
            return DocumentStatus.PARTIALLY_SIGNED
        if current == DocumentStatus.DRAFT:
            return DocumentStatus.DRAFT
        return DocumentStatus.PENDING

    # ---- document guards ---------------------------------------------------

    @staticmethod
    def ensure_signers_editable(status: DocumentStatus) -> None:
        """Single add/remove is allowed until the document is terminal."""
        if status.is_terminal:
            raise StateError(f"Signers cannot be changed on a {status.value} document")

    @staticmethod
    def ensure_replaceable(status: DocumentStatus) -> None:
        """Bulk replacement is limited to drafts."""
        if status != DocumentStatus.DRAFT:
            raise StateError(
                f"Signer list can only be replaced while in draft (status: {status.value})"
            )

    @staticmethod
    def ensure_sendable(status: DocumentStatus) -> None:
        if status.is_terminal:
            raise StateError(f"A {status.value} document cannot be sent")

    @staticmethod
    def ensure_metadata_editable(status: DocumentStatus) -> None:
        if status.is_terminal:
            raise StateError(f"A {status.value} document cannot be edited")

    # ---- signer guards -----------------------------------------------------

    @staticmethod
    def ensure_can_sign(status: SignerStatus) -> None:
        if status == SignerStatus.SIGNED:
            raise ConflictError("You have already signed this document.")
        if status == SignerStatus.REJECTED:
            raise StateError("You have already rejected this document.")

    @staticmethod
    def ensure_can_reject(status: SignerStatus) -> None:
        if status == SignerStatus.SIGNED:
            raise ConflictError("Cannot reject an already signed document.")
        if status == SignerStatus.REJECTED:
            raise StateError("You have already rejected this document.")
