"""Capability tokens for signers.

Possession of a valid, unexpired token authorizes every signer-scoped action
for exactly one signer on one document; there is no other authentication.
There is no revocation beyond natural expiry or removal of the signer.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Tuple
from uuid import uuid4

from core.common.clock import Clock
from documents.exceptions.errors import NotFoundError, ValidationError
from documents.models.document_models import Document, Signer
from documents.repository.document_repository import DocumentRepository

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL = timedelta(days=7)


class TokenAuthority:
    """Mints, resolves and checks expiry of signer tokens; builds signing links."""

    def __init__(
        self,
        *,
        repository: DocumentRepository,
        clock: Clock,
        base_url: str,
        ttl: timedelta = DEFAULT_TOKEN_TTL,
    ) -> None:
        if not base_url:
            raise ValidationError("A base URL is required to build signing links")
        self._repo = repository
        self._clock = clock
        self._base_url = base_url.rstrip("/")
        self._ttl = ttl

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def mint(self) -> Tuple[str, datetime]:
        """New random token and its fixed expiry (``now + ttl``)."""
        return str(uuid4()), self._clock.now() + self._ttl

    def issue(self, signer: Signer) -> Signer:
        """Give ``signer`` a freshly minted token/expiry pair."""
        signer.token, signer.token_expiry = self.mint()
        return signer

    def resolve(self, token: str) -> Tuple[Document, Signer]:
        """
        Find the document and signer a token belongs to.

        Raises:
            NotFoundError: blank or unknown token
        """
        if not token or not token.strip():
            raise NotFoundError("Signing link not found.")
        doc = self._repo.find_by_token(token)
        signer = doc.signer_for_token(token)
        if signer is None:
            # store index and aggregate disagree; treat as unknown
            logger.warning("Token index points at document %s without matching signer", doc.id)
            raise NotFoundError("Signer not found.")
        return doc, signer

    @staticmethod
    def is_expired(signer: Signer, now: datetime) -> bool:
        """True once ``now`` is past the signer's token expiry (no expiry counts as expired)."""
        if signer.token_expiry is None:
            return True
        return now > signer.token_expiry

    def build_link(self, token: str) -> str:
        return f"{self._base_url}/sign/{token}"
