"""Wires a SigningService from an AppConfig (SQLite stores, filesystem blobs)."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from core.common.clock import Clock, SystemClock
from core.config.config_service import AppConfig
from documents.adapters.filesystem_storage_adapter import FilesystemStorageAdapter
from documents.repository.sqlite_audit_repository import SQLiteAuditStore
from documents.repository.sqlite_document_repository import SQLiteDocumentRepository
from documents.services.audit_service import AuditRecorder
from documents.services.signing_service import SigningService
from documents.services.token_authority import TokenAuthority
from signature.logic.encryption import SignatureCipher

logger = logging.getLogger(__name__)


def build_signing_service(cfg: AppConfig, *, clock: Optional[Clock] = None) -> SigningService:
    clock = clock or SystemClock()

    cipher = None
    if cfg.security.signature_key:
        cipher = SignatureCipher(cfg.security.signature_key)
    else:
        logger.warning("No signature_key configured: signature images are stored unencrypted")

    repository = SQLiteDocumentRepository(cfg.storage.database, cipher=cipher)
    recorder = AuditRecorder(
        SQLiteAuditStore(cfg.audit.database),
        clock=clock,
        queue_size=cfg.audit.queue_size,
        default_limit=cfg.audit.query_limit,
    )
    tokens = TokenAuthority(
        repository=repository,
        clock=clock,
        base_url=cfg.signing.base_url,
        ttl=timedelta(days=cfg.signing.token_ttl_days),
    )
    return SigningService(
        repository=repository,
        storage=FilesystemStorageAdapter(cfg.storage.root),
        recorder=recorder,
        tokens=tokens,
        clock=clock,
        document_ttl=timedelta(days=cfg.signing.document_ttl_days),
        default_rejection_reason=cfg.signing.default_rejection_reason,
        signed_dir=cfg.storage.signed_dir,
    )
