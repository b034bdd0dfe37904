"""SQLite implementation of AuditStore (append-only ``audit_log`` table)."""

from __future__ import annotations

import json
from typing import List

from core.common.db_interface import SQLiteRepository
from core.helpers.date_time_helper import ensure_utc, to_iso
from documents.dto.audit_event import AuditEvent


class SQLiteAuditStore(SQLiteRepository):
    """Audit ledger table; rows are inserted, never updated or deleted."""

    schema = """
        CREATE TABLE IF NOT EXISTS audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            event_id TEXT NOT NULL UNIQUE,
            document_id TEXT NOT NULL,
            action TEXT NOT NULL,
            actor TEXT NOT NULL,
            actor_type TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{}',
            ip_address TEXT,
            user_agent TEXT,
            timestamp TEXT NOT NULL,
            ts_epoch REAL NOT NULL,
            sequence INTEGER NOT NULL DEFAULT 0
        );

        CREATE INDEX IF NOT EXISTS idx_audit_document
            ON audit_log(document_id, ts_epoch);
    """

    def append(self, event: AuditEvent) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO audit_log
                    (event_id, document_id, action, actor, actor_type, metadata,
                     ip_address, user_agent, timestamp, ts_epoch, sequence)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.event_id,
                    event.document_id,
                    event.action.value,
                    event.actor,
                    event.actor_type.value,
                    json.dumps(event.metadata),
                    event.ip_address,
                    event.user_agent,
                    to_iso(event.timestamp),
                    ensure_utc(event.timestamp).timestamp(),
                    event.sequence,
                ),
            )

    def query(self, document_id: str, limit: int = 100) -> List[AuditEvent]:
        # id follows insertion order and breaks timestamp ties
        rows = self.fetch_all(
            """
            SELECT * FROM audit_log
            WHERE document_id = ?
            ORDER BY ts_epoch DESC, id DESC
            LIMIT ?
            """,
            (document_id, max(0, limit)),
        )
        result = []
        for row in rows:
            data = dict(row)
            data["metadata"] = json.loads(data["metadata"] or "{}")
            result.append(AuditEvent.from_dict(data))
        return result
