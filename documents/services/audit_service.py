"""Audit recorder for the signing ledger.

Appends are fire-and-forget: events go into a bounded queue drained by one
writer thread. A full queue or a failing store is logged and the event is
dropped; the workflow operation that produced the event never sees the error.
Lost events are not recoverable, so the warning/exception log lines are the
operational signal to monitor.
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
from typing import Any, List, Mapping, Optional
from uuid import uuid4

from core.common.clock import Clock
from documents.dto.audit_event import AuditAction, AuditEvent, validate_metadata
from documents.dto.request_context import RequestContext, SYSTEM_CONTEXT
from documents.enum.document_status import ActorType
from documents.repository.audit_repository import AuditStore

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

_STOP = object()


class AuditRecorder:
    """
    Best-effort audit ledger writer.

    Args:
        store: Audit store the writer thread appends to
        clock: Source of event timestamps
        queue_size: Bound of the pending-event queue
        default_limit: Default ``query`` page size
    """

    def __init__(
        self,
        store: AuditStore,
        *,
        clock: Clock,
        queue_size: int = 1000,
        default_limit: int = 100,
    ) -> None:
        self._store = store
        self._clock = clock
        self._default_limit = default_limit
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=queue_size)
        self._sequence = itertools.count(1)
        self._seq_lock = threading.Lock()
        self._dropped = 0
        self._worker = threading.Thread(target=self._run, name="audit-writer", daemon=True)
        self._worker.start()

    @property
    def dropped(self) -> int:
        """Number of events lost to a full queue or a failing store."""
        return self._dropped

    # ------------------------------------------------------------------ #
    # Write side
    # ------------------------------------------------------------------ #
    def append(self, event: AuditEvent) -> None:
        """Enqueue an event; never raises."""
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self._count_drop()
            logger.warning("Audit queue full, dropping %s", event.to_log_string())

    def record(
        self,
        *,
        document_id: str,
        action: AuditAction,
        actor: str,
        actor_type: ActorType,
        metadata: Optional[Mapping[str, Any]] = None,
        ctx: RequestContext = SYSTEM_CONTEXT,
    ) -> AuditEvent:
        """Build an event stamped with the clock and the next sequence number, then append it."""
        with self._seq_lock:
            sequence = next(self._sequence)
        event = AuditEvent(
            event_id=str(uuid4()),
            document_id=document_id,
            action=action,
            actor=actor,
            actor_type=actor_type,
            timestamp=self._clock.now(),
            sequence=sequence,
            metadata=validate_metadata(metadata),
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        )
        self.append(event)
        return event

    def record_system(self, *, document_id: str, action: AuditAction,
                      metadata: Optional[Mapping[str, Any]] = None) -> AuditEvent:
        return self.record(
            document_id=document_id,
            action=action,
            actor=SYSTEM_ACTOR,
            actor_type=ActorType.SYSTEM,
            metadata=metadata,
        )

    # ------------------------------------------------------------------ #
    # Read side
    # ------------------------------------------------------------------ #
    def query(self, document_id: str, limit: Optional[int] = None) -> List[AuditEvent]:
        """Events of one document, newest first (ties: latest inserted first)."""
        return self._store.query(document_id, self._default_limit if limit is None else limit)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def flush(self, timeout: Optional[float] = 5.0) -> bool:
        """Wait until every queued event was handled. Returns False on timeout."""
        done = threading.Event()

        def _waiter() -> None:
            self._queue.join()
            done.set()

        threading.Thread(target=_waiter, daemon=True).start()
        return done.wait(timeout)

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """Drain the queue and stop the writer thread."""
        if not self._worker.is_alive():
            return
        self._queue.put(_STOP)
        self._worker.join(timeout)

    def _count_drop(self) -> None:
        with self._seq_lock:
            self._dropped += 1

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._store.append(item)
            except Exception:
                self._count_drop()
                logger.exception("Audit append failed, event lost: %s", item.to_log_string())
            finally:
                self._queue.task_done()
