"""Per-request client details captured into signer records and audit events."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RequestContext:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


SYSTEM_CONTEXT = RequestContext()
