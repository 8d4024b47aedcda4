"""
AuditLogWriter -- append-only audit rows for every state transition.

Responsibility:
    Turns an ``AuditRecord`` into one ``audit_logs`` row inside the caller's
    transaction, so the audit row commits or rolls back together with the
    change it describes.

Architecture position:
    Kernel > Services -- called by the draft lifecycle, PostingOrchestrator,
    ReversalService and ManualJournalService.

Invariants enforced:
    - Rows are inserted, never updated.
    - ``payload_json`` holds only JSON-native values: UUIDs, dates and
      Decimals are rendered as strings (Decimals keep their full scale).

Audit relevance:
    This IS the audit sink.  Downstream reporting reads ``audit_logs``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import RequestContext
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_log import AuditLog
from ledger_kernel.services.base import LEGAL_ENTITY_SCOPE

logger = get_logger("services.audit")

RESOURCE_DOCUMENT = "ledger_document"
RESOURCE_JOURNAL = "journal_entry"


@dataclass(frozen=True)
class AuditRecord:
    """One audit event before it is written."""

    tenant_id: UUID
    user_id: UUID | None
    action: str
    resource_type: str
    resource_id: Any
    scope_type: str | None = LEGAL_ENTITY_SCOPE
    scope_id: Any = None
    payload: dict[str, Any] = field(default_factory=dict)
    request: RequestContext | None = None


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class AuditLogWriter:
    """
    Write audit rows.

    Contract:
        ``record`` adds and flushes one row and returns it.

    Non-goals:
        - No hash chain; rows are plain append-only events.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def record(self, entry: AuditRecord) -> AuditLog:
        request = entry.request or RequestContext()
        row = AuditLog(
            tenant_id=entry.tenant_id,
            user_id=entry.user_id,
            action=entry.action,
            resource_type=entry.resource_type,
            resource_id=str(entry.resource_id),
            scope_type=entry.scope_type,
            scope_id=str(entry.scope_id) if entry.scope_id is not None else None,
            request_id=request.request_id,
            ip_address=request.ip_address,
            user_agent=(request.user_agent or None) and request.user_agent[:255],
            payload_json=_json_safe(entry.payload),
            occurred_at=self.clock.now(),
        )
        self.session.add(row)
        self.session.flush()

        logger.debug(
            "audit_recorded",
            extra={
                "action": entry.action,
                "resource_type": entry.resource_type,
                "resource_id": str(entry.resource_id),
            },
        )
        return row
