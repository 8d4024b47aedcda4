"""
Module: ledger_kernel.models.audit_log
Responsibility: Append-only audit rows, one per state transition.
Architecture position: Kernel > Models.  May import from db/ only.

Audit relevance:
    Consumed by reporting and compliance tooling.  Rows are inserted by
    AuditLogWriter and never updated.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class AuditLog(Base):
    """One structured audit event."""

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("idx_audit_resource", "tenant_id", "resource_type", "resource_id"),
        Index("idx_audit_action", "tenant_id", "action"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(60), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(60), nullable=False)
    scope_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    scope_id: Mapped[str | None] = mapped_column(String(60), nullable=True)
    request_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payload_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
