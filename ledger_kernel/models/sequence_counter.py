"""
Module: ledger_kernel.models.sequence_counter
Responsibility: One counter row per numbering scope and fiscal year.

The row is the lock target for SequenceAllocator; current_value is the last
number handed out.  It only moves forward.
"""

from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "legal_entity_id",
            "direction",
            "namespace",
            "fiscal_year",
            name="uq_sequence_counter_scope",
        ),
        CheckConstraint("current_value >= 0", name="ck_sequence_counter_value"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    legal_entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    direction: Mapped[str] = mapped_column(String(4), nullable=False)
    namespace: Mapped[str] = mapped_column(String(40), nullable=False)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
