"""
Module: ledger_kernel.models.counterparty
Responsibility: Customers / vendors and their payment terms.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TimestampedBase, UUIDString


class Counterparty(TimestampedBase):
    """
    A customer and/or vendor of a legal entity.

    ar_account_id / ap_account_id override the entity's default control
    account for documents of that direction.
    """

    __tablename__ = "counterparties"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "legal_entity_id", "code", name="uq_counterparty_code"
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    legal_entity_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("legal_entities.id"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(60), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_customer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_vendor: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ar_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=True
    )
    ap_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(12), nullable=False, default="ACTIVE")


class PaymentTerm(TimestampedBase):
    """Net days plus grace days used to derive a due date."""

    __tablename__ = "payment_terms"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "legal_entity_id", "code", name="uq_payment_term_code"
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    legal_entity_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("legal_entities.id"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(60), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    due_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    grace_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_end_of_month: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(12), nullable=False, default="ACTIVE")
