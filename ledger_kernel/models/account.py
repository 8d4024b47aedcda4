"""
Module: ledger_kernel.models.account
Responsibility: GL accounts and the purpose-code mapping that tells the
    posting engine which accounts to use for a subledger direction.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Account codes are unique per (tenant, legal entity).
    - One account per (tenant, legal entity, purpose code).
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TimestampedBase, UUIDString


class AccountType(str, Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


class Account(TimestampedBase):
    """
    A postable (or header) GL account in a legal entity's chart.

    Guarantees:
        - Only accounts with is_active and allow_posting may receive lines.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("tenant_id", "legal_entity_id", "code", name="uq_account_code"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    legal_entity_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("legal_entities.id"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(60), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_type: Mapped[str] = mapped_column(String(12), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allow_posting: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Account {self.code} {self.account_type}>"


class JournalPurposeAccount(TimestampedBase):
    """Maps a purpose code (e.g. CARI_AR_CONTROL) to an account."""

    __tablename__ = "journal_purpose_accounts"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "legal_entity_id", "purpose_code", name="uq_purpose_account"
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    legal_entity_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("legal_entities.id"), nullable=False
    )
    purpose_code: Mapped[str] = mapped_column(String(60), nullable=False)
    account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )
