"""
Module: ledger_kernel.models.exchange_rate
Responsibility: Dated currency-pair rates maintained by rate management.
    Read-only to the posting engine.

Invariants enforced:
    - One rate per (tenant, date, from, to, rate type) (uq_fx_rate).
    - is_locked rates may only be departed from with an authorized override
      (enforced by FxPolicyResolver).
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Date, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TimestampedBase, UUIDString


class FxRateType(str, Enum):
    SPOT = "SPOT"
    AVERAGE = "AVERAGE"
    CLOSING = "CLOSING"


class FxRate(TimestampedBase):
    """Rate converting one unit of from_currency into to_currency."""

    __tablename__ = "fx_rates"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "rate_date",
            "from_currency_code",
            "to_currency_code",
            "rate_type",
            name="uq_fx_rate",
        ),
        CheckConstraint("rate > 0", name="ck_fx_rate_positive"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    rate_date: Mapped[date] = mapped_column(Date, nullable=False)
    from_currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    to_currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    rate_type: Mapped[str] = mapped_column(
        String(10), nullable=False, default=FxRateType.SPOT.value
    )
    rate: Mapped[Decimal] = mapped_column(Numeric(20, 10), nullable=False)
    source: Mapped[str | None] = mapped_column(String(120), nullable=True)
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
