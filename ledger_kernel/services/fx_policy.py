"""
FxPolicyResolver -- effective FX rate for a document, with rate-lock rules.

Responsibility:
    Decides which rate a document posts at: parity for same-currency
    documents, otherwise the draft's own rate or the reference SPOT rate for
    the document date.  A locked reference rate may only be departed from
    with an explicit override and a reason.

Architecture position:
    Kernel > Services.  Read-only.  The orchestrator records the override
    decision as its own audit row.

Invariants enforced:
    - Same-currency documents always post at exactly 1.
    - Departing from a locked rate by more than the rate epsilon requires
      use_override=True and a non-blank reason.

Failure modes:
    - ParityRateMismatchError: non-1 rate on a same-currency document.
    - MissingFxRateError: no draft rate and no reference rate.
    - FxRateLockedError: locked reference rate, different rate, no
      authorized override.
    - ValidationError: non-positive draft rate.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.db.types import ONE, ZERO, amounts_equal, round_rate
from ledger_kernel.domain.dtos import FxResolution
from ledger_kernel.exceptions import (
    FxRateLockedError,
    MissingFxRateError,
    ParityRateMismatchError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.exchange_rate import FxRate
from ledger_kernel.services.base import BaseService

logger = get_logger("services.fx_policy")

SOURCE_PARITY = "PARITY"
SOURCE_FX_TABLE = "FX_TABLE"
SOURCE_DOCUMENT = "DOCUMENT"


class FxPolicyResolver(BaseService):
    """Resolve the effective rate for posting one document."""

    def reference_rate(
        self,
        tenant_id: UUID,
        rate_date: date,
        from_currency: str,
        to_currency: str,
    ) -> FxRate | None:
        """Most recent rate row of the configured type for the exact date."""
        return self.session.execute(
            select(FxRate)
            .where(
                FxRate.tenant_id == tenant_id,
                FxRate.rate_date == rate_date,
                FxRate.from_currency_code == from_currency,
                FxRate.to_currency_code == to_currency,
                FxRate.rate_type == self.settings.fx_rate_type,
            )
            .order_by(FxRate.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def resolve(
        self,
        tenant_id: UUID,
        document_date: date,
        document_currency: str,
        functional_currency: str,
        draft_rate: Decimal | None = None,
        use_override: bool = False,
        override_reason: str | None = None,
    ) -> FxResolution:
        epsilon = self.settings.rate_epsilon
        document_currency = document_currency.upper()
        functional_currency = functional_currency.upper()

        if draft_rate is not None:
            draft_rate = round_rate(Decimal(draft_rate))
            if draft_rate <= ZERO:
                raise ValidationError("fxRate must be greater than 0", field="fxRate")

        if document_currency == functional_currency:
            if draft_rate is not None and not amounts_equal(draft_rate, ONE, epsilon):
                raise ParityRateMismatchError(document_currency, draft_rate)
            return FxResolution(
                effective_rate=round_rate(ONE),
                locked=False,
                reference_rate=round_rate(ONE),
                override_used=False,
                source=SOURCE_PARITY,
                rate_date=document_date,
                from_currency=document_currency,
                to_currency=functional_currency,
            )

        row = self.reference_rate(
            tenant_id, document_date, document_currency, functional_currency
        )
        reference = round_rate(Decimal(row.rate)) if row is not None else None
        locked = bool(row.is_locked) if row is not None else False

        effective = draft_rate if draft_rate is not None else reference
        if effective is None:
            raise MissingFxRateError(document_currency, functional_currency, document_date)

        override_used = False
        if locked and not amounts_equal(effective, reference, epsilon):
            reason = (override_reason or "").strip()
            if not use_override or not reason:
                logger.warning(
                    "fx_locked_rate_rejection",
                    extra={
                        "from_currency": document_currency,
                        "to_currency": functional_currency,
                        "rate_date": document_date.isoformat(),
                        "reference_rate": str(reference),
                        "effective_rate": str(effective),
                    },
                )
                raise FxRateLockedError(
                    document_currency,
                    functional_currency,
                    document_date,
                    reference,
                    effective,
                )
            override_used = True

        return FxResolution(
            effective_rate=effective,
            locked=locked,
            reference_rate=reference,
            override_used=override_used,
            source=SOURCE_FX_TABLE if reference is not None else SOURCE_DOCUMENT,
            rate_date=document_date,
            from_currency=document_currency,
            to_currency=functional_currency,
        )
