"""
DocumentPostingValidator -- business rules shared by drafts and posting.

Responsibility:
    Checks that a document's legal entity, counterparty and payment term
    exist in the tenant, that the counterparty plays the role the direction
    needs, and resolves the due date.  The same checks run when a draft is
    saved and again, under the row lock, when it is posted.

Failure modes:
    - LegalEntityNotFoundError, CounterpartyNotFoundError,
      PaymentTermNotFoundError.
    - ValidationError: wrong counterparty role, missing or out-of-order
      due date.
"""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.document_rules import resolve_due_date
from ledger_kernel.domain.posting_rules import Direction, PostingRule, PostingRuleRegistry
from ledger_kernel.exceptions import (
    CounterpartyNotFoundError,
    LegalEntityNotFoundError,
    PaymentTermNotFoundError,
    ValidationError,
)
from ledger_kernel.models.counterparty import Counterparty, PaymentTerm
from ledger_kernel.models.organization import LegalEntity
from ledger_kernel.services.base import BaseService


@dataclass(frozen=True)
class ValidatedDocument:
    rule: PostingRule
    counterparty: Counterparty
    payment_term: PaymentTerm | None
    due_date: date | None


class DocumentPostingValidator(BaseService):
    """Pluggable validation step of the posting protocol."""

    def legal_entity(self, tenant_id: UUID, legal_entity_id: UUID) -> LegalEntity:
        entity = self.session.execute(
            select(LegalEntity).where(
                LegalEntity.id == legal_entity_id, LegalEntity.tenant_id == tenant_id
            )
        ).scalar_one_or_none()
        if entity is None:
            raise LegalEntityNotFoundError(legal_entity_id)
        return entity

    def counterparty(
        self,
        tenant_id: UUID,
        legal_entity_id: UUID,
        counterparty_id: UUID,
        direction: Direction,
    ) -> Counterparty:
        counterparty = self.session.execute(
            select(Counterparty).where(
                Counterparty.id == counterparty_id,
                Counterparty.tenant_id == tenant_id,
                Counterparty.legal_entity_id == legal_entity_id,
            )
        ).scalar_one_or_none()
        if counterparty is None:
            raise CounterpartyNotFoundError(counterparty_id)

        if direction is Direction.AR and not counterparty.is_customer:
            raise ValidationError(
                "counterpartyId must be a customer for AR documents", field="counterpartyId"
            )
        if direction is Direction.AP and not counterparty.is_vendor:
            raise ValidationError(
                "counterpartyId must be a vendor for AP documents", field="counterpartyId"
            )
        return counterparty

    def payment_term(
        self, tenant_id: UUID, legal_entity_id: UUID, payment_term_id: UUID | None
    ) -> PaymentTerm | None:
        if payment_term_id is None:
            return None
        term = self.session.execute(
            select(PaymentTerm).where(
                PaymentTerm.id == payment_term_id,
                PaymentTerm.tenant_id == tenant_id,
                PaymentTerm.legal_entity_id == legal_entity_id,
            )
        ).scalar_one_or_none()
        if term is None:
            raise PaymentTermNotFoundError(payment_term_id)
        return term

    def validate(
        self,
        tenant_id: UUID,
        legal_entity_id: UUID,
        direction: str,
        document_type: str,
        counterparty_id: UUID,
        payment_term_id: UUID | None,
        document_date: date,
        due_date: date | None,
    ) -> ValidatedDocument:
        rule = PostingRuleRegistry.get(direction, document_type)
        counterparty = self.counterparty(
            tenant_id, legal_entity_id, counterparty_id, rule.direction
        )
        term = self.payment_term(tenant_id, legal_entity_id, payment_term_id)
        resolved_due = resolve_due_date(
            rule,
            document_date,
            due_date,
            due_days=term.due_days if term is not None else None,
            grace_days=term.grace_days if term is not None else None,
            has_payment_term=term is not None,
        )
        return ValidatedDocument(
            rule=rule, counterparty=counterparty, payment_term=term, due_date=resolved_due
        )
