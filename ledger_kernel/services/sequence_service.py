"""
SequenceAllocator -- gapless numbering per (scope, fiscal year) via locked
counter rows.

Responsibility:
    Hands out the next integer for a numbering scope
    ``(tenant, legal entity, direction, namespace)`` and fiscal year.  Used
    for provisional DRAFT numbers, final posted document numbers (namespace
    = document type) and journal numbers (direction ``GL``).

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Called by the
    draft lifecycle, PostingOrchestrator, ReversalService and
    ManualJournalService.

Invariants enforced:
    - Numbers within a scope and year are unique and strictly increasing.
      The counter row is locked with ``SELECT ... FOR UPDATE`` and held
      until the caller's transaction ends, so concurrent allocations
      serialize and commit in lock order.
    - Gapless: the increment is part of the caller's transaction; a
      rollback returns the number.
    - The first allocation for a scope continues after the highest
      sequence_no already stored for it.

Failure modes:
    - IntegrityError on concurrent counter creation: absorbed with a
      savepoint rollback and re-lock.
    - Lock timeout: surfaces as OperationalError, translated to
      TransientDatabaseError by session_scope().
"""

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.domain.dtos import SequenceScope
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.document import LedgerDocument
from ledger_kernel.models.sequence_counter import SequenceCounter
from ledger_kernel.services.base import BaseService

logger = get_logger("services.sequence")


class SequenceAllocator(BaseService):
    """
    Transactional, gapless sequence numbers.

    Contract:
        ``allocate(scope, fiscal_year)`` returns current + 1 for the scope and
        keeps the counter row locked until commit or rollback.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT format numbers; see ``domain.numbering``.

    Usage:
        with session_scope() as session:
            seq = SequenceAllocator(session).allocate(scope, 2024)
    """

    def _counter_query(self, scope: SequenceScope, fiscal_year: int):
        return (
            select(SequenceCounter)
            .where(
                SequenceCounter.tenant_id == scope.tenant_id,
                SequenceCounter.legal_entity_id == scope.legal_entity_id,
                SequenceCounter.direction == scope.direction,
                SequenceCounter.namespace == scope.namespace,
                SequenceCounter.fiscal_year == fiscal_year,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    def _stored_max(self, scope: SequenceScope, fiscal_year: int) -> int:
        value = self.session.execute(
            select(func.coalesce(func.max(LedgerDocument.sequence_no), 0)).where(
                LedgerDocument.tenant_id == scope.tenant_id,
                LedgerDocument.legal_entity_id == scope.legal_entity_id,
                LedgerDocument.direction == scope.direction,
                LedgerDocument.sequence_namespace == scope.namespace,
                LedgerDocument.fiscal_year == fiscal_year,
            )
        ).scalar_one()
        return int(value or 0)

    def allocate(self, scope: SequenceScope, fiscal_year: int) -> int:
        """
        Allocate the next number for ``scope`` in ``fiscal_year``.

        Postconditions:
            - Returns an integer > 0 greater than every number previously
              committed for the scope and year.
            - The counter row is locked until the transaction completes.
        """
        counter = self.session.execute(
            self._counter_query(scope, fiscal_year)
        ).scalar_one_or_none()

        if counter is None:
            # First use of this scope.  Another transaction may be creating
            # the same row; the savepoint keeps the caller's work intact.
            seed = self._stored_max(scope, fiscal_year)
            savepoint = self.session.begin_nested()
            try:
                counter = SequenceCounter(
                    tenant_id=scope.tenant_id,
                    legal_entity_id=scope.legal_entity_id,
                    direction=scope.direction,
                    namespace=scope.namespace,
                    fiscal_year=fiscal_year,
                    current_value=seed,
                )
                self.session.add(counter)
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"namespace": scope.namespace, "fiscal_year": fiscal_year},
                )
                savepoint.rollback()
                counter = self.session.execute(
                    self._counter_query(scope, fiscal_year)
                ).scalar_one()

        counter.current_value += 1
        self.session.flush()
        logger.debug(
            "sequence_allocated",
            extra={
                "legal_entity_id": str(scope.legal_entity_id),
                "direction": scope.direction,
                "namespace": scope.namespace,
                "fiscal_year": fiscal_year,
                "value": counter.current_value,
            },
        )
        return counter.current_value

    def current_value(self, scope: SequenceScope, fiscal_year: int) -> int | None:
        """Last allocated number, or None if the scope was never used."""
        return self.session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.tenant_id == scope.tenant_id,
                SequenceCounter.legal_entity_id == scope.legal_entity_id,
                SequenceCounter.direction == scope.direction,
                SequenceCounter.namespace == scope.namespace,
                SequenceCounter.fiscal_year == fiscal_year,
            )
        ).scalar_one_or_none()
