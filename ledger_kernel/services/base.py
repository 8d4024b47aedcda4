"""
BaseService -- common constructor for kernel services.

Every service receives the caller's ``Session`` and only ``flush()``es it.
The caller owns commit and rollback (see ``db.engine.session_scope``), which
is what makes a posting or reversal all-or-nothing.
"""

from abc import ABC
from collections.abc import Callable
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.config import LedgerSettings
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import RequestContext

# scope_guard(request, scope_type, scope_id, field) raises AccessDeniedError
ScopeGuard = Callable[[RequestContext | None, str, Any, str], None]

LEGAL_ENTITY_SCOPE = "LEGAL_ENTITY"


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Guarantees:
        - Never calls ``session.commit()`` or ``session.rollback()``.

    Non-goals:
        - Read-only queries belong in ``ledger_kernel.selectors``.
    """

    def __init__(
        self,
        session: Session,
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
    ):
        self.session = session
        self.settings = settings or LedgerSettings()
        self.clock = clock or SystemClock()


class GuardedService(BaseService):
    """
    Base for services that mutate state on behalf of a caller.

    Contract:
        ``check_scope`` runs the injected scope guard (if any) before the
        first write.  Without a guard every scope is allowed.
    """

    def __init__(
        self,
        session: Session,
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
        scope_guard: ScopeGuard | None = None,
    ):
        super().__init__(session, settings, clock)
        self.scope_guard = scope_guard

    def check_scope(
        self,
        request: RequestContext | None,
        legal_entity_id: UUID,
        field: str = "legalEntityId",
    ) -> None:
        if self.scope_guard is not None:
            self.scope_guard(request, LEGAL_ENTITY_SCOPE, legal_entity_id, field)
