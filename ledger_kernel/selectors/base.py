"""
Module: ledger_kernel.selectors.base
Responsibility: Base class for read-only query objects.
Architecture position: Kernel > Selectors.  May import from db/ and models/.
    MUST NOT import from services/.

Invariants enforced:
    - Selectors never add, flush, commit or delete.
    - Public methods return frozen DTOs, not ORM instances.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """Holds the caller's session; subclasses add the queries."""

    def __init__(self, session: Session):
        self.session = session
